"""Shared pytest fixtures for the X32 agent tests.

Provides:
- FakeTransport: in-memory stand-in for Transport that records every send
- events: shared list that records sends and sleeps in order
- fake_transport / fake_sleep: fixtures wired to the same event list
- pipeline_file: writes a pipeline dict to a temporary YAML file
"""

import logging
import os
import tempfile

import pytest
import yaml

from x32agent import osc
from x32agent.dispatch import Dispatcher
from x32agent.log import ROOT_LOGGER_NAME
from x32agent.transport import SendResult


class FakeTransport:
    """Records sends instead of touching the network.

    Attributes:
        sent: List of (address, TypedValue or None) in send order
        fail_addresses: Addresses whose sends report failure
    """

    def __init__(self, events=None):
        self.dispatcher = Dispatcher()
        self.stats = osc.MessageStatistics()
        self.sent = []
        self.events = events if events is not None else []
        self.fail_addresses = set()
        self.receiver_thread = None

    def send(self, address, value=None):
        self.sent.append((address, value))
        self.events.append(('send', address, value))
        if address in self.fail_addresses:
            self.stats.increment('send_errors')
            return SendResult(False, address, "simulated failure")
        self.stats.increment('sent')
        return SendResult(True, address)

    def receiver_alive(self):
        return self.receiver_thread is not None and self.receiver_thread.is_alive()

    def sent_to(self, address):
        return [value for addr, value in self.sent if addr == address]

    def deliver(self, address, *args):
        """Simulate an inbound message reaching the dispatcher."""
        return self.dispatcher.dispatch(address, list(args))


@pytest.fixture(autouse=True)
def reset_agent_logging():
    """Drop handlers installed by setup_logging() so they don't outlive capsys."""
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
    root.propagate = True


@pytest.fixture
def events():
    return []


@pytest.fixture
def fake_transport(events):
    return FakeTransport(events)


@pytest.fixture
def fake_sleep(events):
    """Sleep replacement that records ('sleep', seconds) without waiting."""
    def sleep(seconds):
        events.append(('sleep', seconds))
    return sleep


@pytest.fixture
def pipeline_file():
    """Factory writing a pipeline dict to a temporary YAML file."""
    paths = []

    def write(document):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            if isinstance(document, str):
                f.write(document)
            else:
                yaml.dump(document, f)
            paths.append(f.name)
            return f.name

    yield write

    for path in paths:
        os.unlink(path)


@pytest.fixture
def mute_pipeline():
    """Pipeline watching /config/mute/2 with cascades for 0 and 1."""
    return {
        'watch_on': [
            {
                'parameter': '/config/mute/2',
                'type': 'float32',
                'actions': [
                    {
                        'value': 0,
                        'set': [
                            {'path': '/ch/29/mix/on', 'type': 'int32', 'value': 0},
                            {'path': '/ch/30/mix/on', 'type': 'int32', 'value': 0},
                            {'path': '/ch/15/gate/keysrc', 'type': 'int32', 'value': 59},
                            {'path': '/ch/15/gate/hold', 'type': 'float32', 'value': 0.99999},
                            {'path': '/ch/15/gate/release', 'type': 'float32', 'value': 0.99999},
                        ],
                    },
                    {
                        'value': 1,
                        'set': [
                            {'path': '/ch/29/mix/on', 'type': 'int32', 'value': 1},
                            {'path': '/ch/30/mix/on', 'type': 'int32', 'value': 1},
                        ],
                    },
                ],
            },
        ],
        'set': [
            {'path': '/ch/01/mix/on', 'type': 'int32', 'value': 1},
            {'path': '/main/st/mix/fader', 'type': 'float32', 'value': 0.75},
        ],
    }
