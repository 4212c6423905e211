#!/usr/bin/env python3
"""
Watch-react-enforce engine for the X32 agent.

ARCHITECTURE:
- Agent: context object owning the configuration, state store, transport
  and the three cycle components below; runs the main cycle on the calling
  thread while the transport's receive loop runs on a daemon thread
- LivenessProbe: sends /status before every cycle (response-blind)
- WatchReactEngine: polls watched parameters with bare queries and reacts
  to changed replies on the receive thread
- Enforcer: re-sends every enforced write every cycle

MAIN CYCLE:
    probe → poll watched → enforce → sleep(poll_interval) → repeat
    A failed probe send skips the cycle and backs off for 2 seconds.

RECEIVE PATH (per reply for a watched address):
    coerce first argument → compare with state → on change store and run the
    first matching rule's cascade (ordered sends, 10ms apart)

The only state shared between the two threads is the ParameterStateStore.
Replies for one address are handled one at a time, so its cascades never
interleave; cascades for different addresses may.
"""

import threading
import time
from typing import Callable, List, Optional, Sequence

from x32agent import osc
from x32agent.config import AgentConfig, MatchRule, SetCommand, WatchedParameter
from x32agent.dispatch import Dispatcher
from x32agent.log import get_logger
from x32agent.state import ParameterStateStore
from x32agent.transport import ReceiverStoppedError, SendResult, Transport
from x32agent.values import coerce

logger = get_logger(__name__)


# ============================================================================
# WATCH / REACT
# ============================================================================

class WatchReactEngine:
    """Change detection and rule cascades for watched parameters.

    Attributes:
        watched: Watched parameters in configuration order
        transport: Anything with send(address, value) -> SendResult
        state: Shared ParameterStateStore
        stats: Shared MessageStatistics
    """

    # Pause after each cascade write, for console processing latency
    CASCADE_DELAY = 0.010

    def __init__(self, watched: Sequence[WatchedParameter], transport: Transport,
                 state: ParameterStateStore, stats: osc.MessageStatistics,
                 sleep: Callable[[float], None] = time.sleep):
        self.watched = tuple(watched)
        self.transport = transport
        self.state = state
        self.stats = stats
        self.sleep = sleep

        # One lock per watched address: a reply waits for that address's
        # running cascade, other addresses are not held up
        self._address_locks = {param.address: threading.Lock() for param in self.watched}

    def register(self, dispatcher: Dispatcher) -> None:
        """Register one handler per watched address."""
        for param in self.watched:
            dispatcher.register(param.address, self._make_handler(param))

    def _make_handler(self, param: WatchedParameter):
        def handler(address, *args):
            self.handle(param, address, *args)
        return handler

    def poll(self) -> List[SendResult]:
        """Send one bare query per watched parameter."""
        return [self.transport.send(param.address) for param in self.watched]

    def handle(self, param: WatchedParameter, address: str, *args) -> Optional[MatchRule]:
        """Process one reply for a watched parameter.

        Args:
            param: Watched parameter the reply belongs to
            address: OSC address of the reply
            *args: Decoded OSC arguments

        Returns:
            The rule whose cascade was executed, or None when the reply was
            ignored, unchanged, or matched no rule
        """
        if len(args) == 0:
            logger.debug(f"No arguments in OSC message {address}")
            return None

        try:
            value = coerce(param.declared_type, args[0])
        except (TypeError, ValueError) as e:
            self.stats.increment('coercion_errors')
            logger.debug(f"Dropping {address}: {e}")
            return None

        lock = self._address_locks.setdefault(param.address, threading.Lock())
        with lock:
            return self._react(param, address, args, value)

    def _react(self, param: WatchedParameter, address: str, args, value) -> Optional[MatchRule]:
        if not self.state.update_if_changed(param.address, value):
            return None

        self.stats.increment('value_changes')
        logger.info(f"Received OSC message: {address} {list(args)} -> {value}")

        rule = param.match(value)
        if rule is None:
            logger.debug(f"No rule for {address} = {value}")
            return None

        logger.info(f"Rule {rule.trigger} matched on {address}, sending {len(rule.actions)} commands")
        self.stats.increment('cascades')
        self.execute_cascade(rule.actions)
        return rule

    def execute_cascade(self, actions: Sequence[SetCommand]) -> List[SendResult]:
        """Send each command in order, pausing CASCADE_DELAY after each."""
        results = []
        for command in actions:
            results.append(self.transport.send(command.address, command.value))
            self.sleep(self.CASCADE_DELAY)
        return results


# ============================================================================
# ENFORCEMENT
# ============================================================================

class Enforcer:
    """Re-asserts the enforced writes on every cycle, with no dedup."""

    def __init__(self, enforced: Sequence[SetCommand], transport: Transport):
        self.enforced = tuple(enforced)
        self.transport = transport

    def enforce(self) -> List[SendResult]:
        results = [self.transport.send(cmd.address, cmd.value) for cmd in self.enforced]
        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.debug(f"Enforcement: {failed}/{len(results)} sends failed")
        return results


# ============================================================================
# LIVENESS PROBE
# ============================================================================

class LivenessProbe:
    """Advisory connectivity check.

    Sends a status query and reports whether the send succeeded. The reply,
    if any, is not awaited.
    """

    def __init__(self, transport: Transport, address: str = osc.STATUS_ADDRESS):
        self.transport = transport
        self.address = address

    def check(self) -> bool:
        return self.transport.send(self.address).ok


# ============================================================================
# AGENT
# ============================================================================

class Agent:
    """Context object tying configuration, state and transport together.

    Constructed once at startup; the main cycle and the receive thread both
    work through it instead of module-level globals.

    Attributes:
        config: Validated AgentConfig
        transport: Transport (its dispatcher gets the watch handlers)
        state: ParameterStateStore shared with the receive thread
        stats: MessageStatistics shared with the transport
        poll_interval: Seconds slept at the end of each cycle
    """

    PROBE_BACKOFF = 2.0
    DEFAULT_POLL_INTERVAL = 0.5

    def __init__(self, config: AgentConfig, transport: Transport,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.transport = transport
        self.stats = transport.stats
        self.poll_interval = poll_interval
        self.sleep = sleep

        self.state = ParameterStateStore()
        self.probe = LivenessProbe(transport)
        self.engine = WatchReactEngine(config.watched, transport, self.state, self.stats, sleep=sleep)
        self.enforcer = Enforcer(config.enforced, transport)

        self.engine.register(transport.dispatcher)
        transport.dispatcher.register(osc.WILDCARD, self.log_message)

        self.running = False

    def log_message(self, address: str, *args) -> None:
        """Wildcard handler: trace every inbound message."""
        logger.debug(f"Received OSC message: {address} {list(args)}")

    def run_cycle(self) -> bool:
        """Run one probe → poll → enforce → sleep cycle.

        Returns:
            False if the probe failed and the cycle was skipped after the
            backoff, True otherwise
        """
        if not self.probe.check():
            self.stats.increment('probe_failures')
            logger.info(f"No connection to X32 mixer, retrying in {self.PROBE_BACKOFF:.0f}s...")
            self.sleep(self.PROBE_BACKOFF)
            return False

        self.engine.poll()
        self.enforcer.enforce()
        self.stats.increment('cycles')

        self.sleep(self.poll_interval)
        return True

    def run(self, max_cycles: Optional[int] = None) -> None:
        """Run cycles until stop() is called or max_cycles have been attempted.

        Raises:
            ReceiverStoppedError: If the receive thread was started and has
                since died
        """
        self.running = True
        attempts = 0
        while self.running:
            if self.transport.receiver_thread is not None and not self.transport.receiver_alive():
                raise ReceiverStoppedError("Receive loop stopped; restart required")

            self.run_cycle()
            attempts += 1
            if max_cycles is not None and attempts >= max_cycles:
                break
        self.running = False

    def stop(self) -> None:
        self.running = False
