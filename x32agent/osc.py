#!/usr/bin/env python3
"""
X32 Agent OSC Infrastructure - Wire codec, constants and statistics.

Wraps python-osc's message builder and packet parser behind a small codec
contract used by the transport, and provides the shared constants and the
thread-safe statistics counter used across the agent.

Functions:
    - encode_message(address, value): Build one OSC datagram (0 or 1 argument)
    - decode_datagram(dgram): Parse a datagram into (address, args) messages
    - validate_port(port): Validate port in range 1-65535
    - validate_address(address): Validate an OSC address path

Classes:
    - DecodeError: Raised when an inbound datagram cannot be parsed
    - EncodeError: Raised when an outbound message cannot be built
    - MessageStatistics: Thread-safe named counters

Constants:
    - DEFAULT_MIXER_IP, DEFAULT_MIXER_PORT: X32 console endpoint
    - DEFAULT_LOCAL_IP: Local interface the agent binds to
    - STATUS_ADDRESS: Liveness probe query
    - WILDCARD: Dispatcher pattern matching every address
    - RECV_BUFFER_SIZE: Receive buffer, larger datagrams are truncated
"""

import threading
from collections import Counter
from typing import Dict, List, Optional, Tuple

from pythonosc import osc_message_builder
from pythonosc import osc_packet

from x32agent.values import TypedValue


# ============================================================================
# CONSTANTS
# ============================================================================

# X32 consoles listen for OSC on UDP 10023 (X-Air uses 10024)
DEFAULT_MIXER_IP = "192.168.56.3"
DEFAULT_MIXER_PORT = 10023
DEFAULT_LOCAL_IP = "192.168.56.1"

STATUS_ADDRESS = "/status"
WILDCARD = "*"

RECV_BUFFER_SIZE = 1024

# Port validation range
PORT_MIN = 1
PORT_MAX = 65535


# ============================================================================
# CODEC
# ============================================================================

class DecodeError(Exception):
    """Inbound datagram is not a well-formed OSC message or bundle."""


class EncodeError(Exception):
    """Outbound OSC message could not be built."""


def encode_message(address: str, value: Optional[TypedValue] = None) -> bytes:
    """Encode an address and an optional typed argument into an OSC datagram.

    A bare query (value is None) carries no arguments, which the console
    answers with the parameter's current value.

    Args:
        address: OSC address path (e.g., "/ch/01/mix/on")
        value: Optional TypedValue argument

    Returns:
        Raw datagram bytes

    Raises:
        EncodeError: If python-osc rejects the address or argument
    """
    builder = osc_message_builder.OscMessageBuilder(address=address)
    try:
        if value is not None:
            builder.add_arg(value.value, value.osc_type_tag)
        return builder.build().dgram
    except (osc_message_builder.BuildError, ValueError, TypeError, AttributeError) as e:
        raise EncodeError(f"Cannot encode {address} {value}: {e}") from e


def decode_datagram(dgram: bytes) -> List[Tuple[str, list]]:
    """Decode a datagram into its OSC messages.

    Bundles are flattened into their contained messages in timetag order.

    Args:
        dgram: Raw datagram bytes

    Returns:
        List of (address, args) tuples

    Raises:
        DecodeError: If the datagram is neither a message nor a bundle, or is
            truncated/corrupt
    """
    try:
        packet = osc_packet.OscPacket(dgram)
    except (osc_packet.ParseError, ValueError, IndexError) as e:
        raise DecodeError(f"Failed to parse OSC packet: {e}") from e
    return [(timed.message.address, list(timed.message.params)) for timed in packet.messages]


# ============================================================================
# VALIDATION FUNCTIONS
# ============================================================================

def validate_port(port: int) -> None:
    """Validate UDP port number is in valid range.

    Raises:
        ValueError: If port is outside range 1-65535

    Examples:
        >>> validate_port(10023)  # OK
        >>> validate_port(0)  # Raises ValueError
    """
    if port < PORT_MIN or port > PORT_MAX:
        raise ValueError(f"Port must be in range {PORT_MIN}-{PORT_MAX}, got {port}")


def validate_address(address: str) -> None:
    """Validate an OSC address path (non-empty, starts with '/', no spaces).

    Raises:
        ValueError: If the address is malformed
    """
    if not isinstance(address, str) or not address.startswith("/"):
        raise ValueError(f"OSC address must be a string starting with '/', got {address!r}")
    if any(c.isspace() for c in address):
        raise ValueError(f"OSC address must not contain whitespace: {address!r}")


# ============================================================================
# MESSAGE STATISTICS
# ============================================================================

class MessageStatistics:
    """Named event counters shared by the transport, engine and main cycle.

    Counters in use: sent, send_errors, received, decode_errors, recv_errors,
    value_changes, coercion_errors, cascades, cycles, probe_failures. A
    counter that never fired reads as 0.
    """

    def __init__(self):
        self._counts = Counter()
        self._lock = threading.Lock()

    def increment(self, counter_name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[counter_name] += amount

    def get(self, counter_name: str) -> int:
        with self._lock:
            return self._counts[counter_name]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def summary(self) -> str:
        """Counters as sorted "name=value" pairs on one line."""
        counts = self.snapshot()
        return ", ".join(f"{name}={counts[name]}" for name in sorted(counts)) or "no traffic"
