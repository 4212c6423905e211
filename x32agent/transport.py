"""UDP transport to the X32 console.

One datagram socket bound to the local interface carries both directions:
queries and writes go out to the console's fixed endpoint, and the console
replies to the socket's ephemeral port. Sending is fire-and-forget; every
outcome is reported as a SendResult and counted, never raised.

The socket belongs to a python-osc BlockingOSCUDPServer whose serve_forever
loop runs on a daemon thread. Each datagram is read into a bounded buffer,
decoded with the OSC codec and handed to the dispatcher on that thread.
"""

import threading
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from pythonosc import osc_server

from x32agent import osc
from x32agent.dispatch import Dispatcher
from x32agent.log import get_logger
from x32agent.values import TypedValue

logger = get_logger(__name__)


@dataclass(frozen=True)
class SendResult:
    """Outcome of one fire-and-forget send."""

    ok: bool
    address: str
    error: Optional[str] = None


class ReceiverStoppedError(RuntimeError):
    """The receive loop gave up after repeated socket failures."""


class MixerOSCUDPServer(osc_server.BlockingOSCUDPServer):
    """BlockingOSCUDPServer that reports every datagram to its Transport.

    Reads at most RECV_BUFFER_SIZE bytes per datagram; larger datagrams are
    truncated by the socket and then fail to decode. Datagrams are not
    pre-filtered: the transport decodes each one and counts the failures.
    """

    max_packet_size = osc.RECV_BUFFER_SIZE

    def __init__(self, server_address, dispatcher: Dispatcher, transport: "Transport"):
        self.transport = transport
        super().__init__(server_address, dispatcher)

    def get_request(self):
        try:
            request = super().get_request()
        except OSError as e:
            self.transport.record_recv_error(e)
            raise
        self.transport.consecutive_recv_errors = 0
        return request

    def verify_request(self, request, client_address) -> bool:
        return True

    def finish_request(self, request, client_address) -> None:
        self.transport.handle_datagram(request[0])

    def handle_error(self, request, client_address) -> None:
        logger.error(f"Error handling datagram from {client_address}", exc_info=True)


class Transport:
    """Datagram transport between the agent and the console.

    Attributes:
        mixer_addr: (ip, port) of the console
        local_ip: Interface the socket is bound to
        dispatcher: Receives every decoded inbound message
        stats: Shared MessageStatistics
        server: MixerOSCUDPServer owning the socket, None until open()
    """

    # Consecutive receive errors before the loop gives up
    MAX_CONSECUTIVE_RECV_ERRORS = 100

    # Pause after each receive error, so a burst of ICMP-driven errors takes
    # seconds rather than milliseconds to exhaust the error budget
    RECV_ERROR_PAUSE = 0.05

    # serve_forever poll interval, bounds how long stop() waits
    RECV_POLL_INTERVAL = 0.5

    def __init__(self, mixer_ip: str, mixer_port: int, local_ip: str,
                 dispatcher: Dispatcher, stats: Optional[osc.MessageStatistics] = None,
                 local_port: int = 0):
        self.mixer_addr: Tuple[str, int] = (mixer_ip, mixer_port)
        self.local_ip = local_ip
        self.local_port = local_port
        self.dispatcher = dispatcher
        self.stats = stats if stats is not None else osc.MessageStatistics()

        self.server: Optional[MixerOSCUDPServer] = None
        self.receiver_thread: Optional[threading.Thread] = None
        self.consecutive_recv_errors = 0

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def open(self) -> Tuple[str, int]:
        """Create the server and bind its socket.

        Returns:
            Local (ip, port) the socket is bound to

        Raises:
            OSError: If the local address cannot be bound
        """
        self.server = MixerOSCUDPServer((self.local_ip, self.local_port), self.dispatcher, self)
        local = self.server.server_address
        logger.info(f"Listening on {local[0]}:{local[1]}")
        return local

    def start_receiver(self) -> threading.Thread:
        """Run receive_loop() on a daemon thread."""
        if self.server is None:
            raise RuntimeError("Transport.open() must be called before start_receiver()")
        self.receiver_thread = threading.Thread(
            target=self.receive_loop, name="x32-receiver", daemon=True
        )
        self.receiver_thread.start()
        return self.receiver_thread

    def receiver_alive(self) -> bool:
        return self.receiver_thread is not None and self.receiver_thread.is_alive()

    def stop(self) -> None:
        """Stop the receive loop and close the socket."""
        server = self.server
        if server is None:
            return
        # shutdown() blocks until serve_forever returns, so only ask a live loop
        if self.receiver_alive() and self.receiver_thread is not threading.current_thread():
            server.shutdown()
            self.receiver_thread.join(timeout=2 * self.RECV_POLL_INTERVAL + 1.0)
        server.server_close()
        self.server = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    # ========================================================================
    # SEND
    # ========================================================================

    def send(self, address: str, value: Optional[TypedValue] = None) -> SendResult:
        """Encode and transmit one message to the console.

        Never raises; encode and socket failures are returned in the result
        and logged at DEBUG.

        Args:
            address: OSC address path
            value: Optional typed argument (None sends a bare query)

        Returns:
            SendResult describing the attempt
        """
        try:
            data = osc.encode_message(address, value)
        except osc.EncodeError as e:
            self.stats.increment('send_errors')
            logger.debug(f"Failed to marshal OSC message: {e}")
            return SendResult(False, address, str(e))

        args = [] if value is None else [value.value]
        logger.debug(f"Sending OSC message: Path={address}, Arguments={args}")
        logger.debug(f"Raw OSC data: {data.hex()}")

        server = self.server
        if server is None:
            self.stats.increment('send_errors')
            logger.debug(f"Failed to send OSC message {address}: socket closed")
            return SendResult(False, address, "socket closed")

        try:
            server.socket.sendto(data, self.mixer_addr)
        except OSError as e:
            self.stats.increment('send_errors')
            logger.debug(f"Failed to send OSC message {address}: {e}")
            return SendResult(False, address, str(e))

        self.stats.increment('sent')
        logger.debug(f"OSC message successfully sent to {self.mixer_addr[0]}:{self.mixer_addr[1]}")
        return SendResult(True, address)

    # ========================================================================
    # RECEIVE
    # ========================================================================

    def handle_datagram(self, data: bytes) -> int:
        """Decode one datagram and dispatch its messages.

        Undecodable datagrams are dropped.

        Returns:
            Number of messages dispatched
        """
        try:
            messages = osc.decode_datagram(data)
        except osc.DecodeError as e:
            self.stats.increment('decode_errors')
            logger.debug(f"{e} ({len(data)} bytes: {data[:64].hex()})")
            return 0

        for address, args in messages:
            self.stats.increment('received')
            self.dispatcher.dispatch(address, args)
        return len(messages)

    def record_recv_error(self, error: OSError) -> None:
        """Count a failed socket read and pause before the next one.

        Raises:
            ReceiverStoppedError: After MAX_CONSECUTIVE_RECV_ERRORS in a row
        """
        self.consecutive_recv_errors += 1
        self.stats.increment('recv_errors')
        logger.debug(f"Error reading from socket: {error}")
        if self.consecutive_recv_errors >= self.MAX_CONSECUTIVE_RECV_ERRORS:
            raise ReceiverStoppedError(
                f"Receive loop stopping after {self.consecutive_recv_errors} "
                f"consecutive socket errors: {error}"
            )
        time.sleep(self.RECV_ERROR_PAUSE)

    def receive_loop(self) -> None:
        """Serve datagrams until stop() or the receive error budget runs out.

        Transient socket errors are counted and the loop continues; after
        MAX_CONSECUTIVE_RECV_ERRORS in a row it returns, leaving the caller to
        notice via receiver_alive().
        """
        try:
            self.server.serve_forever(poll_interval=self.RECV_POLL_INTERVAL)
        except ReceiverStoppedError as e:
            logger.error(str(e))
        logger.debug("Receive loop exited")
