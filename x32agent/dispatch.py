"""Inbound message dispatcher.

A pythonosc Dispatcher whose address matching is literal: a mapped address
matches only the identical message address, except the universal wildcard
"*" which matches every message. OSC pattern characters in a mapped address
("/ch/*/mix/on") carry no meaning. Dispatch fans out to the exact handler
and the wildcard handler for the same message, exact first.

Handlers use python-osc's calling convention, handler(address, *args).
"""

import threading
from typing import Callable, List

from pythonosc import dispatcher

from x32agent.log import get_logger
from x32agent.osc import WILDCARD

logger = get_logger(__name__)


class Dispatcher(dispatcher.Dispatcher):
    """Literal-address dispatcher with a universal wildcard."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()

    def register(self, pattern: str, handler: Callable[..., None]) -> dispatcher.Handler:
        """Map handler to a literal address or the wildcard "*".

        Registering the same pattern twice replaces the earlier handler.
        """
        if not pattern:
            raise ValueError("Dispatcher pattern must not be empty")
        with self._lock:
            if self._map.pop(pattern, None):
                logger.debug(f"Replacing handler for {pattern}")
            return self.map(pattern, handler)

    def handlers_for_address(self, address_pattern: str) -> List[dispatcher.Handler]:
        """Handlers that apply to an address, exact match first."""
        with self._lock:
            matched = []
            if address_pattern != WILDCARD:
                matched.extend(self._map.get(address_pattern, ()))
            matched.extend(self._map.get(WILDCARD, ()))
            return matched

    def dispatch(self, address: str, args) -> int:
        """Invoke every applicable handler synchronously.

        A handler that raises is logged and does not prevent the remaining
        handlers from running.

        Args:
            address: Decoded OSC address
            args: Decoded argument list

        Returns:
            Number of handlers invoked
        """
        handlers = self.handlers_for_address(address)
        for handler in handlers:
            try:
                if handler.args:
                    handler.callback(address, handler.args, *args)
                else:
                    handler.callback(address, *args)
            except Exception as e:
                logger.error(f"Handler error for {address}: {e}", exc_info=True)
        return len(handlers)
