"""Parameter state store.

Holds the last observed TypedValue per watched address. The receive thread
writes it and the main cycle may read it, so every access goes through one
coarse lock. Entries are never removed.
"""

import threading
from typing import Dict, Optional

from x32agent.values import TypedValue


class ParameterStateStore:
    """Thread-safe mapping of address → last observed TypedValue."""

    def __init__(self):
        self._values: Dict[str, TypedValue] = {}
        self._lock = threading.Lock()

    def get(self, address: str) -> Optional[TypedValue]:
        """Last observed value for address, or None if never seen."""
        with self._lock:
            return self._values.get(address)

    def update_if_changed(self, address: str, value: TypedValue) -> bool:
        """Store value if it differs from the current one.

        Comparison and write happen under a single lock acquisition so two
        identical reports can never both be seen as a change.

        Args:
            address: Watched parameter address
            value: Newly observed value

        Returns:
            True if the value was stored (first observation or a change),
            False if it equals the stored value
        """
        with self._lock:
            previous = self._values.get(address)
            if previous is not None and previous == value:
                return False
            self._values[address] = value
            return True

    def snapshot(self) -> Dict[str, TypedValue]:
        """Copy of all entries."""
        with self._lock:
            return dict(self._values)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, address: str) -> bool:
        with self._lock:
            return address in self._values
