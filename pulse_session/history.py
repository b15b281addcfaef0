"""Bounded measurement history with oldest-first eviction."""

import threading
from collections import deque

from .parser import Measurement

DEFAULT_CAPACITY = 30


class MeasurementHistory:
    """Insertion-ordered measurements capped at ``capacity``.

    Lowering the capacity evicts nothing by itself; the excess is dropped
    from the front on the next push.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._lock = threading.Lock()
        self._items: deque[Measurement] = deque()
        self._capacity = DEFAULT_CAPACITY
        self.capacity = capacity

    @property
    def capacity(self) -> int:
        """Maximum number of measurements kept after a push."""
        return self._capacity

    @capacity.setter
    def capacity(self, value: int) -> None:
        if value < 1:
            raise ValueError(f"History capacity must be at least 1, got {value}")
        with self._lock:
            self._capacity = value

    def push(self, measurement: Measurement) -> list[Measurement]:
        """Append a measurement and return whatever was evicted."""
        evicted = []
        with self._lock:
            self._items.append(measurement)
            while len(self._items) > self._capacity:
                evicted.append(self._items.popleft())
        return evicted

    def snapshot(self) -> list[Measurement]:
        """Ordered copy of the current contents, oldest first."""
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
