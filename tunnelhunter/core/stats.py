"""
Thread-safe outcome counters shared by the probe workers.
"""

import threading
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional


class StatsAggregator:
    """Running counts keyed by outcome label.

    Writers go through ``increment``; readers take a ``snapshot`` copy and
    never iterate the live dict.
    """

    def __init__(self, labels: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {label: 0 for label in (labels or ())}

    def increment(self, label: str, amount: int = 1) -> int:
        with self._lock:
            value = self._counts.get(label, 0) + amount
            self._counts[label] = value
        return value

    def get(self, label: str) -> int:
        with self._lock:
            return self._counts.get(label, 0)

    def snapshot(self) -> Mapping[str, int]:
        """Immutable copy of the current counts."""
        with self._lock:
            copy = dict(self._counts)
        return MappingProxyType(copy)

    def total(self) -> int:
        return sum(self.snapshot().values())
