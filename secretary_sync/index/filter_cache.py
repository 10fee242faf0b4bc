"""Memoization of the most recent index query."""

import threading
from typing import Dict, Hashable, Optional, Set, Tuple


class FilterCache:
    """
    Remembers the result of the last ``(criteria, query)`` lookup.

    The owning index calls ``invalidate`` on every mutation, so a hit is
    always consistent with the current primary map.
    """

    def __init__(self):
        self._key: Optional[Tuple[Hashable, ...]] = None
        self._result: Optional[Set[str]] = None
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Tuple[Hashable, ...]) -> Optional[Set[str]]:
        with self._lock:
            if self._result is not None and self._key == key:
                self.hits += 1
                return set(self._result)
            self.misses += 1
            return None

    def put(self, key: Tuple[Hashable, ...], result: Set[str]) -> None:
        with self._lock:
            self._key = key
            self._result = set(result)

    def invalidate(self) -> None:
        with self._lock:
            self._key = None
            self._result = None

    def stats(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses}
