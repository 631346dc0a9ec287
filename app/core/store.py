from __future__ import annotations
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple


class KeyValueStore(Protocol):
    """Expiring key/value storage shared by the OTP registry and reset-token bookkeeping.

    A ``ttl`` of None keeps the entry until it is deleted or overwritten.
    """

    def put(self, key: str, value: Any, ttl: Optional[float]) -> None: ...

    def put_if_absent(self, key: str, value: Any, ttl: Optional[float]) -> bool: ...

    def get(self, key: str) -> Optional[Any]: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """
    Process-local store guarded by a lock.

    ``ttl`` is in seconds. Expired entries are swept on every write, so
    keys nobody reads again do not accumulate. Only valid for a
    single-instance deployment; run several workers and they each see
    their own copy.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _expired(self, evict_at: Optional[float], now: float) -> bool:
        return evict_at is not None and now >= evict_at

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        for key in [k for k, (_, evict_at) in self._data.items() if self._expired(evict_at, now)]:
            del self._data[key]

    def _evict_at(self, ttl: Optional[float], now: float) -> Optional[float]:
        return None if ttl is None else now + ttl

    def put(self, key: str, value: Any, ttl: Optional[float]) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._data[key] = (value, self._evict_at(ttl, now))

    def put_if_absent(self, key: str, value: Any, ttl: Optional[float]) -> bool:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            if key in self._data:
                return False
            self._data[key] = (value, self._evict_at(ttl, now))
            return True

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, evict_at = item
            if self._expired(evict_at, self._clock()):
                del self._data[key]
                return None
            return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
