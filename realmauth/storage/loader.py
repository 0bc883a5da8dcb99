from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

from realmauth.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 600


class Loader(Generic[T]):
    """Memoizing fetch-or-load cache with a fixed TTL.

    ``load`` returns the cached value for a key while it is fresh, otherwise it
    calls ``fetch`` and caches a non-None result. ``None`` from ``fetch`` means
    "no such value": it counts as a miss and is not cached, so the next call
    fetches again.

    A single lock guards the whole loader, including the fetch itself. Only
    one fetch-or-populate runs at a time across all keys; under load this is a
    serialization point in front of the storage backend.
    """

    def __init__(
        self,
        fetch: Callable[[str], Optional[T]],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        name: str = "loader",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[str, Tuple[T, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._errors = 0

    def load(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                value, expires_at = entry
                if expires_at > self._clock():
                    self._hits += 1
                    return value
                self._entries.pop(key, None)

            try:
                value = self._fetch(key)
            except Exception:
                self._errors += 1
                # keys of the token cache are credentials, so they are not logged
                logger.warning("loader_fetch_failed", loader=self.name)
                raise
            self._misses += 1
            if value is not None:
                self._entries[key] = (value, self._clock() + self.ttl_seconds)
            return value

    def invalidate(self, key: str) -> None:
        """Remove ``key`` from the cache; does nothing if it is not cached."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and entry[1] > self._clock()

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    @property
    def errors(self) -> int:
        return self._errors

    def ratio(self) -> float:
        total = self._hits + self._misses
        if total == 0:
            return 0.0
        return self._hits / total

    def stats(self) -> str:
        return f"{self._hits},{self._misses},{self._errors}"

    def snapshot(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "hits": self._hits,
            "misses": self._misses,
            "errors": self._errors,
            "ratio": self.ratio(),
            "size": len(self._entries),
        }
