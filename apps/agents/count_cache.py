from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from .chain import TOTAL_AGENTS, ChainReader, ContractMethod
from .errors import UpstreamError

LOGGER = logging.getLogger('agents.count_cache')

DEFAULT_TTL_SECONDS = 3 * 60


@dataclass(frozen=True)
class CountCacheEntry:
    value: int
    observed_at: float


class CountCache:
    """Per-registry memo of the total agent count.

    Concurrent misses may each read the chain; the last writer wins. The lock
    only guards the map and is never held across an await.
    """

    def __init__(
        self,
        reader: ChainReader,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        method: ContractMethod = TOTAL_AGENTS
    ) -> None:
        self.reader = reader
        self.ttl_seconds = ttl_seconds
        self.method = method
        self._clock = clock
        self._entries: dict[str, CountCacheEntry] = {}
        self._lock = threading.Lock()

    def _cached(self, key: str, now: float) -> int | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None and now - entry.observed_at < self.ttl_seconds:
            return entry.value
        return None

    async def get_total_count(self, registry: str) -> int:
        key = registry.strip().lower()
        now = self._clock()
        cached = self._cached(key, now)
        if cached is not None:
            return cached

        try:
            raw = await self.reader.read_one(registry, self.method)
        except UpstreamError:
            raise
        except Exception as exc:
            raise UpstreamError(self.method.name, registry, str(exc) or type(exc).__name__) from exc

        try:
            value = int(raw)
        except (TypeError, ValueError) as exc:
            raise UpstreamError(self.method.name, registry, f'non-integer count {raw!r}') from exc

        with self._lock:
            self._entries[key] = CountCacheEntry(value=value, observed_at=now)
        LOGGER.debug('refreshed total count registry=%s total=%s', registry, value)
        return value

    def invalidate(self, registry: str | None = None) -> None:
        with self._lock:
            if registry is None:
                self._entries.clear()
            else:
                self._entries.pop(registry.strip().lower(), None)
