"""
Time-bounded cache with in-flight request coalescing.

Used for the expensive intelligence queries (category ranking and caption
evidence). A value cache holds finished results until they expire; a separate
map holds the future of every computation still in progress, so a second
caller for the same key awaits that future instead of running the query again.

Usage:
    cache = SingleFlightTTLCache("ranking", ttl_seconds=90, max_entries=160)
    ranked = await cache.get_or_compute(key, lambda: store.rank(...))
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


def make_cache_key(*parts: Any) -> str:
    """
    Build a stable string key from mixed parts.

    Dicts are serialized with sorted keys so two equal selections always
    produce the same key regardless of insertion order.
    """
    rendered = []
    for part in parts:
        if isinstance(part, (dict, list, tuple)):
            rendered.append(json.dumps(part, sort_keys=True, default=str, ensure_ascii=False))
        elif part is None:
            rendered.append("-")
        else:
            rendered.append(str(part))
    return "|".join(rendered)


class SingleFlightTTLCache(Generic[V]):
    """
    TTL value cache paired with an in-flight future map.

    Entries are pruned by expiry first; if the cache is still above
    ``max_entries`` the entries closest to expiry are evicted.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            name: Cache name used in log messages
            ttl_seconds: Lifetime of a stored value
            max_entries: Maximum number of stored values after pruning
            clock: Monotonic clock, injectable for tests
        """
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._values: Dict[str, Tuple[float, V]] = {}
        self._inflight: Dict[str, "asyncio.Future[V]"] = {}
        self.hits = 0
        self.misses = 0
        self.coalesced = 0

    def __len__(self) -> int:
        return len(self._values)

    def get(self, key: str) -> Optional[V]:
        """Return a live cached value, or None."""
        entry = self._values.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            self._values.pop(key, None)
            return None
        return value

    def set(self, key: str, value: V) -> None:
        self._values[key] = (self._clock() + self.ttl_seconds, value)
        self._prune()

    def invalidate(self, key: str) -> None:
        self._values.pop(key, None)

    def clear(self) -> None:
        self._values.clear()

    def is_inflight(self, key: str) -> bool:
        return key in self._inflight

    async def get_or_compute(self, key: str, compute: Callable[[], Awaitable[V]]) -> V:
        """
        Return the cached value for key, computing it at most once concurrently.

        Args:
            key: Cache key (see ``make_cache_key``)
            compute: Zero-arg coroutine factory producing the value

        Returns:
            The cached, shared, or freshly computed value

        Raises:
            Whatever ``compute`` raises; concurrent waiters receive the same error
            and nothing is stored.
        """
        cached = self.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            self.coalesced += 1
            # shield: a cancelled waiter must not cancel the shared computation
            return await asyncio.shield(pending)

        self.misses += 1
        future: "asyncio.Future[V]" = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await compute()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # mark retrieved so an error with no waiters is not reported as unhandled
            future.exception()
            raise
        else:
            self.set(key, value)
            future.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)

    def stats(self) -> Dict[str, int]:
        return {
            "size": len(self._values),
            "inflight": len(self._inflight),
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
        }

    def _prune(self) -> None:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._values.items() if expires_at <= now]
        for key in expired:
            del self._values[key]

        overflow = len(self._values) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._values.items(), key=lambda item: item[1][0])[:overflow]
            for key, _ in oldest:
                del self._values[key]
            logger.debug(f"{self.name} cache evicted {overflow} entries (cap {self.max_entries})")
