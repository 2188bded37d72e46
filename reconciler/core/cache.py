"""Time- and size-bounded memoization cache for expensive comparisons."""

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, Optional
import json
import logging
import math
import time

import xxhash

from reconciler.config.models import CacheConfig

logger = logging.getLogger(__name__)

# Share of capacity dropped, oldest first, when the cache overflows.
EVICTION_FRACTION = 0.2

_MISSING = object()


@dataclass
class CacheEntry:
    """Cached value with the time it was stored."""
    value: Any
    timestamp: float


def make_key(*args: Any, **kwargs: Any) -> str:
    """
    Compute a cache key from call arguments.

    Arguments are serialized to JSON and hashed, so lists and enums are
    accepted alongside plain strings and numbers.

    Returns:
        str: Hex digest of the serialized arguments
    """
    payload = json.dumps([args, kwargs], sort_keys=True, default=str)
    return xxhash.xxh64(payload.encode('utf-8')).hexdigest()


class MemoCache:
    """
    Cache of computed values keyed by argument signature.

    An entry is served while ``now - timestamp < ttl``. When an insert grows
    the cache past ``max_size``, the oldest entries by timestamp are evicted
    in one batch of at least ``EVICTION_FRACTION`` of capacity.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = 'cache'
    ):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries kept
            ttl: Time to live of an entry in seconds
            clock: Source of timestamps in seconds
            name: Name used in log messages
        """
        self.max_size = max_size
        self.ttl = ttl
        self.clock = clock
        self.name = name
        self._entries: Dict[str, CacheEntry] = {}

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        name: str = 'cache',
        clock: Callable[[], float] = time.monotonic
    ) -> "MemoCache":
        return cls(max_size=config.max_size, ttl=config.ttl, clock=clock, name=name)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return default

        if self.clock() - entry.timestamp >= self.ttl:
            del self._entries[key]
            return default

        return entry.value

    def set(self, key: str, value: Any) -> None:
        # Re-insert so dict order follows timestamps
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(value=value, timestamp=self.clock())

        if len(self._entries) > self.max_size:
            self._evict()

    def _evict(self) -> None:
        """Drop the oldest entries in one batch."""
        count = max(
            len(self._entries) - self.max_size,
            math.ceil(self.max_size * EVICTION_FRACTION)
        )
        oldest = sorted(self._entries.items(), key=lambda item: item[1].timestamp)[:count]
        for key, _ in oldest:
            del self._entries[key]

        logger.debug(
            f"Evicted {len(oldest)} entries from {self.name} "
            f"({len(self._entries)}/{self.max_size} left)"
        )

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING


def memoize(
    fn: Callable[..., Any],
    cache: Optional[MemoCache] = None,
    max_size: int = 1000,
    ttl: float = 300.0,
    key_generator: Optional[Callable[..., str]] = None
) -> Callable[..., Any]:
    """
    Wrap a function with a memoization cache.

    Args:
        fn: Function to wrap
        cache: Cache to use; a new one is created when omitted
        max_size: Capacity of a newly created cache
        ttl: Time to live of a newly created cache, in seconds
        key_generator: Builds the cache key from the call arguments

    Returns:
        Callable: Wrapped function exposing its cache as ``.cache``
    """
    if cache is None:
        cache = MemoCache(max_size=max_size, ttl=ttl, name=fn.__name__)
    key_for = key_generator or make_key

    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        key = key_for(*args, **kwargs)
        cached = cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        result = fn(*args, **kwargs)
        cache.set(key, result)
        return result

    wrapper.cache = cache
    return wrapper
