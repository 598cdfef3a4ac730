"""Least-recently-used caches: a single cache and a thread-safe sharded one."""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Generic, Hashable, Iterator, Optional, TypeVar

from kiplsm.kernel import CacheSizeOverflowError, ShardingNotAlignError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


class LruCache(Generic[K, V]):
    """Bounded mapping that evicts the least recently used entry when full."""

    def __init__(self, cap: int) -> None:
        if cap < 1:
            raise CacheSizeOverflowError(f"cache capacity must be at least 1, got {cap}")
        self._cap = cap
        # Ordered from least to most recently used.
        self._entries: OrderedDict[K, V] = OrderedDict()

    def _insert(self, key: K, value: V) -> None:
        if self._entries and len(self._entries) >= self._cap:
            self._entries.popitem(last=False)
        self._entries[key] = value

    def put(self, key: K, value: V) -> Optional[V]:
        """Store ``value`` under ``key`` and return the value it replaced, if any."""
        old = self._entries.pop(key, _MISSING)
        self._insert(key, value)
        return None if old is _MISSING else old

    def get(self, key: K) -> Optional[V]:
        """Return the value under ``key`` and mark it most recently used."""
        value = self._entries.get(key, _MISSING)
        if value is _MISSING:
            return None
        self._entries.move_to_end(key)
        return value

    def remove(self, key: K) -> Optional[V]:
        """Drop ``key`` and return its value, or None if it was absent."""
        value = self._entries.pop(key, _MISSING)
        return None if value is _MISSING else value

    def get_or_insert(self, key: K, factory: Callable[[K], V]) -> V:
        """Return the cached value or build it with ``factory(key)`` and cache it.

        Exceptions raised by ``factory`` propagate and leave the cache unchanged.
        """
        value = self._entries.get(key, _MISSING)
        if value is not _MISSING:
            self._entries.move_to_end(key)
            return value
        value = factory(key)
        self._insert(key, value)
        return value

    def __len__(self) -> int:
        return len(self._entries)

    def is_empty(self) -> bool:
        return not self._entries

    def __iter__(self) -> Iterator[tuple[K, V]]:
        """Yield ``(key, value)`` pairs from least to most recently used."""
        yield from list(self._entries.items())


@dataclass
class _Shard(Generic[K, V]):
    cache: LruCache[K, V]
    lock: threading.RLock = field(default_factory=threading.RLock)


class ShardingLruCache(Generic[K, V]):
    """LRU cache split into independently locked shards chosen by key hash."""

    def __init__(
        self,
        cap: int,
        sharding_size: int,
        hasher: Callable[[K], int] = hash,
    ) -> None:
        if sharding_size < 1:
            raise ValueError(f"sharding size must be at least 1, got {sharding_size}")
        if cap % sharding_size != 0:
            raise ShardingNotAlignError(
                f"capacity {cap} is not a multiple of {sharding_size} shards"
            )
        shard_cap = cap // sharding_size
        self._shards = [_Shard(LruCache(shard_cap)) for _ in range(sharding_size)]
        self._hasher = hasher

    def _shard(self, key: K) -> _Shard[K, V]:
        return self._shards[self._hasher(key) % len(self._shards)]

    def put(self, key: K, value: V) -> Optional[V]:
        shard = self._shard(key)
        with shard.lock:
            return shard.cache.put(key, value)

    def get(self, key: K) -> Optional[V]:
        shard = self._shard(key)
        with shard.lock:
            return shard.cache.get(key)

    def remove(self, key: K) -> Optional[V]:
        shard = self._shard(key)
        with shard.lock:
            return shard.cache.remove(key)

    def is_empty(self) -> bool:
        for shard in self._shards:
            with shard.lock:
                if not shard.cache.is_empty():
                    return False
        return True

    def get_or_insert(self, key: K, factory: Callable[[K], V]) -> V:
        shard = self._shard(key)
        with shard.lock:
            return shard.cache.get_or_insert(key, factory)