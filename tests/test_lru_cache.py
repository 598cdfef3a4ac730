import pytest

from kiplsm.kernel import CacheSizeOverflowError, ShardingNotAlignError
from kiplsm.lru_cache import LruCache, ShardingLruCache


def test_lru_cache():
    lru = LruCache(3)
    assert lru.is_empty()
    assert lru.put(1, 10) is None
    assert lru.put(2, 20) is None
    assert lru.put(3, 30) is None
    assert lru.get(1) == 10
    assert lru.put(2, 200) == 20
    assert lru.put(4, 40) is None
    assert lru.get(2) == 200
    assert lru.get(3) is None

    assert lru.get_or_insert(9, lambda _: 9) == 9

    assert len(lru) == 3
    assert not lru.is_empty()

    expected = {(9, 9), (2, 200), (4, 40)}
    for item in lru:
        expected.remove(item)
    assert expected == set()


def test_sharding_cache():
    lru = ShardingLruCache(4, 2)
    assert lru.is_empty()
    assert lru.put(1, 10) is None
    assert lru.get(1) == 10
    assert not lru.is_empty()
    assert lru.get_or_insert(9, lambda _: 9) == 9


def test_zero_capacity_rejected():
    with pytest.raises(CacheSizeOverflowError):
        LruCache(0)


def test_sharding_not_aligned():
    with pytest.raises(ShardingNotAlignError):
        ShardingLruCache(5, 2)


def test_sharding_zero_capacity_per_shard():
    with pytest.raises(CacheSizeOverflowError):
        ShardingLruCache(0, 2)


def test_remove_returns_value():
    lru = LruCache(2)
    lru.put("a", 1)
    assert lru.remove("a") == 1
    assert lru.remove("a") is None
    assert lru.is_empty()


def test_factory_error_leaves_cache_unchanged():
    lru = LruCache(2)

    def failing(_key):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        lru.get_or_insert("x", failing)
    assert len(lru) == 0


def test_get_or_insert_uses_cached_value():
    lru = LruCache(2)
    lru.put("k", "cached")
    assert lru.get_or_insert("k", lambda _: "fresh") == "cached"


def test_sharding_eviction_within_one_shard():
    lru = ShardingLruCache(4, 2, hasher=lambda _key: 0)
    lru.put(1, 10)
    lru.put(2, 20)
    lru.put(3, 30)
    assert lru.get(1) is None
    assert lru.get(2) == 20
    assert lru.get(3) == 30
    assert lru.remove(2) == 20
    assert lru.get(2) is None