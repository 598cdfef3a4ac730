import random

import pytest

from kiplsm.bloom_filter import BitVector, BloomFilter, FixedHasher


def test_bit_vector_serialization():
    vector = BitVector(100)
    vector.set_bit(99, True)
    vector = BitVector.from_raw(vector.to_raw())
    for i in range(98):
        assert not vector.get_bit(i)
    assert vector.get_bit(99)
    assert len(vector) == 100


def test_bit_vector_simple():
    vector = BitVector(100)
    vector.set_bit(99, True)
    for i in range(98):
        assert not vector.get_bit(i)
    assert vector.get_bit(99)


def test_bit_vector_clear_bit():
    vector = BitVector(16)
    vector.set_bit(3, True)
    vector.set_bit(4, True)
    vector.set_bit(3, False)
    assert not vector.get_bit(3)
    assert vector.get_bit(4)


def test_bit_vector_raw_layout():
    vector = BitVector(9)
    vector.set_bit(0, True)
    vector.set_bit(8, True)
    assert vector.to_raw() == bytes([9, 0, 0, 0, 0, 0, 0, 0, 1, 1])


def test_bit_vector_empty_and_bounds():
    assert BitVector(0).is_empty()
    assert not BitVector(1).is_empty()
    with pytest.raises(IndexError):
        BitVector(8).get_bit(8)
    with pytest.raises(IndexError):
        BitVector(8).set_bit(-1, True)


def test_fixed_hasher_deterministic_and_round_trip():
    a, b = FixedHasher(42), FixedHasher(42)
    a.write(b"hello")
    b.write(b"hello")
    assert a.finish() == b.finish()
    restored = FixedHasher.from_raw(a.to_raw())
    assert restored.finish() == a.finish()
    other = FixedHasher(42)
    other.write(b"world")
    assert other.finish() != a.finish()


def test_bloom_filter_serialization():
    bf = BloomFilter(100, 0.01)
    bf.insert(1)
    bf = BloomFilter.from_raw(bf.to_raw())
    assert bf.contains(1)
    assert not bf.contains(2)


def test_bloom_filter_simple():
    bf = BloomFilter(100, 0.01)
    bf.insert(1)
    assert bf.contains(1)
    assert not bf.contains(2)


def test_bloom_filter_bytes_keys():
    bf = BloomFilter(10, 0.01)
    keys = [b"alpha", b"beta", b"gamma"]
    for key in keys:
        bf.insert(key)
    assert all(key in bf for key in keys)
    assert BloomFilter.from_raw(bf.to_raw()).contains(b"beta")


def test_bloom_filter_rejects_unhashable_type():
    bf = BloomFilter(10, 0.01)
    with pytest.raises(TypeError):
        bf.insert(1.5)


def test_bloom_filter_fpr():
    cnt = 500000
    rate = 0.01
    bf = BloomFilter(cnt, rate)
    seen = set()
    rng = random.Random(2024)
    for _ in range(cnt):
        v = rng.getrandbits(32) - 2**31
        seen.add(v)
        bf.insert(v)

    false_positives = 0
    for _ in range(cnt):
        v = rng.getrandbits(32) - 2**31
        in_filter = bf.contains(v)
        in_set = v in seen
        assert not (in_set and not in_filter)
        if in_filter and not in_set:
            false_positives += 1

    actual_rate = false_positives / cnt
    assert actual_rate > rate - 0.001
    assert actual_rate < rate + 0.001