"""Bloom filter with serialisable seeded hashers."""

from __future__ import annotations

import hashlib
import math
import random
import struct
from dataclasses import dataclass
from typing import Union

_U64 = struct.Struct("<Q")
_HEADER = struct.Struct("<QQQ")
_MASK64 = (1 << 64) - 1

Element = Union[bytes, bytearray, memoryview, str, int]


def _element_bytes(elem: Element) -> bytes:
    if isinstance(elem, (bytes, bytearray, memoryview)):
        return b"b" + bytes(elem)
    if isinstance(elem, str):
        return b"s" + elem.encode("utf-8")
    if isinstance(elem, int) and not isinstance(elem, bool):
        return b"i" + str(elem).encode("ascii")
    raise TypeError(f"cannot hash element of type {type(elem).__name__}")


def _check_length(data: bytes, needed: int, what: str) -> None:
    if len(data) < needed:
        raise ValueError(f"{what} needs at least {needed} bytes, got {len(data)}")


class BitVector:
    """Fixed-length vector of bits packed into bytes."""

    def __init__(self, length: int) -> None:
        if length < 0:
            raise ValueError("length must not be negative")
        self._len = length
        self._groups = bytearray((length + 7) // 8)

    def _locate(self, index: int) -> tuple[int, int]:
        if index < 0:
            raise IndexError("bit index out of range")
        return divmod(index, 8)

    def set_bit(self, index: int, value: bool) -> None:
        byte, bit = self._locate(index)
        if value:
            self._groups[byte] |= 1 << bit
        else:
            self._groups[byte] &= ~(1 << bit) & 0xFF

    def get_bit(self, index: int) -> bool:
        byte, bit = self._locate(index)
        return bool((self._groups[byte] >> bit) & 1)

    def __len__(self) -> int:
        return self._len

    def is_empty(self) -> bool:
        return self._len == 0

    def to_raw(self) -> bytes:
        return _U64.pack(self._len) + bytes(self._groups)

    @classmethod
    def from_raw(cls, data: bytes) -> "BitVector":
        _check_length(data, _U64.size, "bit vector")
        vector = cls.__new__(cls)
        (vector._len,) = _U64.unpack_from(data)
        vector._groups = bytearray(data[_U64.size :])
        return vector


@dataclass
class FixedHasher:
    """Hasher whose state is a single 64-bit seed that each write folds data into."""

    seed: int = 0

    def write(self, data: bytes) -> None:
        digest = hashlib.blake2b(_U64.pack(self.seed) + bytes(data), digest_size=8).digest()
        (self.seed,) = _U64.unpack(digest)

    def finish(self) -> int:
        return self.seed

    def to_raw(self) -> bytes:
        return _U64.pack(self.seed)

    @classmethod
    def from_raw(cls, data: bytes) -> "FixedHasher":
        _check_length(data, _U64.size, "hasher")
        (seed,) = _U64.unpack_from(data)
        return cls(seed)


class BloomFilter:
    """Probabilistic set membership using double hashing g_i(x) = h1(x) + i * h2(x)."""

    def __init__(self, length: int, err_rate: float) -> None:
        self._bits = BitVector(self._optimal_bits_count(length, err_rate))
        self._hash_fn_count = self._optimal_hashers_count(err_rate)
        self._hashers = (
            FixedHasher(random.getrandbits(64)),
            FixedHasher(random.getrandbits(64)),
        )

    @staticmethod
    def _optimal_bits_count(length: int, err_rate: float) -> int:
        # m = -1 * (n * ln ε) / (ln 2)^2
        return max(0, math.ceil(-length * math.log(err_rate) / math.log(2) ** 2))

    @staticmethod
    def _optimal_hashers_count(err_rate: float) -> int:
        # k = -log_2 ε
        return max(0, math.ceil(-math.log2(err_rate)))

    def _make_hash(self, elem: Element) -> tuple[int, int]:
        data = _element_bytes(elem)
        first = FixedHasher(self._hashers[0].seed)
        second = FixedHasher(self._hashers[1].seed)
        first.write(data)
        second.write(data)
        return first.finish(), second.finish()

    def _indexes(self, elem: Element):
        size = len(self._bits)
        if size == 0:
            raise ValueError("bloom filter has no bits")
        h1, h2 = self._make_hash(elem)
        for fn_i in range(self._hash_fn_count):
            yield ((h1 + fn_i * h2) & _MASK64) % size

    def insert(self, elem: Element) -> None:
        for index in self._indexes(elem):
            self._bits.set_bit(index, True)

    def contains(self, elem: Element) -> bool:
        return all(self._bits.get_bit(index) for index in self._indexes(elem))

    def __contains__(self, elem: Element) -> bool:
        return self.contains(elem)

    def to_raw(self) -> bytes:
        return (
            _HEADER.pack(self._hash_fn_count, self._hashers[0].seed, self._hashers[1].seed)
            + self._bits.to_raw()
        )

    @classmethod
    def from_raw(cls, data: bytes) -> "BloomFilter":
        _check_length(data, _HEADER.size, "bloom filter")
        count, seed1, seed2 = _HEADER.unpack_from(data)
        bloom = cls.__new__(cls)
        bloom._hash_fn_count = count
        bloom._hashers = (FixedHasher(seed1), FixedHasher(seed2))
        bloom._bits = BitVector.from_raw(data[_HEADER.size :])
        return bloom