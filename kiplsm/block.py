"""Blocks: the smallest storage unit of a sorted-string table, with prefix-compressed keys."""

from __future__ import annotations

import enum
import io
import struct
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO, Generic, Optional, Protocol, Sequence, TypeVar

import lz4.frame

from kiplsm.bloom_filter import BloomFilter
from kiplsm.kernel import CrcMismatchError, DataEmptyError

DEFAULT_BLOCK_SIZE = 4 * 1024
# Fixed restart intervals keep binary search over entries simple.
DEFAULT_DATA_RESTART_INTERVAL = 16
DEFAULT_INDEX_RESTART_INTERVAL = 2

CRC_SIZE = 4
_U32_MAX = (1 << 32) - 1
_CRC = struct.Struct("<I")
_META_HEADER = struct.Struct("<III")
_LZ4_LEVEL = 4


def _write_varint(value: int) -> bytes:
    if not 0 <= value <= _U32_MAX:
        raise OverflowError(f"{value} does not fit in an unsigned 32-bit varint")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(reader: BinaryIO) -> int:
    result = 0
    shift = 0
    while True:
        chunk = reader.read(1)
        if not chunk:
            raise EOFError("unexpected end of data while reading a varint")
        byte = chunk[0]
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            break
        shift += 7
        if shift > 28:
            raise ValueError("varint is too long for an unsigned 32-bit value")
    if result > _U32_MAX:
        raise ValueError("varint overflows an unsigned 32-bit value")
    return result


def _read_exact(reader: BinaryIO, size: int) -> bytes:
    data = reader.read(size)
    if len(data) != size:
        raise EOFError(f"expected {size} bytes, got {len(data)}")
    return data


class BlockItem(Protocol):
    def encode(self) -> bytes: ...

    @classmethod
    def decode(cls, reader: BinaryIO) -> "BlockItem": ...


T = TypeVar("T")


@dataclass(frozen=True)
class Value:
    """Value of a key-value pair; ``data`` is None for a deletion."""

    value_len: int
    data: Optional[bytes]

    @classmethod
    def from_bytes(cls, data: Optional[bytes]) -> "Value":
        if data is None:
            return cls(0, None)
        data = bytes(data)
        return cls(len(data), data)

    def encode(self) -> bytes:
        return _write_varint(self.value_len) + (self.data or b"")

    @classmethod
    def decode(cls, reader: BinaryIO) -> "Value":
        value_len = _read_varint(reader)
        data = _read_exact(reader, value_len) if value_len > 0 else None
        return cls(value_len, data)


@dataclass(frozen=True)
class Index:
    """Location of a data block inside a table file."""

    offset: int
    length: int

    def encode(self) -> bytes:
        return _write_varint(self.offset) + _write_varint(self.length)

    @classmethod
    def decode(cls, reader: BinaryIO) -> "Index":
        offset = _read_varint(reader)
        length = _read_varint(reader)
        return cls(offset, length)


@dataclass(frozen=True)
class Entry(Generic[T]):
    """A key stored without the prefix it shares with its restart entry."""

    shared_len: int
    unshared_len: int
    key: bytes
    item: T

    def encode(self) -> bytes:
        return (
            _write_varint(self.unshared_len)
            + _write_varint(self.shared_len)
            + self.key
            + self.item.encode()  # type: ignore[attr-defined]
        )

    @classmethod
    def decode(cls, reader: BinaryIO, item_type) -> "Entry":
        unshared_len = _read_varint(reader)
        shared_len = _read_varint(reader)
        key = _read_exact(reader, unshared_len)
        return cls(shared_len, unshared_len, key, item_type.decode(reader))

    @classmethod
    def batch_decode(cls, data: bytes, item_type) -> list["Entry"]:
        """Decode consecutive entries until ``data`` is used up."""
        reader = io.BytesIO(bytes(data))
        total = len(data)
        entries = []
        while reader.tell() < total:
            entries.append(cls.decode(reader, item_type))
        return entries


class CompressType(enum.Enum):
    NONE = "none"
    LZ4 = "lz4"


@dataclass
class MetaBlock:
    """Statistics and bloom filter stored with each table."""

    filter: BloomFilter
    len: int
    index_restart_interval: int
    data_restart_interval: int

    def to_raw(self) -> bytes:
        return (
            _META_HEADER.pack(self.len, self.index_restart_interval, self.data_restart_interval)
            + self.filter.to_raw()
        )

    @classmethod
    def from_raw(cls, data: bytes) -> "MetaBlock":
        if len(data) < _META_HEADER.size:
            raise ValueError(f"meta block needs at least {_META_HEADER.size} bytes")
        length, index_interval, data_interval = _META_HEADER.unpack_from(data)
        bloom = BloomFilter.from_raw(bytes(data[_META_HEADER.size :]))
        return cls(bloom, length, index_interval, data_interval)


@dataclass(frozen=True)
class BlockOptions:
    block_size: int = DEFAULT_BLOCK_SIZE
    compress_type: CompressType = CompressType.NONE
    data_restart_interval: int = DEFAULT_DATA_RESTART_INTERVAL
    index_restart_interval: int = DEFAULT_INDEX_RESTART_INTERVAL


def _longest_shared_len(keys: Sequence[bytes]) -> int:
    if not keys:
        return 0
    shortest = min(keys, key=len)
    for position, byte in enumerate(shortest):
        if any(key[position] != byte for key in keys):
            return position
    return len(shortest)


class Block(Generic[T]):
    """Sorted entries grouped by restart points for prefix compression."""

    def __init__(self, restart_interval: int, entries: Sequence[Entry]) -> None:
        if restart_interval < 1:
            raise ValueError("restart interval must be at least 1")
        self._restart_interval = restart_interval
        self._entries = list(entries)
        self._full_keys = [
            self.shared_key_prefix(index, entry.shared_len) + entry.key
            if entry.shared_len
            else entry.key
            for index, entry in enumerate(self._entries)
        ]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Block):
            return NotImplemented
        return (
            self._restart_interval == other._restart_interval
            and self._entries == other._entries
        )

    def __repr__(self) -> str:
        return f"Block(restart_interval={self._restart_interval}, entries={len(self._entries)})"

    @property
    def restart_interval(self) -> int:
        return self._restart_interval

    @classmethod
    def build(cls, key_values: Sequence[tuple[bytes, T]], restart_interval: int) -> "Block[T]":
        """Create a block from sorted ``(key, item)`` pairs, compressing key prefixes."""
        if restart_interval < 1:
            raise ValueError("restart interval must be at least 1")
        keys = [bytes(key) for key, _ in key_values]
        group_shared = [
            _longest_shared_len(keys[start : start + restart_interval])
            for start in range(0, len(keys), restart_interval)
        ]
        entries = []
        for index, (key, (_, item)) in enumerate(zip(keys, key_values)):
            shared = 0 if index % restart_interval == 0 else group_shared[index // restart_interval]
            entries.append(Entry(shared, len(key) - shared, key[shared:], item))
        return cls(restart_interval, entries)

    def find(self, key: bytes) -> tuple[Optional[bytes], bool]:
        """Return the value stored under ``key`` and whether the key exists."""
        index, found = self.binary_search(key)
        if not found:
            return None, False
        return self._entries[index].item.data, True  # type: ignore[attr-defined]

    def entry_len(self) -> int:
        return len(self._entries)

    def shared_key_prefix(self, index: int, shared_len: int) -> bytes:
        """The first ``shared_len`` bytes of the restart entry that ``index`` belongs to."""
        restart = index - index % self._restart_interval
        return self._entries[restart].key[:shared_len]

    def get_entry(self, index: int) -> Entry[T]:
        return self._entries[index]

    def restart_shared_len(self, index: int) -> int:
        """Shared prefix length of the restart group that ``index`` belongs to."""
        if index % self._restart_interval != 0:
            return self._entries[index].shared_len
        if index + 1 < len(self._entries):
            return self._entries[index + 1].shared_len
        return 0

    def find_with_upper(self, key: bytes) -> T:
        """Item of the entry with ``key`` or the nearest larger key, else the last entry."""
        if not self._entries:
            raise DataEmptyError("block has no entries")
        index, found = self.binary_search(key)
        if not found:
            index = min(len(self._entries) - 1, index)
        return self._entries[index].item

    def binary_search(self, key: bytes) -> tuple[int, bool]:
        """Return ``(index, True)`` if ``key`` is present, else ``(insertion point, False)``."""
        key = bytes(key)
        low, high = 0, len(self._full_keys)
        while low < high:
            mid = (low + high) // 2
            current = self._full_keys[mid]
            if current < key:
                low = mid + 1
            elif current > key:
                high = mid
            else:
                return mid, True
        return low, False

    def encode(self, compress_type: CompressType) -> bytes:
        raw = self.to_raw()
        if compress_type is CompressType.LZ4:
            return lz4.frame.compress(raw, compression_level=_LZ4_LEVEL)
        return raw

    @classmethod
    def decode(
        cls, data: bytes, compress_type: CompressType, restart_interval: int, item_type
    ) -> "Block":
        if compress_type is CompressType.LZ4:
            data = lz4.frame.decompress(bytes(data))
        return cls.from_raw(data, restart_interval, item_type)

    def to_raw(self) -> bytes:
        """Serialise the entries followed by their CRC32."""
        body = b"".join(entry.encode() for entry in self._entries)
        return body + _CRC.pack(zlib.crc32(body))

    @classmethod
    def from_raw(cls, data: bytes, restart_interval: int, item_type) -> "Block":
        data = bytes(data)
        if not data:
            raise DataEmptyError("block data is empty")
        if len(data) < CRC_SIZE:
            raise CrcMismatchError("block data is shorter than its checksum")
        body, (crc,) = data[:-CRC_SIZE], _CRC.unpack(data[-CRC_SIZE:])
        if zlib.crc32(body) != crc:
            raise CrcMismatchError("block checksum does not match its data")
        return cls(restart_interval, Entry.batch_decode(body, item_type))


@dataclass
class _BlockBuf:
    bytes_size: int = 0
    key_values: list[tuple[bytes, Value]] = field(default_factory=list)

    def last_key(self) -> Optional[bytes]:
        return self.key_values[-1][0] if self.key_values else None


class BlockBuilder:
    """Collects sorted key-value pairs and lays them out as data blocks plus an index block."""

    def __init__(self, options: Optional[BlockOptions] = None) -> None:
        self._options = options or BlockOptions()
        self._len = 0
        self._buf = _BlockBuf()
        self._blocks: list[tuple[Block[Value], bytes]] = []

    def __len__(self) -> int:
        return self._len

    def add(self, key: bytes, value: Value) -> None:
        """Append a pair; keys must arrive in strictly increasing order."""
        key = bytes(key)
        last = self._buf.last_key()
        if last is not None and not last < key:
            raise ValueError("keys must be added in strictly increasing order")
        self._buf.bytes_size += len(key) + len(value.data or b"")
        self._buf.key_values.append((key, value))
        self._len += 1
        if self._buf.bytes_size >= self._options.block_size:
            self._flush()

    def _flush(self) -> None:
        last = self._buf.last_key()
        if last is None:
            return
        pairs = self._buf.key_values
        self._buf = _BlockBuf()
        self._blocks.append(
            (Block.build(pairs, self._options.data_restart_interval), last)
        )

    def build(self) -> tuple[bytes, int, int]:
        """Return the serialised data blocks and index block, with their lengths."""
        self._flush()
        out = bytearray()
        indexes = []
        for block, last_key in self._blocks:
            offset = len(out)
            out += block.encode(self._options.compress_type)
            indexes.append((last_key, Index(offset, len(out) - offset)))
        data_len = len(out)
        out += Block.build(indexes, self._options.index_restart_interval).encode(CompressType.NONE)
        return bytes(out), data_len, len(out) - data_len