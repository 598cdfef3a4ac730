"""Sorted-string tables: immutable on-disk tables of data blocks, an index block and a meta block."""

from __future__ import annotations

import dataclasses
import os
import threading
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Optional, Union

from kiplsm.block import (
    Block,
    BlockBuilder,
    BlockOptions,
    CompressType,
    Index,
    MetaBlock,
    Value,
)
from kiplsm.block_iter import BlockIter
from kiplsm.bloom_filter import BloomFilter
from kiplsm.footer import TABLE_FOOTER_SIZE, Footer
from kiplsm.kernel import DataEmptyError
from kiplsm.lru_cache import ShardingLruCache
from kiplsm.table import KeyValue, Seek, SeekKind, Table

PathLike = Union[str, "os.PathLike[str]"]

# Cache keys are (gen, None) for a table's index block and (gen, Index) for a data block.
BlockCache = ShardingLruCache


def _gen_from_path(path: Path) -> int:
    try:
        return int(path.stem)
    except ValueError:
        raise ValueError(f"table file name {path.name!r} does not start with a generation") from None


class SSTable(Table):
    """A table file; only its footer and meta block are kept in memory.

    Data and index blocks are loaded on demand and kept in a shared block cache.
    """

    def __init__(
        self,
        footer: Footer,
        reader: BinaryIO,
        gen: int,
        meta: MetaBlock,
        cache: BlockCache,
    ) -> None:
        self._footer = footer
        self._reader = reader
        self._lock = threading.Lock()
        self._gen = gen
        self._meta = meta
        self._cache = cache

    @classmethod
    def create(
        cls,
        path: PathLike,
        cache: BlockCache,
        gen: int,
        data: Iterable[KeyValue],
        level: int,
        options: BlockOptions,
        desired_error_prob: float,
    ) -> "SSTable":
        """Write sorted ``data`` to ``path`` as a new table and open it."""
        pairs = [(bytes(key), value) for key, value in data]
        if not pairs:
            raise DataEmptyError("cannot create a table from no data")
        bloom = BloomFilter(len(pairs), desired_error_prob)
        builder = BlockBuilder(dataclasses.replace(options, compress_type=CompressType.LZ4))
        for key, value in pairs:
            bloom.insert(key)
            builder.add(key, Value.from_bytes(value))

        meta = MetaBlock(
            filter=bloom,
            len=len(pairs),
            index_restart_interval=options.index_restart_interval,
            data_restart_interval=options.data_restart_interval,
        )
        blocks, data_len, index_len = builder.build()
        meta_raw = meta.to_raw()
        body = blocks + meta_raw
        footer = Footer(
            level=level,
            index_offset=data_len,
            index_len=index_len,
            meta_offset=data_len + index_len,
            meta_len=len(meta_raw),
            size_of_disk=len(body) + TABLE_FOOTER_SIZE,
        )

        path = Path(path)
        with path.open("wb") as writer:
            writer.write(body)
            writer.write(footer.to_raw())
            writer.flush()
            os.fsync(writer.fileno())

        return cls(footer, path.open("rb"), gen, meta, cache)

    @classmethod
    def load_from_file(cls, path: PathLike, cache: BlockCache) -> "SSTable":
        """Open an existing table file; its generation is taken from the file name."""
        path = Path(path)
        gen = _gen_from_path(path)
        reader = path.open("rb")
        try:
            footer = Footer.read_from_file(reader)
            reader.seek(footer.meta_offset)
            raw = reader.read(footer.meta_len)
            if len(raw) != footer.meta_len:
                raise EOFError(f"meta block needs {footer.meta_len} bytes, got {len(raw)}")
            meta = MetaBlock.from_raw(raw)
        except BaseException:
            reader.close()
            raise
        return cls(footer, reader, gen, meta, cache)

    def _loading_block(
        self, offset: int, length: int, compress_type: CompressType, restart_interval: int, item_type
    ) -> Block:
        with self._lock:
            self._reader.seek(offset)
            raw = self._reader.read(length)
        if len(raw) != length:
            raise EOFError(f"block needs {length} bytes, got {len(raw)}")
        return Block.decode(raw, compress_type, restart_interval, item_type)

    def data_block(self, index: Index) -> Block:
        """Read the data block at ``index`` from disk."""
        return self._loading_block(
            index.offset,
            index.length,
            CompressType.LZ4,
            self._meta.data_restart_interval,
            Value,
        )

    def index_block(self) -> Block:
        """Return the index block, loading it into the cache if needed."""
        return self._cache.get_or_insert(
            (self._gen, None),
            lambda _key: self._loading_block(
                self._footer.index_offset,
                self._footer.index_len,
                CompressType.NONE,
                self._meta.index_restart_interval,
                Index,
            ),
        )

    def _cached_data_block(self, index: Index) -> Block:
        return self._cache.get_or_insert((self._gen, index), lambda key: self.data_block(key[1]))

    def query(self, key: bytes) -> Optional[KeyValue]:
        key = bytes(key)
        if not self._meta.filter.contains(key):
            return None
        index = self.index_block().find_with_upper(key)
        value, found = self._cached_data_block(index).find(key)
        return (key, value) if found else None

    def __len__(self) -> int:
        return self._meta.len

    def size_of_disk(self) -> int:
        return self._footer.size_of_disk

    def gen(self) -> int:
        return self._gen

    def level(self) -> int:
        return self._footer.level

    def iter(self) -> "SSTableIter":
        return SSTableIter(self)

    def close(self) -> None:
        with self._lock:
            self._reader.close()

    def __enter__(self) -> "SSTable":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class SSTableIter:
    """Bidirectional, seekable iterator over all pairs of an ``SSTable``."""

    def __init__(self, table: SSTable) -> None:
        self._table = table
        self._index_iter: BlockIter[Index] = BlockIter(table.index_block())
        first = self._index_iter.try_next()
        if first is None:
            raise DataEmptyError("table has no data blocks")
        self._data_iter: BlockIter[Value] = self._data_iter_init(first[1])

    def _data_iter_init(self, index: Index) -> BlockIter[Value]:
        return BlockIter(self._table._cached_data_block(index))

    def _data_iter_seek(self, seek: Seek, index: Index) -> None:
        self._data_iter = self._data_iter_init(index)
        self._data_iter.seek(seek)

    @staticmethod
    def _pair(item) -> Optional[KeyValue]:
        if item is None:
            return None
        key, value = item
        return key, value.data

    def try_next(self) -> Optional[KeyValue]:
        item = self._data_iter.try_next()
        if item is None:
            block = self._index_iter.try_next()
            if block is None:
                return None
            self._data_iter_seek(Seek.first(), block[1])
            item = self._data_iter.try_next()
        return self._pair(item)

    def try_prev(self) -> Optional[KeyValue]:
        item = self._data_iter.try_prev()
        if item is None:
            block = self._index_iter.try_prev()
            if block is None:
                return None
            self._data_iter_seek(Seek.last(), block[1])
            item = self._data_iter.try_prev()
        return self._pair(item)

    def is_valid(self) -> bool:
        return self._data_iter.is_valid()

    def seek(self, seek: Seek) -> None:
        self._index_iter.seek(seek)
        block = self._index_iter.try_next()
        if block is not None:
            self._data_iter_seek(seek, block[1])
        if seek.kind is SeekKind.LAST:
            self._data_iter.seek(Seek.last())

    def __iter__(self) -> Iterator[KeyValue]:
        while True:
            item = self.try_next()
            if item is None:
                return
            yield item