# kiplsm

The storage layer of a log-structured merge-tree (LSM) key-value engine.
It provides the on-disk and in-memory pieces such an engine is built from:

- `kiplsm.ss_table.SSTable`: immutable sorted string tables written to a
  single file, with a bloom filter, a prefix-compressed index block and
  LZ4-compressed data blocks, plus `SSTableIter` for forward, backward and
  seek iteration. Blocks are read on demand and kept in a shared
  `ShardingLruCache`.
- `kiplsm.block`: `Block`, `BlockBuilder`, `BlockOptions`, `Entry`, `Value`,
  `Index`, `MetaBlock` and `CompressType`, the block format with
  restart-point prefix compression and a CRC32 check on every block.
- `kiplsm.block_iter.BlockIter`: a bidirectional cursor over a single block.
- `kiplsm.footer.Footer`: the fixed 21-byte table footer.
- `kiplsm.btree_table.BTreeTable`: an in-memory table with the same
  interface, and its iterator `BTreeTableIter`.
- `kiplsm.scope.Scope` and `Bound`: key ranges of tables, with overlap tests
  and seek-miss counting.
- `kiplsm.table`: the `Table` interface, `TableMeta`, `TableType`, `Seek`
  and `collect_gen`.
- `kiplsm.version_edit`: `NewFile` / `DeleteFile` edits, `EditType` and
  `VersionMeta` statistics.
- `kiplsm.bloom_filter`: `BloomFilter`, `BitVector` and `FixedHasher`.
- `kiplsm.lru_cache`: `LruCache` and the thread-safe `ShardingLruCache`.
- `kiplsm.kernel`: the `KernelError` hierarchy, `CommandData`, the abstract
  `Storage` interface, `sorted_gen_list` and `lock_or_time_out`.

## Installation

```
pip install kiplsm
```

## Example

```python
import tempfile
from pathlib import Path

from kiplsm.block import BlockOptions
from kiplsm.lru_cache import ShardingLruCache
from kiplsm.ss_table import SSTable
from kiplsm.table import Seek

cache = ShardingLruCache(1024, 16)
data = [(b"apple", b"red"), (b"banana", None), (b"cherry", b"dark")]

with tempfile.TemporaryDirectory() as directory:
    path = Path(directory) / "1.sst"

    with SSTable.create(path, cache, 1, data, 1, BlockOptions(), 0.05) as table:
        print(table.query(b"apple"))     # (b'apple', b'red')
        print(table.query(b"durian"))    # None

        it = table.iter()
        it.seek(Seek.backward(b"b"))
        print(it.try_next())             # (b'banana', None)

    with SSTable.load_from_file(path, cache) as reopened:
        print(len(reopened))             # 3
        print(list(reopened.iter()))
```

`SSTable.create` writes the table to exactly the path it is given; the
parent directory must exist. `SSTable.load_from_file` takes the table's
generation from the file name, so the name must start with an integer
(`1.sst` above). A value of `None` marks a deleted key (a tombstone). Keys
are kept in byte order; the data handed to `SSTable.create` must already be
sorted, and `BlockBuilder.add` raises `ValueError` if it is not.

## What this package does not do

This is a library of parts, not a database. It contains no class that
implements the `Storage` interface, so there is nothing to open a data
directory and `set`, `get` or `remove` keys. There is no write-ahead log,
no memtable, no compaction, no version manager that applies `NewFile` /
`DeleteFile` edits or persists them, and no network server, client or
command-line program.

## Running the tests

```
pip install -e ".[test]"
pytest
```