"""Table interface, seek positions and per-table statistics."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

KeyValue = tuple[bytes, Optional[bytes]]


class TableType(enum.Enum):
    SORTED_STRING = "sorted_string"
    BTREE = "btree"


class SeekKind(enum.Enum):
    FIRST = "first"
    LAST = "last"
    BACKWARD = "backward"


@dataclass(frozen=True)
class Seek:
    """Position an iterator seeks to; BACKWARD carries the key to seek from."""

    kind: SeekKind
    key: Optional[bytes] = None

    @classmethod
    def first(cls) -> "Seek":
        return cls(SeekKind.FIRST)

    @classmethod
    def last(cls) -> "Seek":
        return cls(SeekKind.LAST)

    @classmethod
    def backward(cls, key: bytes) -> "Seek":
        return cls(SeekKind.BACKWARD, bytes(key))


class Table(abc.ABC):
    """A sorted, immutable set of key-value pairs at some level of the tree."""

    @abc.abstractmethod
    def query(self, key: bytes) -> Optional[KeyValue]:
        """Return the stored pair for ``key`` or None."""

    @abc.abstractmethod
    def __len__(self) -> int:
        """Number of entries in the table."""

    @abc.abstractmethod
    def size_of_disk(self) -> int:
        """Bytes the table occupies on disk."""

    @abc.abstractmethod
    def gen(self) -> int:
        """Generation number identifying the table."""

    @abc.abstractmethod
    def level(self) -> int:
        """Level of the tree the table belongs to."""

    @abc.abstractmethod
    def iter(self):
        """Return a seekable iterator with ``try_next``, ``is_valid`` and ``seek``."""


@dataclass(frozen=True)
class TableMeta:
    """Size on disk and entry count of one table or a group of tables."""

    size_of_disk: int = 0
    len: int = 0

    @classmethod
    def fusion(cls, metas: Iterable["TableMeta"]) -> "TableMeta":
        size = 0
        count = 0
        for meta in metas:
            size += meta.size_of_disk
            count += meta.len
        return cls(size_of_disk=size, len=count)

    @classmethod
    def from_table(cls, table: Table) -> "TableMeta":
        return cls(size_of_disk=table.size_of_disk(), len=len(table))

    @classmethod
    def from_tables(cls, tables: Iterable[Table]) -> "TableMeta":
        """Sum the statistics of ``tables``, counting each generation once."""
        unique = {}
        for table in tables:
            unique.setdefault(table.gen(), table)
        return cls.fusion(cls.from_table(table) for table in unique.values())


def collect_gen(tables: Sequence[Table]) -> tuple[list[int], TableMeta]:
    """Return the distinct generations of ``tables`` in order, with their combined statistics."""
    meta = TableMeta.from_tables(tables)
    gens = list(dict.fromkeys(table.gen() for table in tables))
    return gens, meta