"""In-memory sorted table, used for level-0 data and for recovery from the log."""

from __future__ import annotations

import bisect
from typing import Iterable, Optional

from kiplsm.table import KeyValue, Seek, SeekKind, Table


class BTreeTable(Table):
    """Table kept entirely in memory; later pairs with the same key win."""

    def __init__(self, level: int, gen: int, data: Iterable[KeyValue]) -> None:
        pairs = [(bytes(key), value) for key, value in data]
        self._level = level
        self._gen = gen
        self._len = len(pairs)
        self._inner: dict[bytes, KeyValue] = {key: (key, value) for key, value in pairs}
        self._keys = sorted(self._inner)

    def query(self, key: bytes) -> Optional[KeyValue]:
        return self._inner.get(bytes(key))

    def __len__(self) -> int:
        return self._len

    def size_of_disk(self) -> int:
        return 0

    def gen(self) -> int:
        return self._gen

    def level(self) -> int:
        return self._level

    def iter(self) -> "BTreeTableIter":
        return BTreeTableIter(self)


class BTreeTableIter:
    """Forward, seekable iterator over a ``BTreeTable``."""

    def __init__(self, table: BTreeTable) -> None:
        self._table = table
        self._position: Optional[int] = None
        self.seek(Seek.first())

    def seek(self, seek: Seek) -> None:
        if seek.kind is SeekKind.FIRST:
            self._position = 0
        elif seek.kind is SeekKind.LAST:
            self._position = None
        else:
            self._position = bisect.bisect_left(self._table._keys, seek.key or b"")

    def try_next(self) -> Optional[KeyValue]:
        if self._position is None or self._position >= len(self._table._keys):
            return None
        key = self._table._keys[self._position]
        self._position += 1
        return self._table._inner[key]

    def is_valid(self) -> bool:
        return True