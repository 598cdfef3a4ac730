"""Bidirectional, seekable iteration over the entries of a block."""

from __future__ import annotations

from typing import Generic, Iterator, Optional, TypeVar

from kiplsm.block import Block
from kiplsm.table import Seek, SeekKind

T = TypeVar("T")


class BlockIter(Generic[T]):
    """Cursor over a block's entries, yielding ``(full_key, item)`` pairs.

    The offset is kept one above the entry index, so that offset 0 means
    "before the first entry" and ``entry_len + 1`` means "after the last".
    """

    def __init__(self, block: Block[T]) -> None:
        self._block = block
        self._entry_len = block.entry_len()
        self._offset = 0

    def _item(self) -> tuple[bytes, T]:
        index = self._offset - 1
        entry = self._block.get_entry(index)
        if entry.shared_len:
            key = self._block.shared_key_prefix(index, entry.shared_len) + entry.key
        else:
            key = entry.key
        return key, entry.item

    def _move(self, offset: int, is_seek: bool) -> Optional[tuple[bytes, T]]:
        self._offset = offset
        if 0 < offset <= self._entry_len and not is_seek:
            return self._item()
        return None

    def try_next(self) -> Optional[tuple[bytes, T]]:
        """Advance and return the next pair, or None past the end."""
        if self.is_valid() or self._offset == 0:
            return self._move(self._offset + 1, False)
        return None

    def try_prev(self) -> Optional[tuple[bytes, T]]:
        """Step back and return the previous pair, or None before the start."""
        if self.is_valid() or self._offset == self._entry_len + 1:
            return self._move(self._offset - 1, False)
        return None

    def is_valid(self) -> bool:
        return 0 < self._offset <= self._entry_len

    def seek(self, seek: Seek) -> None:
        """Position the cursor so that ``try_next`` returns the sought entry."""
        if seek.kind is SeekKind.FIRST:
            self._move(0, True)
        elif seek.kind is SeekKind.LAST:
            self._move(self._entry_len + 1, True)
        else:
            index, found = self._block.binary_search(seek.key or b"")
            if found or index < self._entry_len:
                self._move(index, True)

    def __iter__(self) -> Iterator[tuple[bytes, T]]:
        while True:
            item = self.try_next()
            if item is None:
                return
            yield item