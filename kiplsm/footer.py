"""Fixed-size footer at the end of a sorted-string table file."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import BinaryIO

_FOOTER = struct.Struct("<BIIIII")

# Serialised length of a footer; fixed so that it can be read from the file end.
TABLE_FOOTER_SIZE = _FOOTER.size


@dataclass(frozen=True)
class Footer:
    """Locations of the index and meta blocks, plus level and file size."""

    level: int
    index_offset: int
    index_len: int
    meta_offset: int
    meta_len: int
    size_of_disk: int

    @classmethod
    def read_from_file(cls, reader: BinaryIO) -> "Footer":
        """Read the footer stored in the last bytes of ``reader``."""
        reader.seek(-TABLE_FOOTER_SIZE, io.SEEK_END)
        data = reader.read(TABLE_FOOTER_SIZE)
        if len(data) != TABLE_FOOTER_SIZE:
            raise EOFError(f"footer needs {TABLE_FOOTER_SIZE} bytes, got {len(data)}")
        return cls(*_FOOTER.unpack(data))

    def to_raw(self) -> bytes:
        return _FOOTER.pack(
            self.level,
            self.index_offset,
            self.index_len,
            self.meta_offset,
            self.meta_len,
            self.size_of_disk,
        )