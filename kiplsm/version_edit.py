"""Edits applied to a version of the table layout, and version statistics."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Union

from kiplsm.scope import Scope
from kiplsm.table import TableMeta


@dataclass
class DeleteFile:
    """Remove the tables with ``gens`` from ``level``."""

    gens: list[int]
    level: int
    meta: TableMeta


@dataclass
class NewFile:
    """Add tables covering ``scopes`` at ``level``.

    New tables must have larger generations than older ones. On level 0 the
    ``index`` is ignored and tables are appended at the end.
    """

    scopes: list[Scope]
    level: int
    index: int
    meta: TableMeta = field(default_factory=TableMeta)


VersionEdit = Union[DeleteFile, NewFile]


class EditKind(enum.Enum):
    ADD = 0
    DEL = 1


@dataclass(frozen=True)
class EditType:
    """A statistics change; additions sort before deletions."""

    kind: EditKind
    meta: TableMeta

    @classmethod
    def add(cls, meta: TableMeta) -> "EditType":
        return cls(EditKind.ADD, meta)

    @classmethod
    def delete(cls, meta: TableMeta) -> "EditType":
        return cls(EditKind.DEL, meta)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, EditType):
            return NotImplemented
        return self.kind.value < other.kind.value


@dataclass
class VersionMeta:
    """Total disk size and entry count of the tables in a version."""

    size_of_disk: int = 0
    len: int = 0

    def statistical_process(self, edits: Iterable[EditType]) -> None:
        """Apply additions first, then deletions, so totals never dip below zero midway."""
        size = self.size_of_disk
        count = self.len
        for edit in sorted(edits):
            if edit.kind is EditKind.ADD:
                size += edit.meta.size_of_disk
                count += edit.meta.len
            else:
                size -= edit.meta.size_of_disk
                count -= edit.meta.len
                if size < 0 or count < 0:
                    raise OverflowError("version statistics would become negative")
        self.size_of_disk = size
        self.len = count