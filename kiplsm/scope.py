"""Key ranges covered by tables, with seek-miss counting for compaction."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Optional, Sequence

from kiplsm.kernel import DataEmptyError

SEEK_COMPACTION_COUNT = 100


class _SeekCounter:
    """Shared seek-miss counter; copies of a scope share the same counter."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def increase(self) -> bool:
        with self._lock:
            current = self._value
            self._value += 1
            if current > SEEK_COMPACTION_COUNT and self._value == current + 1:
                self._value = 0
                return True
            return False

    def __repr__(self) -> str:
        return f"_SeekCounter({self.value})"


@dataclass(frozen=True)
class Bound:
    """One end of a key range: inclusive, exclusive, or unbounded when ``key`` is None."""

    key: Optional[bytes] = None
    inclusive: bool = True

    @classmethod
    def included(cls, key: bytes) -> "Bound":
        return cls(bytes(key), True)

    @classmethod
    def excluded(cls, key: bytes) -> "Bound":
        return cls(bytes(key), False)

    @classmethod
    def unbounded(cls) -> "Bound":
        return cls(None)


@dataclass(eq=False)
class Scope:
    """Smallest and largest key of a table, used to locate keys quickly."""

    start: bytes
    end: bytes
    gen: int = 0
    allowed_seeks: Optional[_SeekCounter] = field(default=None, repr=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scope):
            return NotImplemented
        if self.allowed_seeks is None or other.allowed_seeks is None:
            return False
        return (
            self.allowed_seeks.value == other.allowed_seeks.value
            and self.start == other.start
            and self.end == other.end
            and self.gen == other.gen
        )

    __hash__ = None  # type: ignore[assignment]

    def seeks_increase(self) -> bool:
        """Count a seek miss; True once the threshold is passed and the counter resets."""
        if self.allowed_seeks is None:
            return False
        return self.allowed_seeks.increase()

    @classmethod
    def from_range(cls, gen: int, first: bytes, last: bytes) -> "Scope":
        return cls(bytes(first), bytes(last), gen, _SeekCounter())

    @classmethod
    def from_key(cls, key: bytes) -> "Scope":
        key = bytes(key)
        return cls(key, key, 0, None)

    @classmethod
    def fusion(cls, scopes: Sequence["Scope"]) -> Optional["Scope"]:
        """Merge ``scopes`` into one covering them all, or None if there are none."""
        if not scopes:
            return None
        start = min(scope.start for scope in scopes)
        end = max(scope.end for scope in scopes)
        return cls(start, end, 0, None)

    def meet(self, target: "Scope") -> bool:
        """Whether the two ranges overlap or one contains the other."""
        return (
            (self.start <= target.start and self.end >= target.start)
            or (self.start <= target.end and self.end >= target.end)
            or (self.start <= target.start and self.end >= target.end)
            or (self.start >= target.start and self.end <= target.end)
        )

    def meet_by_key(self, key: bytes) -> bool:
        return self.start <= bytes(key) <= self.end

    def meet_bound(self, minimum: Bound, maximum: Bound) -> bool:
        if minimum.key is None:
            min_inside = True
        elif minimum.inclusive:
            min_inside = self.start <= minimum.key
        else:
            min_inside = self.start < minimum.key

        if maximum.key is None:
            max_inside = True
        elif maximum.inclusive:
            max_inside = self.end >= maximum.key
        else:
            max_inside = self.end > maximum.key

        return min_inside and max_inside

    @classmethod
    def from_sorted_vec_data(cls, gen: int, data: Sequence[tuple]) -> "Scope":
        """Build a scope from key-value pairs already sorted by key."""
        if not data:
            raise DataEmptyError("cannot build a scope from no data")
        return cls.from_range(gen, data[0][0], data[-1][0])