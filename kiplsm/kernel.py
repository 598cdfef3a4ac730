"""Core definitions of the storage engine: errors, commands and the storage interface."""

from __future__ import annotations

import abc
import asyncio
import enum
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import filelock

DEFAULT_PORT = 6333
LOCAL_IP = "127.0.0.1"
DEFAULT_LOCK_FILE = "KipDB.lock"

_SET_OVERHEAD = 20
_KEY_ONLY_OVERHEAD = 12
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1
_GEN_NAME = re.compile(r"[+-]?[0-9]+")

PathLike = Union[str, "os.PathLike[str]"]


class KernelError(Exception):
    """Base class of every error raised by the storage kernel."""


class ProcessExistsError(KernelError):
    """Another process already holds the lock on the data directory."""


class DataEmptyError(KernelError):
    """An operation needed data but none was present."""


class CrcMismatchError(KernelError):
    """A stored checksum did not match the data it protects."""


class CacheSizeOverflowError(KernelError):
    """A cache was created with a capacity below one."""


class ShardingNotAlignError(KernelError):
    """A cache capacity is not a multiple of its number of shards."""


class KeyNotFoundError(KernelError):
    """The requested key does not exist."""


class NotSupportedError(KernelError):
    """The storage engine does not support the requested operation."""


class CommandKind(enum.Enum):
    SET = "set"
    REMOVE = "remove"
    GET = "get"


@dataclass(frozen=True)
class CommandData:
    """A single key-value command; only SET commands carry a value."""

    kind: CommandKind
    key: bytes
    value: Optional[bytes] = None

    def __post_init__(self) -> None:
        if self.kind is CommandKind.SET:
            if self.value is None:
                raise ValueError("a set command needs a value")
        elif self.value is not None:
            raise ValueError(f"a {self.kind.value} command carries no value")

    @classmethod
    def set(cls, key: bytes, value: bytes) -> "CommandData":
        return cls(CommandKind.SET, bytes(key), bytes(value))

    @classmethod
    def remove(cls, key: bytes) -> "CommandData":
        return cls(CommandKind.REMOVE, bytes(key))

    @classmethod
    def get(cls, key: bytes) -> "CommandData":
        return cls(CommandKind.GET, bytes(key))

    def bytes_len(self) -> int:
        """Approximate encoded size of the command in bytes."""
        overhead = _SET_OVERHEAD if self.kind is CommandKind.SET else _KEY_ONLY_OVERHEAD
        return len(self.key) + len(self.value or b"") + overhead


class Storage(abc.ABC):
    """Interface every persistent key-value engine implements."""

    @classmethod
    @abc.abstractmethod
    def name(cls) -> str:
        """Name of the engine."""

    @classmethod
    @abc.abstractmethod
    async def open(cls, path: PathLike) -> "Storage":
        """Open the database stored in the directory ``path``."""

    @abc.abstractmethod
    async def flush(self) -> None:
        """Force buffered data to disk."""

    @abc.abstractmethod
    async def set(self, key: bytes, value: bytes) -> None:
        """Store ``value`` under ``key``."""

    @abc.abstractmethod
    async def get(self, key: bytes) -> Optional[bytes]:
        """Return the value stored under ``key`` or None."""

    @abc.abstractmethod
    async def remove(self, key: bytes) -> None:
        """Delete ``key``."""

    @abc.abstractmethod
    async def size_of_disk(self) -> int:
        """Bytes used on disk."""

    @abc.abstractmethod
    async def len(self) -> int:
        """Number of stored entries."""

    @abc.abstractmethod
    async def is_empty(self) -> bool:
        """Whether no entries are stored."""


def sorted_gen_list(path: PathLike, extension: str) -> list[int]:
    """Return the generation numbers of files ``<gen>.<extension>`` in ``path``, ascending."""
    suffix = f".{extension}"
    gens = []
    for entry in Path(path).iterdir():
        if not entry.is_file() or entry.suffix != suffix:
            continue
        stem = entry.name
        while stem.endswith(suffix):
            stem = stem[: -len(suffix)]
        if not _GEN_NAME.fullmatch(stem):
            continue
        gen = int(stem)
        if _I64_MIN <= gen <= _I64_MAX:
            gens.append(gen)
    return sorted(gens)


async def lock_or_time_out(path: PathLike) -> filelock.FileLock:
    """Acquire the lock file at ``path``, retrying with backoff before giving up."""
    lock = filelock.FileLock(os.fspath(path))
    backoff = 1
    while True:
        try:
            lock.acquire(timeout=0)
        except filelock.Timeout:
            if backoff > 4:
                raise ProcessExistsError(f"lock {os.fspath(path)} is held by another process") from None
            await asyncio.sleep(backoff * 0.1)
            backoff *= 2
        else:
            return lock