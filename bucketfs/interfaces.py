from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, BinaryIO, Optional

if TYPE_CHECKING:
    from .listing import ListingStream


@dataclass(frozen=True)
class Dir:
    name: str
    when: Optional[datetime] = None
    bytes: int = 0
    count: int = 0


class Fs(abc.ABC):
    """A path-addressed view onto one remote."""

    @property
    @abc.abstractmethod
    def name(self) -> str: ...

    @property
    @abc.abstractmethod
    def root(self) -> str: ...

    @abc.abstractmethod
    def list(self) -> "ListingStream[Object]":
        """Every object under the root, recursively."""

    @abc.abstractmethod
    def list_dir(self) -> "ListingStream[Dir]":
        """Directories directly under the root."""

    @abc.abstractmethod
    def new_object(self, remote: str) -> "Object": ...

    @abc.abstractmethod
    def put(
        self, stream: BinaryIO, remote: str, mod_time: datetime, size: int
    ) -> "Object": ...

    @abc.abstractmethod
    def mkdir(self) -> None: ...

    @abc.abstractmethod
    def rmdir(self) -> None: ...

    @abc.abstractmethod
    def precision(self) -> timedelta: ...


class Copier(abc.ABC):
    @abc.abstractmethod
    def copy(self, src: "Object", remote: str) -> "Object":
        """Server side copy of ``src`` to ``remote`` on this Fs.

        Raises CantCopy when the copy has to be done by reading and writing.
        """


class Object(abc.ABC):
    @property
    @abc.abstractmethod
    def fs(self) -> Fs: ...

    @property
    @abc.abstractmethod
    def remote(self) -> str: ...

    @property
    @abc.abstractmethod
    def size(self) -> int: ...

    @abc.abstractmethod
    def md5(self) -> str: ...

    @abc.abstractmethod
    def mod_time(self) -> datetime: ...

    @abc.abstractmethod
    def set_mod_time(self, mod_time: datetime) -> None: ...

    @abc.abstractmethod
    def storable(self) -> bool: ...

    @abc.abstractmethod
    def open(self) -> BinaryIO: ...

    @abc.abstractmethod
    def update(self, stream: BinaryIO, mod_time: datetime, size: int) -> None: ...

    @abc.abstractmethod
    def remove(self) -> None: ...
