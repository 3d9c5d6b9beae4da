from __future__ import annotations

from datetime import datetime, timedelta
from typing import BinaryIO, Optional

from .errors import BucketFsError, CantCopy, NotFound
from .interfaces import Copier, Dir, Fs, Object
from .listing import DEFAULT_BUFFER_SIZE, ListingCursor, ListingStream
from .stats import Stats


class LimitedFs(Fs, Copier):
    """An Fs restricted to a single object of the wrapped Fs."""

    def __init__(
        self,
        fs: Fs,
        obj: Object,
        stats: Optional[Stats] = None,
        checkers: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        self._fs = fs
        self._obj = obj
        self.stats = stats or Stats()
        self.checkers = checkers

    @property
    def name(self) -> str:
        return self._fs.name

    @property
    def root(self) -> str:
        return self._fs.root

    @property
    def wrapped(self) -> Fs:
        return self._fs

    @property
    def object(self) -> Object:
        return self._obj

    def __str__(self) -> str:
        return f"{self._fs} limited to {self._obj.remote}"

    def list(self) -> ListingStream[Object]:
        def producer(cursor: ListingCursor[Object]) -> None:
            cursor.emit(self._obj)

        return ListingStream(
            producer,
            buffer_size=self.checkers,
            stats=self.stats,
            description=f"{self} list",
        )

    def list_dir(self) -> ListingStream[Dir]:
        return ListingStream(
            lambda cursor: None,
            buffer_size=self.checkers,
            stats=self.stats,
            description=f"{self} list_dir",
        )

    def new_object(self, remote: str) -> Object:
        if remote != self._obj.remote:
            raise NotFound(f"{remote}: not in {self}")
        return self._obj

    def put(
        self, stream: BinaryIO, remote: str, mod_time: datetime, size: int
    ) -> Object:
        if remote != self._obj.remote:
            raise BucketFsError(f"Can't create {remote!r} in {self}")
        self._obj.update(stream, mod_time, size)
        return self._obj

    def mkdir(self) -> None:
        self._fs.mkdir()

    def rmdir(self) -> None:
        raise BucketFsError(f"Can't rmdir in {self}")

    def precision(self) -> timedelta:
        return self._fs.precision()

    def copy(self, src: Object, remote: str) -> Object:
        if not isinstance(self._fs, Copier):
            raise CantCopy(f"{self._fs} can't do server side copies")
        return self._fs.copy(src, remote)
