from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, TypeVar

from .stats import Stats

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BUFFER_SIZE = 8
_PUT_POLL_SECONDS = 0.1
_DONE = object()


@dataclass
class ListingStatus:
    complete: bool = False
    cancelled: bool = False
    error: Optional[BaseException] = None
    # last cursor the provider answered successfully, None before the first page
    marker: Optional[str] = None

    @property
    def truncated(self) -> bool:
        return not self.complete


class ListingCursor(Generic[T]):
    """Producer side of a listing: emits items and tracks the page marker."""

    def __init__(self, stream: "ListingStream[T]") -> None:
        self._stream = stream
        self.marker: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._stream._cancel.is_set()

    def emit(self, item: T) -> bool:
        return self._stream._put(item)


class ListingStream(Generic[T]):
    """Single-pass iterator fed by one background producer thread.

    The producer pages through the provider sequentially and blocks when the
    buffer is full. Calling ``cancel`` (or leaving the ``with`` block) makes
    it stop at the next item or page. Once the iterator is exhausted,
    ``status`` says whether the listing is complete; a failing producer is
    logged, counted in ``stats`` and ends the stream early rather than
    raising into the consumer.
    """

    def __init__(
        self,
        producer: Callable[[ListingCursor[T]], None],
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        stats: Optional[Stats] = None,
        description: str = "listing",
    ) -> None:
        self._producer = producer
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, int(buffer_size)))
        self._cancel = threading.Event()
        self._stats = stats
        self._description = description
        self._cursor: ListingCursor[T] = ListingCursor(self)
        self._finished = False
        self.status = ListingStatus()
        self._thread = threading.Thread(
            target=self._run, name=f"bucketfs-{description}", daemon=True
        )
        self._thread.start()

    @classmethod
    def failed(
        cls,
        error: BaseException,
        description: str = "listing",
        stats: Optional[Stats] = None,
    ) -> "ListingStream[T]":
        def producer(_cursor: ListingCursor[T]) -> None:
            raise error

        return cls(producer, stats=stats, description=description)

    def _run(self) -> None:
        try:
            self._producer(self._cursor)
        except Exception as exc:
            if self._stats is not None:
                self._stats.error()
            logger.error("%s stopped early: %s", self._description, exc)
            self.status.error = exc
        else:
            if self._cancel.is_set():
                self.status.cancelled = True
            else:
                self.status.complete = True
        finally:
            self.status.marker = self._cursor.marker
            self._put_final()

    def _put(self, item: T) -> bool:
        while not self._cancel.is_set():
            try:
                self._queue.put(item, timeout=_PUT_POLL_SECONDS)
            except queue.Full:
                continue
            return True
        return False

    def _put_final(self) -> None:
        # the end marker must not be lost, but an abandoned consumer never
        # drains the queue, so make room once cancelled
        while True:
            try:
                self._queue.put(_DONE, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                if self._cancel.is_set():
                    self._drain()

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def __iter__(self) -> Iterator[T]:
        return self

    def __next__(self) -> T:
        if self._finished:
            raise StopIteration
        item = self._queue.get()
        if item is _DONE:
            self._finished = True
            raise StopIteration
        return item

    def cancel(self) -> None:
        self._cancel.set()

    def wait(self, timeout: Optional[float] = None) -> ListingStatus:
        self._thread.join(timeout)
        return self.status

    def __enter__(self) -> "ListingStream[T]":
        return self

    def __exit__(self, *exc_info) -> None:
        if not self._finished:
            self.cancel()
            self._finished = True
            self._drain()
