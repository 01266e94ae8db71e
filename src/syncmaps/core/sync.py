"""Reader/writer synchronization shared by every container."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import Any, TypeVar

from syncmaps.contracts.error import InvariantError

T = TypeVar("T")


class ReadWriteSync:
    """Many concurrent readers or one exclusive writer.

    Readers are preferred: a writer waits until the reader count drops to
    zero, so a steady stream of readers can starve it. Frames are not
    re-entrant; a thread holding a write frame must not open another frame
    on the same instance.
    """

    __slots__ = ("_cond", "_readers", "_writer")

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writing(self) -> bool:
        return self._writer

    def read_start(self) -> None:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1

    def read_end(self) -> None:
        with self._cond:
            if self._readers == 0:
                raise InvariantError("Unable to stop reading as there are no readers")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def write_start(self) -> None:
        with self._cond:
            while self._writer or self._readers > 0:
                self._cond.wait()
            self._writer = True

    def write_end(self) -> None:
        with self._cond:
            if not self._writer:
                raise InvariantError("Unable to stop writing as there is no writer")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.read_start()
        try:
            yield
        finally:
            self.read_end()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.write_start()
        try:
            yield
        finally:
            self.write_end()


def reads(fn: Callable[..., T]) -> Callable[..., T]:
    """Run a container method inside a read frame of ``self._sync``."""

    @wraps(fn)
    def _wrapped(self: Any, *args: Any, **kwargs: Any) -> T:
        with self._sync.read():
            return fn(self, *args, **kwargs)

    return _wrapped


def writes(fn: Callable[..., T]) -> Callable[..., T]:
    """Run a container method inside a write frame of ``self._sync``."""

    @wraps(fn)
    def _wrapped(self: Any, *args: Any, **kwargs: Any) -> T:
        with self._sync.write():
            return fn(self, *args, **kwargs)

    return _wrapped


__all__ = ["ReadWriteSync", "reads", "writes"]
