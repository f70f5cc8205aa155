from __future__ import annotations

import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import TracebackType

    from typing_extensions import Self

__all__ = ["File"]

_CHUNK_SIZE = 65536


class File:
    """Unbuffered byte stream over a raw descriptor.

    The stream owns ``fd`` and closes it on :meth:`close` or when collected.
    ``path`` is only a label; pipe ends carry an empty one.
    """

    def __init__(self, fd: int, path: str = "") -> None:
        self._fd = fd
        self.path = path

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"fd={self._fd}"
        return f"<File {self.path!r} {state}>"

    @property
    def closed(self) -> bool:
        return self._fd < 0

    def fileno(self) -> int:
        self._check_open()
        return self._fd

    def read(self, size: int = -1) -> bytes:
        if size < 0:
            return self.readall()
        self._check_open()
        return os.read(self._fd, size)

    def readall(self) -> bytes:
        self._check_open()
        chunks = []
        while data := os.read(self._fd, _CHUNK_SIZE):
            chunks.append(data)
        return b"".join(chunks)

    def write(self, data: bytes) -> int:
        self._check_open()
        view = memoryview(data)
        written = 0
        while written < len(view):
            written += os.write(self._fd, view[written:])
        return written

    def close(self) -> None:
        if self._fd < 0:
            return
        fd, self._fd = self._fd, -1
        os.close(fd)

    def _check_open(self) -> None:
        if self._fd < 0:
            msg = "I/O operation on closed file"
            raise ValueError(msg)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __del__(self) -> None:
        try:
            self.close()
        except OSError:
            pass
