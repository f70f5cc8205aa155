from __future__ import annotations

import errno as _errno
import os

__all__ = ["SysProcessError"]


class SysProcessError(OSError):
    """An OS call made on behalf of a process handle failed.

    ``errno`` and ``strerror`` are those of the failing call; ``operation``
    names it (``pipe``, ``posix_spawnp``, ``kill`` or ``waitpid``).
    """

    def __init__(self, code: int, operation: str, filename: str | None = None) -> None:
        super().__init__(code, os.strerror(code), filename)
        self.operation = operation

    def __str__(self) -> str:
        msg = f"{self.operation}: [Errno {self.errno}] {self.strerror}"
        if self.filename is not None:
            msg += f": {self.filename!r}"
        return msg

    def __reduce__(self):  # type: ignore[override]
        return type(self), (self.errno, self.operation, self.filename)

    @classmethod
    def from_oserror(cls, exc: OSError, operation: str) -> SysProcessError:
        code = exc.errno if exc.errno is not None else _errno.EIO
        return cls(code, operation, exc.filename)
