from __future__ import annotations

from .errors import SysProcessError
from .process import DEFAULT_SIGNAL, ProcessStatus, SysProcess
from .stream import File

__all__ = [
    "DEFAULT_SIGNAL",
    "File",
    "ProcessStatus",
    "SysProcess",
    "SysProcessError",
]
