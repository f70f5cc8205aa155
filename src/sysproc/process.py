"""Child processes with piped standard streams.

:class:`SysProcess` spawns a program with ``posix_spawnp`` and keeps the
parent ends of three pipes as its ``stdin``, ``stdout`` and ``stderr``.
Until the handle is closed, waited on, killed or detached it owns the child:
dropping it terminates and reaps the process.

>>> with SysProcess("echo", ["hello"]) as proc:
...     proc.stdout.readall()
b'hello\\n'
"""

from __future__ import annotations

import errno
import logging
import os
import signal
import warnings
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from typing_extensions import TypeAlias

from .errors import SysProcessError
from .stream import File

if TYPE_CHECKING:
    from types import TracebackType

    from typing_extensions import Self

__all__ = ["DEFAULT_SIGNAL", "ProcessStatus", "SysProcess"]

logger = logging.getLogger(__name__)

DEFAULT_SIGNAL = signal.SIGTERM

NO_PID = -1

CommandArg: TypeAlias = Union[str, "os.PathLike[str]"]
EnvPairs: TypeAlias = Union[Iterable[tuple[str, str]], Mapping[str, str]]

# Python ignores SIGPIPE (and SIGXFSZ); ignored dispositions survive exec.
_RESET_SIGNALS = [
    sig
    for sig in (getattr(signal, name, None) for name in ("SIGPIPE", "SIGXFSZ"))
    if sig is not None
]

_STOP_SIGNALS = frozenset(
    getattr(signal, name)
    for name in ("SIGSTOP", "SIGTSTP", "SIGTTIN", "SIGTTOU")
    if hasattr(signal, name)
)
_NO_CONTINUE = _STOP_SIGNALS | {signal.SIGKILL, signal.SIGCONT}


@dataclass(frozen=True)
class ProcessStatus:
    """Raw ``waitpid`` status of a child that exited, was killed or stopped."""

    pid: int
    raw: int

    @property
    def exited(self) -> bool:
        return os.WIFEXITED(self.raw)

    @property
    def exit_code(self) -> int | None:
        return os.WEXITSTATUS(self.raw) if self.exited else None

    @property
    def signaled(self) -> bool:
        return os.WIFSIGNALED(self.raw)

    @property
    def term_signal(self) -> int | None:
        return os.WTERMSIG(self.raw) if self.signaled else None

    @property
    def stopped(self) -> bool:
        return os.WIFSTOPPED(self.raw)

    @property
    def stop_signal(self) -> int | None:
        return os.WSTOPSIG(self.raw) if self.stopped else None

    @property
    def returncode(self) -> int:
        """Exit code, or the negated signal number like ``subprocess``."""
        if self.signaled:
            return -os.WTERMSIG(self.raw)
        if self.stopped:
            return -os.WSTOPSIG(self.raw)
        return os.WEXITSTATUS(self.raw)


def _argv(command: CommandArg, args: Iterable[CommandArg] | None) -> list[str]:
    argv: list[str] = []
    for arg in [command, *(args or ())]:
        if isinstance(arg, os.PathLike):
            arg = os.fspath(arg)
        if not isinstance(arg, str):
            msg = f"Process arguments must be str or os.PathLike, not {type(arg).__name__}"
            raise TypeError(msg)
        argv.append(arg)

    if not argv[0]:
        msg = "Command must not be empty"
        raise ValueError(msg)
    return argv


def _environ(env: EnvPairs | None) -> dict[str, str]:
    pairs = env.items() if isinstance(env, Mapping) else (env or ())
    environ: dict[str, str] = {}
    for name, value in pairs:
        if not name or "=" in name:
            msg = f"Invalid environment variable name: {name!r}"
            raise ValueError(msg)
        environ[name] = value
    return environ


def _close_all(fds: Iterable[int]) -> None:
    for fd in fds:
        try:
            os.close(fd)
        except OSError:
            logger.debug(f"Failed to close fd={fd}", exc_info=True)


def _pipes(count: int) -> list[tuple[int, int]]:
    pipes: list[tuple[int, int]] = []
    try:
        for _ in range(count):
            pipes.append(os.pipe())
    except OSError as e:
        _close_all(fd for pipe in pipes for fd in pipe)
        raise SysProcessError.from_oserror(e, "pipe") from e
    return pipes


class SysProcess:
    """A spawned process with piped stdin, stdout and stderr.

    Construction spawns the process; it raises :class:`SysProcessError`
    rather than returning a handle whose spawn failed.

    Args:
        command: Program path, or a name looked up on ``PATH``. Always argv[0].
        args: Further arguments.
        env: The child's complete environment as ``(name, value)`` pairs or a
            mapping. ``None`` gives the child an empty environment.
    """

    pid: int = NO_PID
    stdin: File | None = None
    stdout: File | None = None
    stderr: File | None = None

    def __init__(
        self,
        command: CommandArg,
        args: Iterable[CommandArg] | None = None,
        env: EnvPairs | None = None,
    ) -> None:
        argv = _argv(command, args)
        environ = _environ(env)

        (in_r, in_w), (out_r, out_w), (err_r, err_w) = _pipes(3)
        pipe_fds = (in_r, in_w, out_r, out_w, err_r, err_w)

        file_actions = [
            (os.POSIX_SPAWN_DUP2, in_r, 0),
            (os.POSIX_SPAWN_DUP2, out_w, 1),
            (os.POSIX_SPAWN_DUP2, err_w, 2),
            *((os.POSIX_SPAWN_CLOSE, fd) for fd in pipe_fds if fd > 2),
        ]

        try:
            pid = os.posix_spawnp(
                argv[0],
                argv,
                environ,
                file_actions=file_actions,
                setsigdef=_RESET_SIGNALS,
            )
        except OSError as e:
            _close_all(pipe_fds)
            raise SysProcessError.from_oserror(e, "posix_spawnp") from e

        _close_all((in_r, out_w, err_w))

        logger.debug(f"Spawned pid={pid} argv0={argv[0]!r}")

        self.pid = pid
        self.stdin = File(in_w)
        self.stdout = File(out_r)
        self.stderr = File(err_r)

    def __repr__(self) -> str:
        return f"<SysProcess pid={self.pid}>"

    def is_open(self) -> bool:
        """Whether the handle still owns its process.

        This does not probe the OS; use ``wait(hang=False)`` for that.
        """
        return self.pid != NO_PID

    def close(self) -> None:
        """Close the streams, then terminate and reap the process if owned.

        Cleanup errors are discarded, so this is safe to call at any time and
        any number of times.
        """
        for stream in (self.stdin, self.stdout, self.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    logger.debug(f"Failed to close {stream!r}", exc_info=True)

        pid = self.pid
        if pid != NO_PID:
            try:
                self.kill()
            except SysProcessError as e:
                logger.debug(f"Ignoring failure to kill pid={pid}: {e}")

        self.stdin = self.stdout = self.stderr = None
        self.pid = NO_PID

    def detach(self) -> None:
        """Give up ownership: the process will not be killed or reaped by
        this handle. The streams stay open until closed."""
        logger.debug(f"Detached pid={self.pid}")
        self.pid = NO_PID

    def wait(self, hang: bool = True) -> ProcessStatus | None:
        """Wait for the process to exit or stop, then close the handle.

        With ``hang=False`` this returns ``None`` immediately, leaving the
        handle open, if the process has not changed state yet.

        Raises:
            SysProcessError: ``waitpid`` failed. The handle is closed anyway.
        """
        return self._reap(os.WUNTRACED | (0 if hang else os.WNOHANG))

    def _reap(self, options: int) -> ProcessStatus | None:
        pid = self.pid
        if pid == NO_PID:
            raise SysProcessError(errno.ECHILD, "waitpid")

        try:
            reaped, raw = os.waitpid(pid, options)
        except OSError as e:
            self.pid = NO_PID
            self.close()
            raise SysProcessError.from_oserror(e, "waitpid") from e

        if reaped == 0:
            return None

        status = ProcessStatus(reaped, raw)
        logger.debug(f"Reaped pid={pid} returncode={status.returncode}")

        self.pid = NO_PID
        self.close()
        return status

    def kill(self, sig: int = DEFAULT_SIGNAL) -> ProcessStatus | None:
        """Send ``sig`` to the process and reap it.

        A stopped process is continued so that ``sig`` takes effect, and the
        reap waits for termination rather than a stop.
        Stop signals are the exception: they are reaped as a stop.

        Returns ``None`` when something else reaped the process between the
        signal and the wait.

        Raises:
            SysProcessError: The signal could not be delivered, or the reap
                failed for a reason other than ``ECHILD``.
        """
        pid = self.pid
        if pid == NO_PID:
            raise SysProcessError(errno.ESRCH, "kill")

        try:
            os.kill(pid, sig)
            if sig not in _NO_CONTINUE:
                os.kill(pid, signal.SIGCONT)
        except OSError as e:
            raise SysProcessError.from_oserror(e, "kill") from e
        logger.debug(f"Sent signal {sig} to pid={pid}")

        try:
            return self._reap(os.WUNTRACED if sig in _STOP_SIGNALS else 0)
        except SysProcessError as e:
            if e.errno != errno.ECHILD:
                raise
            logger.debug(f"pid={pid} was already reaped")
            return None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __del__(self, _warn=warnings.warn) -> None:
        if self.pid != NO_PID:
            _warn(f"{self!r} was not closed or detached", ResourceWarning, source=self)
            logger.error(f"Process handle for pid={self.pid} collected while open")
        self.close()
