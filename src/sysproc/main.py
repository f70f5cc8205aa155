from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Optional

import click
from click.exceptions import Exit
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .config import load_config
from .errors import SysProcessError
from .process import ProcessStatus, SysProcess
from .typecast import ConfigError

if TYPE_CHECKING:
    from collections.abc import Callable

    from .stream import File

logger = logging.getLogger(__name__)

err = Console(stderr=True)

_CHUNK_SIZE = 4096


def _parse_env(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> list[tuple[str, str]]:
    env = []
    for value in values:
        name, sep, val = value.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {value!r}")
        env.append((name, val))
    return env


def _pump(src: File, dst: BinaryIO) -> None:
    while data := src.read(_CHUNK_SIZE):
        dst.write(data)
        dst.flush()


def _exit_code(status: Optional[ProcessStatus]) -> int:
    if status is None:
        return 1
    if status.returncode < 0:
        return 128 - status.returncode
    return status.returncode


def _communicate(proc: SysProcess, data: Optional[str]) -> int:
    assert proc.stdin is not None
    assert proc.stdout is not None
    assert proc.stderr is not None

    # owned by the readers until they see EOF
    stdout, stderr = proc.stdout, proc.stderr
    proc.stdout = proc.stderr = None

    readers = [
        threading.Thread(
            target=_pump, args=(stdout, click.get_binary_stream("stdout")), daemon=True
        ),
        threading.Thread(
            target=_pump, args=(stderr, click.get_binary_stream("stderr")), daemon=True
        ),
    ]
    for t in readers:
        t.start()

    try:
        if data is not None:
            try:
                proc.stdin.write(data.encode())
            except BrokenPipeError:
                logger.debug(f"pid={proc.pid} closed its stdin early")
        proc.stdin.close()
        status = proc.wait()
    except KeyboardInterrupt:
        logger.debug(f"Interrupted, terminating pid={proc.pid}")
        status = proc.kill(signal.SIGTERM)

    for t in readers:
        t.join()
    stdout.close()
    stderr.close()

    return _exit_code(status)


def _print_error(e: Exception) -> None:
    err.print(f"[red]error:[/red] {escape(str(e))}", highlight=False)


def _launch(spawn: Callable[[], SysProcess], data: Optional[str]) -> None:
    try:
        proc = spawn()
    except (ConfigError, SysProcessError) as e:
        _print_error(e)
        raise Exit(1) from None

    with proc:
        code = _communicate(proc, data)
    raise Exit(code)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log process lifecycle events.")
@click.version_option(package_name="sysproc")
def main(*, verbose: bool) -> None:
    """Launch a program with piped standard streams."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err, show_path=False)],
    )


@main.command()
@click.argument(
    "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
def run(config_path: Path) -> None:
    """Launch the program described by a TOML file."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        _print_error(e)
        raise Exit(1) from None

    _launch(lambda: config.spawn(config_path.parent), config.input)


@main.command(
    "exec",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option(
    "-e",
    "--env",
    "env",
    multiple=True,
    callback=_parse_env,
    metavar="NAME=VALUE",
    help="Set a variable in the child's (otherwise empty) environment.",
)
@click.option("--input", "data", type=str, default=None, help="Text written to stdin.")
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def exec_(
    command: str,
    args: tuple[str, ...],
    *,
    env: list[tuple[str, str]],
    data: Optional[str],
) -> None:
    """Run COMMAND with ARGS and relay its output and exit code."""
    _launch(lambda: SysProcess(command, args, env), data)


if __name__ == "__main__":
    main()
