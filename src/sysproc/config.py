from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import dotenv

from .compat import tomllib
from .process import SysProcess
from .typecast import ConfigError, typecast


@dataclass(kw_only=True)
class LaunchConfig:
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    env_file: Optional[str] = None
    input: Optional[str] = None

    def read_env(self, base_dir: Path) -> dict[str, Optional[str]]:
        env: dict[str, Optional[str]] = {}

        if self.env_file:
            env_file = base_dir / self.env_file
            if not env_file.is_file():
                raise ConfigError("env_file", f"{env_file} does not exist")
            env.update(dotenv.dotenv_values(env_file, interpolate=False))

        env.update(self.env)

        return OrderedDict(dotenv.main.resolve_variables(env.items(), override=True))

    def resolve_env(self, base_dir: Path) -> list[tuple[str, str]]:
        """The child's environment, in definition order, without unset keys."""
        return [(k, v) for k, v in self.read_env(base_dir).items() if v is not None]

    def spawn(self, base_dir: Path) -> SysProcess:
        return SysProcess(self.command, self.args, self.resolve_env(base_dir))


def load_config(path: Path) -> LaunchConfig:
    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as e:
        raise ConfigError("", str(e)) from None
    return typecast(LaunchConfig, data)
