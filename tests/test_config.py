import sys
from pathlib import Path

import pytest

from sysproc.config import LaunchConfig, load_config
from sysproc.typecast import ConfigError


def write(path: Path, text: str) -> Path:
    path.write_text(text)
    return path


def test_load_config(tmp_path: Path) -> None:
    cfg = write(
        tmp_path / "launch.toml",
        """
command = "python3"
args = ["-c", "print(1)"]
input = "data"

[env]
A = "1"
""",
    )

    assert load_config(cfg) == LaunchConfig(
        command="python3", args=["-c", "print(1)"], env={"A": "1"}, input="data"
    )


def test_load_config_defaults(tmp_path: Path) -> None:
    config = load_config(write(tmp_path / "c.toml", 'command = "true"\n'))

    assert config.args == []
    assert config.env == {}
    assert config.env_file is None
    assert config.input is None


@pytest.mark.parametrize(
    ("text", "key", "message"),
    [
        ("args = []\n", "", "missing keys: ['command']"),
        ('command = "x"\nshell = true\n', "", "unknown keys: ['shell']"),
        ('command = "x"\nargs = "-v"\n', "args", "expected list"),
        ('command = "x"\nargs = [1]\n', "args[0]", "expected str"),
        ('command = "x"\n[env]\nA = 1\n', "env.A", "expected str"),
        ("command = \n", "", ""),
    ],
)
def test_load_config_errors(tmp_path: Path, text: str, key: str, message: str) -> None:
    with pytest.raises(ConfigError) as exc_info:
        load_config(write(tmp_path / "c.toml", text))

    assert exc_info.value.key == key
    assert exc_info.value.message.startswith(message)


def test_resolve_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYSPROC_TEST_HOME", "/home/test")
    write(
        tmp_path / ".env",
        "FROM_FILE=file\nOVERRIDDEN=file\nUNSET\nLITERAL=${FROM_FILE}\n",
    )
    config = LaunchConfig(
        command="x",
        env_file=".env",
        env={"OVERRIDDEN": "config", "DATA": "${SYSPROC_TEST_HOME}/data"},
    )

    assert config.resolve_env(tmp_path) == [
        ("FROM_FILE", "file"),
        ("OVERRIDDEN", "config"),
        ("LITERAL", "file"),
        ("DATA", "/home/test/data"),
    ]


def test_missing_env_file(tmp_path: Path) -> None:
    config = LaunchConfig(command="x", env_file="missing.env")

    with pytest.raises(ConfigError) as exc_info:
        config.resolve_env(tmp_path)
    assert exc_info.value.key == "env_file"


def test_spawn(tmp_path: Path) -> None:
    write(tmp_path / "vars.env", "GREETING=hello\n")
    config = LaunchConfig(
        command=sys.executable,
        args=["-c", "import os; print(os.environ['GREETING'])"],
        env_file="vars.env",
    )

    with config.spawn(tmp_path) as proc:
        assert proc.stdout is not None
        assert proc.stdout.readall() == b"hello\n"
        status = proc.wait()
        assert status is not None
        assert status.exit_code == 0
