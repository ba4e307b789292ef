"""Tests for the docd command line."""

import fcntl
import logging
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from docd import __version__
from docd.cli import build_parser, main


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in (
        "DOCD_RUNTIME_DIR",
        "DOCD_IDLE_TIMEOUT",
        "DOCD_LEGACY_DIR",
        "DOCD_CONVERTER",
        "DOCD_NO_MIGRATION",
        "DOCD_LOG_LEVEL",
        "DOCD_LOG_CATEGORIES",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def runtime_dir() -> Generator[str, None, None]:
    path = tempfile.mkdtemp(prefix="docd-")
    yield path
    shutil.rmtree(path, ignore_errors=True)


class TestParser:
    """Argument parsing."""

    def test_defaults_are_none(self) -> None:
        args = build_parser().parse_args([])
        assert args.runtime_dir is None
        assert args.idle_timeout is None
        assert args.migrate is None
        assert args.log_level is None

    def test_options(self) -> None:
        args = build_parser().parse_args(
            [
                "--runtime-dir", "/run/docd",
                "--idle-timeout", "5",
                "--legacy-dir", "/home/u/.docd",
                "--converter", "/bin/true",
                "--no-migration",
                "--log-level", "DEBUG",
            ]
        )
        assert args.runtime_dir == "/run/docd"
        assert args.idle_timeout == 5.0
        assert args.legacy_dir == "/home/u/.docd"
        assert args.converter == "/bin/true"
        assert args.migrate is False
        assert args.log_level == "DEBUG"

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as info:
            build_parser().parse_args(["--version"])
        assert info.value.code == 0
        assert __version__ in capsys.readouterr().out


@pytest.mark.usefixtures("clean_env")
class TestMain:
    """Exit statuses of the docd command."""

    def test_invalid_timeout_exits_one(self, runtime_dir, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="docd"):
            assert main(["--runtime-dir", runtime_dir, "--idle-timeout", "0"]) == 1
        assert "idle_timeout" in caplog.text

    def test_invalid_env_timeout_exits_one(self, runtime_dir, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCD_IDLE_TIMEOUT", "later")
        assert main(["--runtime-dir", runtime_dir]) == 1

    def test_idle_run_exits_zero(self, runtime_dir) -> None:
        status = main(
            ["--runtime-dir", runtime_dir, "--idle-timeout", "0.1", "--no-migration"]
        )
        assert status == 0
        assert not (Path(runtime_dir) / "org.docd.Daemon.sock").exists()

    def test_name_taken_exits_one(self, runtime_dir) -> None:
        lock_path = Path(runtime_dir) / "org.docd.Daemon.lock"
        with open(lock_path, "a+") as lock:
            fcntl.flock(lock, fcntl.LOCK_EX | fcntl.LOCK_NB)
            status = main(["--runtime-dir", runtime_dir, "--no-migration"])
        assert status == 1
