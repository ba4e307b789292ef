"""Command line entry point for the docd daemon."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from . import __version__
from .config import load_config, merge_cli_args
from .daemon import EXIT_INIT_FAILURE, DocdDaemon
from .exceptions import ValidationError
from .logger import DocdLogger
from .system import DocdSystem


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docd",
        description="Single-instance daemon tracking which process owns each open document.",
    )
    parser.add_argument("--runtime-dir", dest="runtime_dir", default=None,
                        help="Directory for the service socket and lock file")
    parser.add_argument("--idle-timeout", dest="idle_timeout", type=float, default=None,
                        help="Seconds to stay alive with no registered document (default: 30)")
    parser.add_argument("--legacy-dir", dest="legacy_dir", default=None,
                        help="Directory holding legacy metadata to migrate")
    parser.add_argument("--converter", dest="converter", default=None,
                        help="Executable that converts legacy metadata")
    parser.add_argument("--no-migration", dest="migrate", action="store_false", default=None,
                        help="Skip the legacy metadata migration")
    parser.add_argument("--log-level", dest="log_level", default=None,
                        help="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def _serve(config) -> int:
    system = DocdSystem()
    daemon = await DocdDaemon.create(None, config, system=system)

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            signum, lambda s=signum: loop.create_task(daemon.stop(signal.Signals(s).name))
        )
    try:
        await system.run()
    finally:
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(signum)
    return daemon.exit_code


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = merge_cli_args(load_config(), args)
        config.validate()
    except ValidationError as e:
        DocdLogger.error(f"Invalid configuration: {e}")
        return EXIT_INIT_FAILURE

    DocdLogger.configure(level=config.log_level)
    return asyncio.run(_serve(config))


if __name__ == "__main__":
    sys.exit(main())
