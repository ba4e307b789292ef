"""Configuration loading and merging for docd."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from .exceptions import ValidationError
from .idle_timer import DEFAULT_IDLE_TIMEOUT

SERVICE_NAME = "org.docd.Daemon"
OBJECT_PATH = "/org/docd/Daemon"
INTERFACE_NAME = "org.docd.Daemon"

MIGRATION_MARKER = "migrated"
LEGACY_METADATA = "metadata.xml"
DEFAULT_CONVERTER = "docd-convert-metadata"


def _default_runtime_dir(environ: Mapping[str, str]) -> str:
    xdg = environ.get("XDG_RUNTIME_DIR")
    if xdg:
        return str(Path(xdg) / "docd")
    return f"/tmp/docd-{os.getuid()}"


def _default_legacy_dir(environ: Mapping[str, str]) -> str:
    home = environ.get("HOME") or str(Path.home())
    return str(Path(home) / ".docd")


@dataclass
class DocdConfig:
    # Bus identity
    service_name: str = SERVICE_NAME
    object_path: str = OBJECT_PATH
    interface_name: str = INTERFACE_NAME

    # Directory holding the service socket and its lock file
    runtime_dir: str = ""

    # Seconds the daemon stays alive with no registered document
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT

    # Legacy metadata migration
    legacy_dir: str = ""
    converter: str = DEFAULT_CONVERTER
    migrate: bool = True

    log_level: Optional[str] = None

    @property
    def socket_path(self) -> Path:
        return Path(self.runtime_dir) / f"{self.service_name}.sock"

    @property
    def lock_path(self) -> Path:
        return Path(self.runtime_dir) / f"{self.service_name}.lock"

    @property
    def marker_path(self) -> Path:
        return Path(self.legacy_dir) / MIGRATION_MARKER

    @property
    def legacy_metadata_path(self) -> Path:
        return Path(self.legacy_dir) / LEGACY_METADATA

    def validate(self) -> None:
        """Check values that would break the daemon at runtime.

        Raises:
            ValidationError: If a value is out of range
        """
        if self.idle_timeout <= 0:
            raise ValidationError(
                "idle_timeout", f"idle_timeout must be positive: {self.idle_timeout}"
            )
        if not self.runtime_dir:
            raise ValidationError("runtime_dir", "runtime_dir must be set")


def load_config(environ: Mapping[str, str] | None = None) -> DocdConfig:
    """Build a DocdConfig from environment variables.

    Recognised variables: DOCD_RUNTIME_DIR (else XDG_RUNTIME_DIR/docd),
    DOCD_IDLE_TIMEOUT, DOCD_LEGACY_DIR, DOCD_CONVERTER, DOCD_NO_MIGRATION.

    Raises:
        ValidationError: If DOCD_IDLE_TIMEOUT is not a number
    """
    if environ is None:
        environ = os.environ

    config = DocdConfig(
        runtime_dir=environ.get("DOCD_RUNTIME_DIR") or _default_runtime_dir(environ),
        legacy_dir=environ.get("DOCD_LEGACY_DIR") or _default_legacy_dir(environ),
    )

    timeout = environ.get("DOCD_IDLE_TIMEOUT")
    if timeout:
        try:
            config.idle_timeout = float(timeout)
        except ValueError as e:
            raise ValidationError(
                "DOCD_IDLE_TIMEOUT", f"Not a number: {timeout!r}"
            ) from e

    converter = environ.get("DOCD_CONVERTER")
    if converter:
        config.converter = converter

    if environ.get("DOCD_NO_MIGRATION", "").lower() in ("1", "true", "yes"):
        config.migrate = False

    return config


def merge_cli_args(config: DocdConfig, args) -> DocdConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(DocdConfig):
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)
    return config
