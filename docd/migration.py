"""One-time migration of legacy document metadata.

Older releases kept document metadata in ``metadata.xml`` inside the legacy
directory. On startup the daemon hands that file to an external converter
once; a marker file records that the migration succeeded. Any failure is
logged and otherwise ignored, the daemon serves requests regardless.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from pathlib import Path

from .config import DocdConfig
from .logger import DocdLogger


def _resolve_converter(converter: str) -> str | None:
    if os.sep in converter:
        return converter if os.access(converter, os.X_OK) else None
    return shutil.which(converter)


def _create_marker(marker: Path) -> bool:
    try:
        fd = os.open(marker, os.O_WRONLY | os.O_CREAT, 0o600)
    except OSError as e:
        DocdLogger.warning(f"Could not create migration marker {marker}: {e}")
        return False
    os.close(fd)
    return True


async def migrate_legacy_metadata(config: DocdConfig) -> bool:
    """Convert the legacy metadata file if that has not happened yet.

    Returns:
        True if a conversion ran and the marker was written
    """
    marker = config.marker_path
    if marker.exists():
        DocdLogger.debug(f"Metadata already migrated ({marker})")
        return False

    legacy = config.legacy_metadata_path
    if not legacy.exists():
        return False

    converter = _resolve_converter(config.converter)
    if converter is None:
        DocdLogger.warning(
            f"Metadata converter {config.converter!r} not found; "
            "legacy metadata left in place"
        )
        return False

    try:
        proc = await asyncio.create_subprocess_exec(converter, str(legacy))
        exit_status = await proc.wait()
    except OSError as e:
        DocdLogger.warning(f"Error migrating metadata: {e}")
        return False

    if exit_status != 0:
        DocdLogger.warning(f"Metadata converter exited with status {exit_status}")
        return False

    DocdLogger.info(f"Migrated legacy metadata from {legacy}")
    return _create_marker(marker)


def _migration_done(task: asyncio.Task[bool]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        DocdLogger.warning(f"Metadata migration failed: {error}")


def start_migration(config: DocdConfig) -> asyncio.Task[bool]:
    """Run the migration in the background and return its task."""
    task = asyncio.get_running_loop().create_task(migrate_legacy_metadata(config))
    task.add_done_callback(_migration_done)
    return task
