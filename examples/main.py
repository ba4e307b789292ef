import asyncio
import tempfile

from docd.client import DocdClient
from docd.config import DocdConfig
from docd.daemon import run_daemon
from docd.logger import DocdLogger

URI = "file:///tmp/report.pdf"


async def viewer(name: str, socket_path, hold: float) -> None:
    """open URI, keep it for `hold` seconds if we own it"""
    async with await DocdClient.connect(socket_path) as client:
        owner = await client.register_document(URI)
        if owner:
            DocdLogger.info(f"{name}: {URI} already open in {owner}, deferring")
            return
        DocdLogger.info(f"{name}: opened {URI} as {client.unique_name}")
        await asyncio.sleep(hold)
    DocdLogger.info(f"{name}: closed, ownership released")


async def main() -> int:
    """run a daemon with a short idle timeout and two competing viewers"""
    config = DocdConfig(
        runtime_dir=tempfile.mkdtemp(prefix="docd-"),
        idle_timeout=2.0,
        migrate=False,
    )
    daemon = asyncio.create_task(run_daemon(config))

    while not config.socket_path.exists():
        await asyncio.sleep(0.01)

    first = asyncio.create_task(viewer("viewer-1", config.socket_path, hold=1.0))
    await asyncio.sleep(0.2)
    # viewer-1 still holds the document
    await viewer("viewer-2", config.socket_path, hold=0)
    await first
    await asyncio.sleep(0.1)
    # viewer-1 went away, so the document is free again
    await viewer("viewer-3", config.socket_path, hold=0.5)

    exit_code = await daemon
    DocdLogger.info(f"Daemon idled out with exit code {exit_code}")
    return exit_code


if __name__ == "__main__":
    asyncio.run(main())
