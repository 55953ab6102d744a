"""Progress heartbeat for long-running awaits."""

import asyncio
import contextlib
import logging
import time
from typing import AsyncIterator

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def heartbeat(label: str, interval_seconds: float = 60.0) -> AsyncIterator[None]:
    """Log a "still waiting" line every ``interval_seconds`` while the body runs.

    A non-positive interval disables the heartbeat.
    """
    if interval_seconds <= 0:
        yield
        return

    started = time.monotonic()

    async def _beat() -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            logger.info("%s: still waiting (%.0fs elapsed)", label, time.monotonic() - started)

    task = asyncio.create_task(_beat())
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
