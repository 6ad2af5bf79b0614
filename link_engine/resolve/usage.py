"""Best-effort background usage recording for matched catalog entries."""

import asyncio
import logging
from typing import Awaitable, Callable

from link_engine import metrics

logger = logging.getLogger(__name__)


class UsageRecorder:
    """
    Fire-and-forget wrapper around a ``record_usage(entry_id)`` coroutine.

    Tasks are referenced until they finish so they are not garbage collected
    mid-flight; failures are logged and counted, never raised to the caller.
    """

    def __init__(self, record_usage: Callable[[str], Awaitable[None]]):
        self._record_usage = record_usage
        self._tasks: set[asyncio.Task] = set()

    def record(self, entry_id: str) -> None:
        task = asyncio.create_task(self._run(entry_id), name=f"record-usage-{entry_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, entry_id: str) -> None:
        try:
            await self._record_usage(entry_id)
        except Exception as e:
            metrics.usage_record_failures_total.inc()
            logger.warning(f"Failed to record usage for link {entry_id}: {e}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight recordings (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
