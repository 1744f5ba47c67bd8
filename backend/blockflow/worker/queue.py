"""Background run queue: asyncio worker tasks draining queued runs.

Scheduled triggers enqueue here instead of sleeping inside a handler, so a
firing never blocks the caller and concurrency is bounded by the number of
workers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from blockflow.config import settings
from blockflow.services.graph_repository import StoredWorkflow

logger = logging.getLogger("blockflow.worker.queue")

Runner = Callable[[StoredWorkflow, dict[str, Any], str, Any, str], Awaitable[Any]]


@dataclass
class QueuedRun:
    workflow: StoredWorkflow
    context: dict[str, Any] = field(default_factory=dict)
    actor_id: Any = None
    trigger_type: str = "onSchedule"


class RunQueue:
    def __init__(self, runner: Runner, concurrency: int | None = None) -> None:
        self._runner = runner
        self.concurrency = concurrency or settings.RUN_QUEUE_CONCURRENCY
        self._queue: asyncio.Queue[QueuedRun] = asyncio.Queue()
        self._workers: list[asyncio.Task[Any]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._work(i), name=f"run-queue-{i}")
            for i in range(self.concurrency)
        ]
        logger.info("RunQueue started with %d worker(s)", self.concurrency)

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("RunQueue stopped")

    def enqueue(self, item: QueuedRun) -> None:
        self._queue.put_nowait(item)
        logger.debug("Queued %s run for workflow %s", item.trigger_type, item.workflow.workflow_id)

    def pending(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        await self._queue.join()

    async def _work(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._runner(
                    item.workflow, item.context, item.workflow.tenant_id, item.actor_id, item.trigger_type
                )
            except Exception:
                logger.exception("Queued run for workflow %s failed", item.workflow.workflow_id)
            finally:
                self._queue.task_done()
