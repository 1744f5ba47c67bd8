"""Trigger scheduler: APScheduler jobs for workflows that start with onSchedule.

Runs as a background asyncio task. On each sync cycle it:
  1. Loads all enabled workflows whose start trigger is ``onSchedule``
  2. Adds an interval job per enabled schedule node (cron mode uses the
     fixed placeholder delay)
  3. Removes jobs whose workflow or node is gone, disabled or re-timed
  4. Each firing enqueues a run on the RunQueue and returns
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from blockflow.compiler.blocks import ScheduleConfig
from blockflow.config import settings
from blockflow.handlers.base import utcnow_iso
from blockflow.handlers.triggers import schedule_delay_ms
from blockflow.services.graph_repository import GraphRepository
from blockflow.worker.queue import QueuedRun, RunQueue

logger = logging.getLogger("blockflow.scheduler")


def job_id_for(workflow_id: str, node_id: str) -> str:
    return f"schedule_{workflow_id}_{node_id}"


class TriggerScheduler:
    """Thin asyncio wrapper around APScheduler's AsyncIOScheduler."""

    def __init__(
        self,
        graphs: GraphRepository,
        queue: RunQueue,
        sync_interval: int | None = None,
    ) -> None:
        self._graphs = graphs
        self._queue = queue
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._jobs: dict[str, float] = {}  # job_id -> interval seconds
        self._sync_interval = sync_interval or settings.SCHEDULER_SYNC_INTERVAL
        self._sync_task: asyncio.Task[Any] | None = None

    @property
    def jobs(self) -> dict[str, float]:
        return dict(self._jobs)

    # ── Lifecycle ───────────────────────────────────────────────

    def start(self) -> None:
        self._scheduler.start()
        self._sync_task = asyncio.create_task(self._sync_loop())
        logger.info("TriggerScheduler started")

    def stop(self) -> None:
        if self._sync_task:
            self._sync_task.cancel()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("TriggerScheduler stopped")

    # ── Sync loop ───────────────────────────────────────────────

    async def _sync_loop(self) -> None:
        while True:
            try:
                await self.sync_schedules()
            except Exception:
                logger.exception("Error syncing workflow schedules")
            await asyncio.sleep(self._sync_interval)

    async def sync_schedules(self) -> None:
        """Reconcile APScheduler jobs with the stored onSchedule workflows."""
        wanted: dict[str, tuple[str, str, float]] = {}
        for workflow in await self._graphs.list_by_trigger("onSchedule"):
            for node in workflow.graph.triggers:
                if node.type != "onSchedule":
                    continue
                config: ScheduleConfig = node.options
                if not config.enabled:
                    continue
                seconds = schedule_delay_ms(config) / 1000.0
                wanted[job_id_for(workflow.workflow_id, node.node_id)] = (
                    workflow.workflow_id, node.node_id, seconds,
                )

        for job_id, seconds in list(self._jobs.items()):
            if job_id not in wanted or wanted[job_id][2] != seconds:
                if self._scheduler.get_job(job_id):
                    self._scheduler.remove_job(job_id)
                del self._jobs[job_id]
                logger.info("Removed schedule job %s", job_id)

        for job_id, (workflow_id, node_id, seconds) in wanted.items():
            if job_id in self._jobs:
                continue
            self._scheduler.add_job(
                self.fire,
                trigger="interval",
                seconds=seconds,
                kwargs={"workflow_id": workflow_id, "node_id": node_id},
                id=job_id,
                replace_existing=True,
                coalesce=True,
                misfire_grace_time=120,
            )
            self._jobs[job_id] = seconds
            logger.info("Registered schedule job %s every %.0fs", job_id, seconds)

    async def fire(self, workflow_id: str, node_id: str) -> bool:
        """APScheduler job target: enqueue a run and return immediately."""
        workflow = await self._graphs.get(workflow_id)
        if workflow is None or not workflow.enabled:
            logger.info("Schedule fired for missing/disabled workflow %s", workflow_id)
            return False
        self._queue.enqueue(QueuedRun(
            workflow=workflow,
            context={"scheduledAt": utcnow_iso(), "scheduleNodeId": node_id},
            trigger_type="onSchedule",
        ))
        return True
