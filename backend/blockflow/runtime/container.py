"""Runtime wiring: one object holding the scheduler and its collaborators.

``build_runtime`` assembles the production graph of objects (SQL stores,
real connectors); tests call it with in-memory replacements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from blockflow.compiler.ir import Graph
from blockflow.config import settings
from blockflow.handlers.base import HandlerRegistry
from blockflow.handlers.registry import BlockServices, build_default_registry
from blockflow.runtime.execution import ExecutionScheduler
from blockflow.runtime.scheduler import TriggerScheduler
from blockflow.runtime.state import ExecutionResult
from blockflow.services.graph_repository import GraphRepository, StoredWorkflow
from blockflow.services.record_events import NotifyingRecordStore, RecordChangeNotifier
from blockflow.services.record_store import RecordStore
from blockflow.services.run_service import RunRecorder
from blockflow.worker.queue import RunQueue

logger = logging.getLogger("blockflow.runtime")


@dataclass
class Runtime:
    executor: ExecutionScheduler
    registry: HandlerRegistry
    graphs: GraphRepository
    records: NotifyingRecordStore
    notifier: RecordChangeNotifier
    recorder: RunRecorder
    queue: RunQueue
    scheduler: TriggerScheduler

    async def execute(
        self,
        graph: Graph,
        context: dict[str, Any],
        tenant_id: str,
        actor_id: Any = None,
        trigger_type: str | None = None,
        run_id: str | None = None,
    ) -> ExecutionResult:
        """Run a graph and record the result in run history."""
        result = await self.executor.run(
            graph, context, tenant_id, actor_id, run_id=run_id, trigger_type=trigger_type
        )
        await self.recorder.record(result, tenant_id, actor_id, trigger_type)
        return result

    async def run_workflow(
        self,
        workflow: StoredWorkflow,
        context: dict[str, Any],
        tenant_id: str,
        actor_id: Any = None,
        trigger_type: str | None = None,
    ) -> ExecutionResult:
        return await self.execute(workflow.graph, context, tenant_id, actor_id, trigger_type)

    async def start(self) -> None:
        self.queue.start()
        if settings.SCHEDULER_ENABLED:
            self.scheduler.start()

    async def stop(self) -> None:
        self.scheduler.stop()
        await self.queue.stop()


def build_runtime(
    graphs: GraphRepository | None = None,
    records: RecordStore | None = None,
    recorder: RunRecorder | None = None,
    services: BlockServices | None = None,
    max_iterations: int | None = None,
) -> Runtime:
    """Wire a Runtime; unspecified collaborators default to the SQL-backed ones."""
    if graphs is None or records is None or recorder is None:
        from blockflow.db.engine import async_session
        from blockflow.services.graph_repository import SqlGraphRepository
        from blockflow.services.record_store import SqlRecordStore
        from blockflow.services.run_service import SqlRunRecorder

        graphs = graphs or SqlGraphRepository(async_session)
        records = records or SqlRecordStore(async_session)
        recorder = recorder or SqlRunRecorder(async_session)

    notifier = RecordChangeNotifier(graphs)
    store = NotifyingRecordStore(records, notifier)
    services = services or BlockServices()
    services.records = store
    registry = build_default_registry(services)
    executor = ExecutionScheduler(registry, max_iterations)

    runtime = Runtime(
        executor=executor,
        registry=registry,
        graphs=graphs,
        records=store,
        notifier=notifier,
        recorder=recorder,
        queue=None,  # type: ignore[arg-type]
        scheduler=None,  # type: ignore[arg-type]
    )
    notifier.bind(runtime.run_workflow)
    runtime.queue = RunQueue(runtime.run_workflow)
    runtime.scheduler = TriggerScheduler(graphs, runtime.queue)
    return runtime
