"""Record-change adapter.

``NotifyingRecordStore`` wraps a RecordStore; after each successful write it
hands the change to ``RecordChangeNotifier``, which runs the tenant's
``onRecordCreate`` / ``onRecordUpdate`` workflows inline.  Those runs may
write records themselves, so nesting is capped by ``MAX_RECORD_TRIGGER_DEPTH``.
"""

from __future__ import annotations

import contextvars
import logging
from typing import Any, Awaitable, Callable

from blockflow.config import settings
from blockflow.services.graph_repository import GraphRepository, StoredWorkflow
from blockflow.services.record_store import RecordChange, RecordStore

logger = logging.getLogger("blockflow.record_events")

# (workflow, initial_context, tenant_id, actor_id, trigger_type) -> result
WorkflowRunner = Callable[[StoredWorkflow, dict[str, Any], str, Any, str], Awaitable[Any]]

_depth: contextvars.ContextVar[int] = contextvars.ContextVar("record_trigger_depth", default=0)


class RecordChangeNotifier:
    def __init__(
        self,
        graphs: GraphRepository,
        runner: WorkflowRunner | None = None,
        max_depth: int | None = None,
    ) -> None:
        self._graphs = graphs
        self._runner = runner
        self.max_depth = settings.MAX_RECORD_TRIGGER_DEPTH if max_depth is None else max_depth

    def bind(self, runner: WorkflowRunner) -> None:
        self._runner = runner

    async def _dispatch(self, trigger_type: str, tenant_id: str, actor_id: Any, context: dict[str, Any]) -> list[Any]:
        if self._runner is None:
            return []
        depth = _depth.get()
        if depth >= self.max_depth:
            logger.warning(
                "Skipping %s workflows for %s: nesting depth %d reached",
                trigger_type, context.get("triggerTableName"), depth,
            )
            return []

        workflows = await self._graphs.list_by_trigger(trigger_type, tenant_id)
        results = []
        token = _depth.set(depth + 1)
        try:
            for workflow in workflows:
                logger.info("Record change on %s starts workflow %s", context.get("triggerTableName"), workflow.workflow_id)
                results.append(await self._runner(workflow, dict(context), tenant_id, actor_id, trigger_type))
        finally:
            _depth.reset(token)
        return results

    async def record_created(self, tenant_id: str, table: str, record: dict[str, Any], actor_id: Any = None) -> list[Any]:
        return await self._dispatch("onRecordCreate", tenant_id, actor_id, {
            "triggerTableName": table,
            "createdRecord": record,
        })

    async def record_updated(self, tenant_id: str, table: str, change: RecordChange, actor_id: Any = None) -> list[Any]:
        return await self._dispatch("onRecordUpdate", tenant_id, actor_id, {
            "triggerTableName": table,
            "updatedRecord": change.current,
            "previousRecord": change.previous,
            "changedColumns": change.changed_columns,
        })


class NotifyingRecordStore:
    """RecordStore decorator that reports successful writes to the notifier."""

    def __init__(self, inner: RecordStore, notifier: RecordChangeNotifier) -> None:
        self.inner = inner
        self.notifier = notifier

    async def create(self, tenant_id, table, data):
        record = await self.inner.create(tenant_id, table, data)
        await self.notifier.record_created(tenant_id, table, record)
        return record

    async def find(self, tenant_id, table, conditions=None, order_by=None, limit=100, offset=0):
        return await self.inner.find(tenant_id, table, conditions, order_by, limit, offset)

    async def update(self, tenant_id, table, data, conditions):
        changes = await self.inner.update(tenant_id, table, data, conditions)
        for change in changes:
            await self.notifier.record_updated(tenant_id, table, change)
        return changes

    async def upsert(self, tenant_id, table, unique_fields, insert_data, update_data=None):
        operation, change = await self.inner.upsert(tenant_id, table, unique_fields, insert_data, update_data)
        if operation == "created":
            await self.notifier.record_created(tenant_id, table, change.current)
        else:
            await self.notifier.record_updated(tenant_id, table, change)
        return operation, change
