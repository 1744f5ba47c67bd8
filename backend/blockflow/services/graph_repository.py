"""Read access to stored workflows.

Workflow authoring lives in another service; the engine only looks graphs up
by id or by the trigger type they start from.  Every graph is loaded through
``load_graph`` so handlers always see validated, typed configuration.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select

from blockflow.compiler.ir import Graph
from blockflow.compiler.loader import load_graph
from blockflow.compiler.validator import ValidationError
from blockflow.db.models import Workflow

logger = logging.getLogger("blockflow.graph_repository")


@dataclass
class StoredWorkflow:
    workflow_id: str
    tenant_id: str
    graph: Graph
    name: str = ""
    enabled: bool = True

    def starts_with(self, trigger_type: str) -> bool:
        return trigger_type in self.graph.trigger_types()


class GraphRepository(Protocol):
    async def get(self, workflow_id: str) -> StoredWorkflow | None: ...

    async def list_by_trigger(self, trigger_type: str, tenant_id: str | None = None) -> list[StoredWorkflow]: ...


def _to_stored(workflow_id: str, tenant_id: str, name: str, enabled: bool, data: dict[str, Any]) -> StoredWorkflow:
    graph = load_graph({**data, "workflowId": workflow_id})
    graph.workflow_id = workflow_id
    graph.name = name or graph.name
    return StoredWorkflow(workflow_id, tenant_id, graph, name, enabled)


class InMemoryGraphRepository:
    def __init__(self) -> None:
        self._workflows: dict[str, StoredWorkflow] = {}

    def add(
        self,
        tenant_id: str,
        data: dict[str, Any],
        workflow_id: str | None = None,
        name: str = "",
        enabled: bool = True,
    ) -> StoredWorkflow:
        """Load and store a graph document; raises ``ValidationError``."""
        workflow_id = workflow_id or data.get("workflowId") or data.get("id") or str(uuid.uuid4())
        stored = _to_stored(str(workflow_id), tenant_id, name, enabled, data)
        self._workflows[stored.workflow_id] = stored
        return stored

    async def get(self, workflow_id: str) -> StoredWorkflow | None:
        return self._workflows.get(workflow_id)

    async def list_by_trigger(self, trigger_type: str, tenant_id: str | None = None) -> list[StoredWorkflow]:
        return [
            wf for wf in self._workflows.values()
            if wf.enabled and wf.starts_with(trigger_type) and (tenant_id is None or wf.tenant_id == tenant_id)
        ]


class SqlGraphRepository:
    """Reads the ``workflows`` table; rows that fail validation are skipped."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def _load(self, row: Workflow) -> StoredWorkflow | None:
        try:
            data = json.loads(row.graph_json or "{}")
            return _to_stored(row.workflow_id, row.tenant_id, row.name, row.enabled, data)
        except (ValidationError, ValueError) as exc:
            logger.warning("Skipping workflow %s: %s", row.workflow_id, exc)
            return None

    async def get(self, workflow_id: str) -> StoredWorkflow | None:
        async with self._session_factory() as db:
            row = await db.get(Workflow, workflow_id)
        return self._load(row) if row is not None else None

    async def list_by_trigger(self, trigger_type: str, tenant_id: str | None = None) -> list[StoredWorkflow]:
        stmt = select(Workflow).where(Workflow.enabled.is_(True))
        if tenant_id is not None:
            stmt = stmt.where(Workflow.tenant_id == tenant_id)
        async with self._session_factory() as db:
            rows = (await db.execute(stmt.order_by(Workflow.created_at))).scalars().all()
        loaded = (self._load(row) for row in rows)
        return [wf for wf in loaded if wf is not None and wf.starts_with(trigger_type)]
