"""Run history: persists ExecutionResults and reads them back."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from blockflow.db.models import Run
from blockflow.runtime.state import ExecutionResult
from blockflow.utils.redaction import redact_sensitive_data


def run_to_dict(run: Run) -> dict[str, Any]:
    return {
        "runId": run.run_id,
        "tenantId": run.tenant_id,
        "workflowId": run.workflow_id,
        "actorId": run.actor_id,
        "triggerType": run.trigger_type,
        "status": run.status,
        "termination": run.termination,
        "trace": json.loads(run.trace_json) if run.trace_json else [],
        "context": json.loads(run.context_json) if run.context_json else {},
        "error": run.error_message,
        "startedAt": run.started_at.isoformat() if run.started_at else None,
        "endedAt": run.ended_at.isoformat() if run.ended_at else None,
    }


def build_run(
    result: ExecutionResult,
    tenant_id: str,
    actor_id: str | None = None,
    trigger_type: str | None = None,
) -> Run:
    return Run(
        run_id=result.run_id,
        tenant_id=tenant_id,
        workflow_id=result.workflow_id,
        actor_id=actor_id,
        trigger_type=trigger_type,
        status=result.status,
        termination=result.termination,
        trace_json=json.dumps(result.trace, default=str),
        context_json=json.dumps(redact_sensitive_data(result.context), default=str),
        error_message=result.error,
        started_at=datetime.fromisoformat(result.started_at) if result.started_at else None,
        ended_at=datetime.fromisoformat(result.ended_at) if result.ended_at else None,
    )


async def save_run(db: AsyncSession, run: Run) -> Run:
    db.add(run)
    await db.flush()
    return run


async def get_run(db: AsyncSession, run_id: str) -> Run | None:
    return await db.get(Run, run_id)


# ── Recorders used by the runtime ───────────────────────────────


class RunRecorder(Protocol):
    async def record(
        self, result: ExecutionResult, tenant_id: str, actor_id: str | None, trigger_type: str | None
    ) -> None: ...

    async def get(self, run_id: str) -> dict[str, Any] | None: ...


class InMemoryRunRecorder:
    def __init__(self) -> None:
        self.runs: dict[str, dict[str, Any]] = {}

    async def record(self, result, tenant_id, actor_id, trigger_type) -> None:
        self.runs[result.run_id] = run_to_dict(build_run(result, tenant_id, actor_id, trigger_type))

    async def get(self, run_id: str) -> dict[str, Any] | None:
        return self.runs.get(run_id)


class SqlRunRecorder:
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def record(self, result, tenant_id, actor_id, trigger_type) -> None:
        async with self._session_factory() as db:
            await save_run(db, build_run(result, tenant_id, actor_id, trigger_type))
            await db.commit()

    async def get(self, run_id: str) -> dict[str, Any] | None:
        async with self._session_factory() as db:
            run = await get_run(db, run_id)
            return run_to_dict(run) if run is not None else None
