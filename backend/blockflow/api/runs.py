"""Runs API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from blockflow.compiler.loader import load_graph
from blockflow.compiler.validator import ValidationError
from blockflow.api.deps import get_runtime
from blockflow.runtime.container import Runtime
from blockflow.schemas.runs import CancelOut, RunCreate, RunOut
from blockflow.utils import run_cancel
from blockflow.utils.redaction import redact_sensitive_data

router = APIRouter()


@router.post("", response_model=RunOut)
async def create_run(body: RunCreate, runtime: Runtime = Depends(get_runtime)):
    if body.graph is not None:
        try:
            graph = load_graph(body.graph)
        except ValidationError as exc:
            raise HTTPException(
                status_code=422,
                detail={"message": "Invalid workflow graph", "errors": exc.errors},
            )
    else:
        workflow = await runtime.graphs.get(body.workflow_id)
        if workflow is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        graph = workflow.graph

    result = await runtime.execute(
        graph,
        body.context,
        body.tenant_id,
        body.actor_id,
        trigger_type=body.trigger_type,
        run_id=body.run_id,
    )
    return RunOut(
        run_id=result.run_id,
        workflow_id=result.workflow_id,
        tenant_id=body.tenant_id,
        status=result.status,
        termination=result.termination,
        trace=result.trace,
        context=redact_sensitive_data(result.context),
        error=result.error,
        started_at=result.started_at,
        ended_at=result.ended_at,
    )


@router.get("/{run_id}", response_model=RunOut)
async def get_run(run_id: str, runtime: Runtime = Depends(get_runtime)):
    run = await runtime.recorder.get(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return RunOut.model_validate(run)


@router.post("/{run_id}/cancel", response_model=CancelOut)
async def cancel_run(run_id: str):
    if not run_cancel.mark_cancelled(run_id):
        raise HTTPException(status_code=409, detail="Run is not active")
    return CancelOut(run_id=run_id, cancelled=True)
