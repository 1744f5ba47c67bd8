"""Pydantic models for runs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunCreate(_CamelModel):
    """Run an inline graph or a stored workflow; exactly one of the two."""

    graph: dict[str, Any] | None = None
    workflow_id: str | None = None
    context: dict[str, Any] = {}
    tenant_id: str = "default"
    actor_id: str | None = None
    trigger_type: str | None = None
    run_id: str | None = None  # caller-chosen id, generated when absent

    @model_validator(mode="after")
    def _one_source(self) -> "RunCreate":
        if (self.graph is None) == (self.workflow_id is None):
            raise ValueError("Provide either 'graph' or 'workflowId'")
        return self


class TraceEntry(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    node_id: str
    node_type: str
    kind: str | None = None
    outcome: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: int | None = None


class RunOut(_CamelModel):
    run_id: str
    workflow_id: str | None = None
    tenant_id: str | None = None
    status: str
    termination: str | None = None
    trace: list[TraceEntry] = []
    context: dict[str, Any] = {}
    error: str | None = None
    started_at: str | None = None
    ended_at: str | None = None


class CancelOut(_CamelModel):
    run_id: str
    cancelled: bool
