"""Run result returned by the execution scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Status
COMPLETED = "completed"
FAILED = "failed"
ABORTED = "aborted"

# Termination reason
END_OF_PATH = "end_of_path"
CYCLE_DETECTED = "cycle_detected"
ITERATION_LIMIT = "iteration_limit"
NOT_TRIGGERED = "not_triggered"
HANDLER_ERROR = "handler_error"
ACTION_FAILED = "action_failed"
CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    run_id: str
    status: str
    termination: str
    trace: list[dict[str, Any]] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    workflow_id: str | None = None
    start_node_id: str | None = None
    error: str | None = None
    started_at: str | None = None
    ended_at: str | None = None

    @property
    def executed_node_ids(self) -> list[str]:
        return [entry["nodeId"] for entry in self.trace]

    def summary(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "workflowId": self.workflow_id,
            "status": self.status,
            "termination": self.termination,
            "trace": self.trace,
            "error": self.error,
        }
