"""Execution scheduler: single-pass walk of a workflow graph.

One run starts at a trigger node, invokes each node's handler in turn,
merges the handler's context patch into the run context and follows the
connector picked by the router.  A run stops at the end of a path, on a
revisit (cycle), at the iteration cap, on cancellation, when the start
trigger does not fire, or when an action fails without ``continueOnError``.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from blockflow.compiler.ir import Graph, Node, NodeKind
from blockflow.config import settings
from blockflow.handlers.base import HandlerRegistry, Outcome, utcnow_iso
from blockflow.runtime import state as run_state
from blockflow.runtime.router import build_edge_index, next_node
from blockflow.runtime.state import ExecutionResult
from blockflow.utils import run_cancel
from blockflow.utils.logger import ctx_node_id, ctx_run_id, ctx_tenant_id, ctx_workflow_id
from blockflow.utils.redaction import redact_sensitive_data

logger = logging.getLogger("blockflow.execution")

# Context key that identifies the shape of an inbound event, in priority order.
EVENT_SHAPES: tuple[tuple[str, str], ...] = (
    ("webhookPayload", "onWebhook"),
    ("createdRecord", "onRecordCreate"),
    ("updatedRecord", "onRecordUpdate"),
    ("dropData", "onDrop"),
    ("formData", "onSubmit"),
    ("loginUser", "onLogin"),
    ("loginResponse", "onLogin"),
    ("authResponse", "onLogin"),
    ("scheduledAt", "onSchedule"),
    ("clickedElementId", "onClick"),
    ("pageId", "onPageLoad"),
)


def infer_trigger_type(context: dict[str, Any]) -> str | None:
    for key, trigger_type in EVENT_SHAPES:
        if key in context:
            return trigger_type
    return None


_RECORD_TRIGGERS = frozenset({"onRecordCreate", "onRecordUpdate"})


def select_start_node(graph: Graph, context: dict[str, Any], trigger_type: str | None = None) -> Node | None:
    """Pick the trigger node a run starts from.

    Among triggers of the wanted type, the one named by ``scheduleNodeId``
    wins, then a record trigger watching ``triggerTableName``, then the
    first declared.  With no matching type the first declared trigger is
    used.
    """
    triggers = sorted(graph.triggers, key=lambda n: n.position)
    if not triggers:
        return None
    wanted = trigger_type or infer_trigger_type(context)
    candidates = [node for node in triggers if node.type == wanted] if wanted else []
    if not candidates:
        return triggers[0]

    schedule_node_id = context.get("scheduleNodeId")
    if schedule_node_id:
        for node in candidates:
            if node.node_id == schedule_node_id:
                return node

    table = context.get("triggerTableName")
    if table and wanted in _RECORD_TRIGGERS:
        for node in candidates:
            if getattr(node.options, "table_name", None) == table or node.config.get("tableName") == table:
                return node
    return candidates[0]


def merge_context(context: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Later keys shadow earlier ones; keys the patch does not mention survive."""
    if not patch:
        return context
    return {**context, **patch}


def _trace_entry(node: Node, outcome: Outcome | None = None, error: str | None = None) -> dict[str, Any]:
    entry: dict[str, Any] = {"nodeId": node.node_id, "nodeType": node.type, "kind": node.kind.value}
    if outcome is not None:
        entry["outcome"] = redact_sensitive_data(outcome.to_dict())
    if error is not None:
        entry["error"] = error
    return entry


class ExecutionScheduler:
    """Runs graphs against an injected handler registry.  Holds no per-run state."""

    def __init__(self, registry: HandlerRegistry, max_iterations: int | None = None) -> None:
        self.registry = registry
        self.max_iterations = max_iterations or settings.MAX_ITERATIONS

    async def run(
        self,
        graph: Graph,
        initial_context: dict[str, Any] | None = None,
        tenant_id: str = "default",
        actor_id: str | None = None,
        run_id: str | None = None,
        trigger_type: str | None = None,
    ) -> ExecutionResult:
        run_id = run_id or str(uuid.uuid4())
        context: dict[str, Any] = dict(initial_context or {})
        result = ExecutionResult(
            run_id=run_id,
            status=run_state.COMPLETED,
            termination=run_state.END_OF_PATH,
            workflow_id=graph.workflow_id,
            started_at=utcnow_iso(),
        )

        tokens = (
            ctx_run_id.set(run_id),
            ctx_tenant_id.set(tenant_id),
            ctx_workflow_id.set(graph.workflow_id),
        )
        run_cancel.register(run_id)
        try:
            start = select_start_node(graph, context, trigger_type)
            if start is None:
                result.status = run_state.FAILED
                result.termination = run_state.HANDLER_ERROR
                result.error = "Workflow has no trigger node"
                return result
            result.start_node_id = start.node_id
            logger.info("Run %s started at %s (%s)", run_id, start.node_id, start.type)
            context = await self._walk(graph, start, context, tenant_id, actor_id, result)
        finally:
            run_cancel.deregister(run_id)
            for var, token in zip((ctx_run_id, ctx_tenant_id, ctx_workflow_id), tokens):
                var.reset(token)
            result.context = context
            result.ended_at = utcnow_iso()

        logger.info(
            "Run %s %s (%s) after %d node(s)",
            run_id, result.status, result.termination, len(result.trace),
        )
        return result

    async def _walk(
        self,
        graph: Graph,
        start: Node,
        context: dict[str, Any],
        tenant_id: str,
        actor_id: str | None,
        result: ExecutionResult,
    ) -> dict[str, Any]:
        nodes = graph.node_map()
        edge_index = build_edge_index(graph.edges)
        visited: set[str] = set()
        current: Node | None = start
        iterations = 0

        while current is not None:
            if iterations >= self.max_iterations:
                logger.warning("Run %s hit the iteration cap (%d)", result.run_id, self.max_iterations)
                result.termination = run_state.ITERATION_LIMIT
                return context
            if current.node_id in visited:
                logger.warning("Cycle detected at node %s; stopping run %s", current.node_id, result.run_id)
                result.termination = run_state.CYCLE_DETECTED
                return context
            if run_cancel.is_cancelled(result.run_id):
                result.status = run_state.ABORTED
                result.termination = run_state.CANCELLED
                return context

            visited.add(current.node_id)
            iterations += 1
            node = current
            token = ctx_node_id.set(node.node_id)
            started = time.monotonic()
            try:
                handler = self.registry.get(node.type)
                outcome = await handler.execute(
                    node.options if node.options is not None else node.config,
                    context,
                    tenant_id,
                    actor_id,
                )
            except run_cancel.RunCancelledError:
                result.trace.append(_trace_entry(node, error="cancelled"))
                result.status = run_state.ABORTED
                result.termination = run_state.CANCELLED
                return context
            except Exception as exc:
                logger.exception("Handler for node %s (%s) raised", node.node_id, node.type)
                result.trace.append(_trace_entry(node, error=str(exc) or exc.__class__.__name__))
                result.status = run_state.FAILED
                result.termination = run_state.HANDLER_ERROR
                result.error = f"Node {node.node_id}: {exc}"
                return context
            finally:
                ctx_node_id.reset(token)

            entry = _trace_entry(node, outcome)
            entry["durationMs"] = int((time.monotonic() - started) * 1000)
            result.trace.append(entry)
            context = merge_context(context, outcome.context_patch)

            if node.kind == NodeKind.TRIGGER and not outcome.success:
                result.termination = run_state.NOT_TRIGGERED
                if outcome.triggered is not False:
                    result.status = run_state.FAILED
                    result.error = outcome.error
                return context
            if node.kind == NodeKind.ACTION and not outcome.success and not node.continue_on_error:
                logger.warning("Action %s (%s) failed: %s", node.node_id, node.type, outcome.error)
                result.status = run_state.FAILED
                result.termination = run_state.ACTION_FAILED
                result.error = outcome.error or outcome.message
                return context

            target = next_node(node, outcome, edge_index)
            current = nodes.get(target) if target else None

        return context
