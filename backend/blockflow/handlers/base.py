"""Handler contract and the dispatch table injected into the execution scheduler.

A handler is any object with ``async execute(config, context, tenant_id, actor_id)``
returning an :class:`Outcome`.  Handlers built on :class:`BlockHandler` convert
internal faults into a failed Outcome; anything that still escapes a handler
is treated by the scheduler as fatal for the run.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from blockflow.compiler.blocks import BLOCK_TYPES

logger = logging.getLogger("blockflow.handlers")


# ── Outcome ─────────────────────────────────────────────────────


@dataclass
class Outcome:
    success: bool
    context_patch: dict[str, Any] = field(default_factory=dict)
    # bool for conditions, a case label for multi-way nodes, None otherwise
    routing_hint: bool | str | None = None
    message: str | None = None
    error: str | None = None
    # triggers only: False means the inbound event did not match the filter
    triggered: bool | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def failed(cls, error: str, **kwargs: Any) -> "Outcome":
        return cls(success=False, error=error, **kwargs)

    @classmethod
    def not_triggered(cls, message: str, **kwargs: Any) -> "Outcome":
        return cls(success=False, triggered=False, message=message, **kwargs)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Handler protocol ────────────────────────────────────────────


class Handler(Protocol):
    async def execute(
        self,
        config: Any,
        context: dict[str, Any],
        tenant_id: str,
        actor_id: str | None,
    ) -> Outcome: ...


class BlockHandler:
    """Base class: subclasses implement ``run``; faults become failed Outcomes."""

    block_type: str = ""

    async def execute(
        self,
        config: Any,
        context: dict[str, Any],
        tenant_id: str,
        actor_id: str | None,
    ) -> Outcome:
        try:
            return await self.run(config, context, tenant_id, actor_id)
        except Exception as exc:
            logger.warning("Block %s failed: %s", self.block_type, exc, exc_info=True)
            return self.on_error(exc)

    async def run(
        self,
        config: Any,
        context: dict[str, Any],
        tenant_id: str,
        actor_id: str | None,
    ) -> Outcome:
        raise NotImplementedError

    def on_error(self, exc: Exception) -> Outcome:
        return Outcome.failed(str(exc) or exc.__class__.__name__)


# ── Dispatch table ──────────────────────────────────────────────


class UnknownBlockTypeError(KeyError):
    pass


class HandlerRegistry:
    """Explicit block-type -> handler table.  Built once, then read-only."""

    def __init__(self, handlers: dict[str, Handler] | None = None) -> None:
        self._handlers: dict[str, Handler] = {}
        for block_type, handler in (handlers or {}).items():
            self.register(block_type, handler)

    def register(self, block_type: str, handler: Handler) -> None:
        if block_type not in BLOCK_TYPES:
            raise UnknownBlockTypeError(block_type)
        self._handlers[block_type] = handler

    def get(self, block_type: str) -> Handler:
        try:
            return self._handlers[block_type]
        except KeyError:
            raise UnknownBlockTypeError(block_type) from None

    def __contains__(self, block_type: object) -> bool:
        return block_type in self._handlers

    @property
    def block_types(self) -> set[str]:
        return set(self._handlers)
