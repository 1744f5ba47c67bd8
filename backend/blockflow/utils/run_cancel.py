"""Run cancellation: in-process registry of per-run cancellation tokens.

The execution scheduler registers every run on entry and checks the token
before each node invocation; ``POST /api/runs/{run_id}/cancel`` sets it.

Usage:
    # In the cancel endpoint:
    mark_cancelled(run_id)

    # In the run loop (fast synchronous check):
    if is_cancelled(run_id):
        raise RunCancelledError(run_id)
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger("blockflow.run_cancel")

_events: dict[str, asyncio.Event] = {}


class RunCancelledError(Exception):
    """Raised at a node boundary when a cancellation signal is detected."""


def register(run_id: str) -> None:
    """Create a fresh (unset) cancellation event for *run_id*."""
    _events[run_id] = asyncio.Event()
    logger.debug("Cancel registry: registered run %s", run_id)


def mark_cancelled(run_id: str) -> bool:
    """Signal cancellation for *run_id*.  Returns False if the run is not active."""
    event = _events.get(run_id)
    if event is None:
        logger.debug("Cancel registry: run %s not in registry (already finished?)", run_id)
        return False
    event.set()
    logger.info("Cancel registry: signalled run %s", run_id)
    return True


def is_cancelled(run_id: str) -> bool:
    """Return True if a cancellation signal has been set for *run_id*."""
    event = _events.get(run_id)
    return event is not None and event.is_set()


def deregister(run_id: str) -> None:
    """Remove the event for *run_id* (call in the finally block of the run loop)."""
    _events.pop(run_id, None)
    logger.debug("Cancel registry: deregistered run %s", run_id)
