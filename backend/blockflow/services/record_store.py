"""Tenant-scoped record store used by the db.* blocks.

Tenant tables are owned by the platform's schema service; the engine only
needs find / create / update / upsert by table name, a condition list,
ordering and pagination.  Two implementations ship here:

* ``InMemoryRecordStore``: process-local, used in tests and dry runs.
* ``SqlRecordStore``: rows in the ``tenant_records`` table, one JSON
  document per record.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blockflow.db.models import TenantRecord

logger = logging.getLogger("blockflow.record_store")

RESERVED_COLUMNS = frozenset({"id", "created_at", "updated_at", "app_id", "tenant_id"})


class RecordStoreError(Exception):
    pass


@dataclass
class RecordChange:
    current: dict[str, Any]
    previous: dict[str, Any] | None = None
    changed_columns: list[str] = field(default_factory=list)


class RecordStore(Protocol):
    async def create(self, tenant_id: str, table: str, data: dict[str, Any]) -> dict[str, Any]: ...

    async def find(
        self,
        tenant_id: str,
        table: str,
        conditions: list[dict[str, Any]] | None = None,
        order_by: list[dict[str, Any]] | None = None,
        limit: int | None = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]: ...

    async def update(
        self,
        tenant_id: str,
        table: str,
        data: dict[str, Any],
        conditions: list[dict[str, Any]],
    ) -> list[RecordChange]: ...

    async def upsert(
        self,
        tenant_id: str,
        table: str,
        unique_fields: list[str],
        insert_data: dict[str, Any],
        update_data: dict[str, Any] | None = None,
    ) -> tuple[str, RecordChange]: ...


# ── Condition evaluation ────────────────────────────────────────


def _num(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare(left: Any, right: Any) -> int | None:
    """-1 / 0 / 1, numeric when both sides are numbers, else by string."""
    lnum, rnum = _num(left), _num(right)
    if lnum is not None and rnum is not None:
        return (lnum > rnum) - (lnum < rnum)
    if left is None or right is None:
        return None
    lstr, rstr = str(left), str(right)
    return (lstr > rstr) - (lstr < rstr)


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return parsed
        return [v.strip() for v in value.split(",")]
    return [value]


def condition_matches(record: dict[str, Any], condition: dict[str, Any]) -> bool:
    actual = record.get(condition.get("field", ""))
    expected = condition.get("value")
    op = (condition.get("operator") or "equals").lower()

    if op in ("is_null", "is_empty"):
        return actual is None or actual == ""
    if op in ("is_not_null", "is_not_empty"):
        return actual is not None and actual != ""
    if op in ("in", "not_in"):
        members = {str(v) for v in _as_list(expected)}
        return (str(actual) in members) == (op == "in")
    if op in ("contains", "not_contains"):
        found = actual is not None and str(expected).lower() in str(actual).lower()
        return found == (op == "contains")
    if op == "starts_with":
        return actual is not None and str(actual).startswith(str(expected))
    if op == "ends_with":
        return actual is not None and str(actual).endswith(str(expected))

    cmp = _compare(actual, expected)
    if op in ("equals", "eq", "="):
        return cmp == 0 if cmp is not None else actual == expected
    if op in ("not_equals", "ne", "!="):
        return cmp != 0 if cmp is not None else actual != expected
    if cmp is None:
        return False
    if op in ("greater_than", "gt", ">"):
        return cmp > 0
    if op in ("less_than", "lt", "<"):
        return cmp < 0
    if op in ("greater_equal", "greater_than_or_equal", "gte", ">="):
        return cmp >= 0
    if op in ("less_equal", "less_than_or_equal", "lte", "<="):
        return cmp <= 0
    raise RecordStoreError(f"Unsupported condition operator '{op}'")


def record_matches(record: dict[str, Any], conditions: Iterable[dict[str, Any]] | None) -> bool:
    """Fold conditions left to right; each condition's ``logic`` joins it to
    the result so far."""
    result: bool | None = None
    for condition in conditions or []:
        matched = condition_matches(record, condition)
        if result is None:
            result = matched
        elif str(condition.get("logic", "AND")).upper() == "OR":
            result = result or matched
        else:
            result = result and matched
    return True if result is None else result


def _sort_key(name: str) -> Callable[[dict[str, Any]], tuple]:
    def key(record: dict[str, Any]) -> tuple:
        value = record.get(name)
        num = _num(value)
        if value is None:
            return (1, 0, "")
        if num is not None:
            return (0, 0, num)
        return (0, 1, str(value))
    return key


def apply_query(
    records: Iterable[dict[str, Any]],
    conditions: list[dict[str, Any]] | None,
    order_by: list[dict[str, Any]] | None,
    limit: int | None,
    offset: int,
) -> list[dict[str, Any]]:
    rows = [r for r in records if record_matches(r, conditions)]
    for order in reversed(order_by or []):
        rows.sort(
            key=_sort_key(order.get("field", "")),
            reverse=str(order.get("direction", "ASC")).upper() == "DESC",
        )
    if offset:
        rows = rows[offset:]
    if limit is not None and limit >= 0:
        rows = rows[:limit]
    return rows


def clean_data(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in (data or {}).items() if k not in RESERVED_COLUMNS}


def _changed(before: dict[str, Any], after: dict[str, Any]) -> list[str]:
    return [k for k, v in after.items() if k not in RESERVED_COLUMNS and before.get(k) != v]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unique_conditions(unique_fields: list[str], data: dict[str, Any]) -> list[dict[str, Any]]:
    missing = [f for f in unique_fields if f not in data]
    if missing:
        raise RecordStoreError(f"Upsert data is missing unique field(s): {', '.join(missing)}")
    return [{"field": f, "operator": "equals", "value": data[f]} for f in unique_fields]


# ── In-memory implementation ────────────────────────────────────


class InMemoryRecordStore:
    def __init__(self) -> None:
        self._tables: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    def rows(self, tenant_id: str, table: str) -> list[dict[str, Any]]:
        return [dict(r) for r in self._tables.get((tenant_id, table), [])]

    async def create(self, tenant_id: str, table: str, data: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            now = _now()
            record = {"id": self._next_id, **clean_data(data), "created_at": now, "updated_at": now}
            self._next_id += 1
            self._tables.setdefault((tenant_id, table), []).append(record)
            return dict(record)

    async def find(self, tenant_id, table, conditions=None, order_by=None, limit=100, offset=0):
        return [dict(r) for r in apply_query(
            self._tables.get((tenant_id, table), []), conditions, order_by, limit, offset
        )]

    async def update(self, tenant_id, table, data, conditions):
        if not conditions:
            raise RecordStoreError("Update requires at least one where condition")
        changes = []
        async with self._lock:
            for record in self._tables.get((tenant_id, table), []):
                if not record_matches(record, conditions):
                    continue
                previous = dict(record)
                record.update(clean_data(data))
                record["updated_at"] = _now()
                changes.append(RecordChange(dict(record), previous, _changed(previous, record)))
        return changes

    async def upsert(self, tenant_id, table, unique_fields, insert_data, update_data=None):
        lookup = _unique_conditions(unique_fields, {**(update_data or {}), **insert_data})
        existing = await self.find(tenant_id, table, lookup, limit=1)
        if existing:
            changes = await self.update(
                tenant_id, table, update_data or insert_data, [{"field": "id", "value": existing[0]["id"]}]
            )
            return "updated", changes[0]
        record = await self.create(tenant_id, table, {**insert_data})
        return "created", RecordChange(record)


# ── SQL implementation ──────────────────────────────────────────


def _row_to_record(row: TenantRecord) -> dict[str, Any]:
    data = json.loads(row.data_json or "{}")
    return {
        "id": row.id,
        **data,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


class SqlRecordStore:
    """Records as JSON documents in ``tenant_records``; filtering happens in Python."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def _rows(self, db: AsyncSession, tenant_id: str, table: str) -> list[TenantRecord]:
        result = await db.execute(
            select(TenantRecord)
            .where(TenantRecord.tenant_id == tenant_id, TenantRecord.table_name == table)
            .order_by(TenantRecord.id)
        )
        return list(result.scalars().all())

    async def create(self, tenant_id: str, table: str, data: dict[str, Any]) -> dict[str, Any]:
        async with self._session_factory() as db:
            row = TenantRecord(
                tenant_id=tenant_id,
                table_name=table,
                data_json=json.dumps(clean_data(data), default=str),
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            logger.debug("Created record %s in %s/%s", row.id, tenant_id, table)
            return _row_to_record(row)

    async def find(self, tenant_id, table, conditions=None, order_by=None, limit=100, offset=0):
        async with self._session_factory() as db:
            rows = await self._rows(db, tenant_id, table)
        return apply_query((_row_to_record(r) for r in rows), conditions, order_by, limit, offset)

    async def update(self, tenant_id, table, data, conditions):
        if not conditions:
            raise RecordStoreError("Update requires at least one where condition")
        changes = []
        async with self._session_factory() as db:
            for row in await self._rows(db, tenant_id, table):
                previous = _row_to_record(row)
                if not record_matches(previous, conditions):
                    continue
                merged = {k: v for k, v in previous.items() if k not in RESERVED_COLUMNS}
                merged.update(clean_data(data))
                row.data_json = json.dumps(merged, default=str)
                row.updated_at = datetime.now(timezone.utc)
                current = {**previous, **clean_data(data), "updated_at": row.updated_at.isoformat()}
                changes.append(RecordChange(current, previous, _changed(previous, current)))
            await db.commit()
        return changes

    async def upsert(self, tenant_id, table, unique_fields, insert_data, update_data=None):
        lookup = _unique_conditions(unique_fields, {**(update_data or {}), **insert_data})
        existing = await self.find(tenant_id, table, lookup, limit=1)
        if existing:
            changes = await self.update(
                tenant_id, table, update_data or insert_data, [{"field": "id", "value": existing[0]["id"]}]
            )
            return "updated", changes[0]
        record = await self.create(tenant_id, table, insert_data)
        return "created", RecordChange(record)
