"""db.* blocks: tenant-scoped record operations through a RecordStore."""

from __future__ import annotations

import logging
import time
from typing import Any

from blockflow.compiler.blocks import DbCreateConfig, DbFindConfig, DbUpdateConfig, DbUpsertConfig
from blockflow.handlers.base import BlockHandler, Outcome
from blockflow.services.record_store import RecordStore
from blockflow.templating.engine import resolve

logger = logging.getLogger("blockflow.handlers.records")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _conditions(items, context: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {**c.model_dump(), "value": resolve(c.value, context), "field": resolve(c.field, context)}
        for c in items
    ]


class RecordHandler(BlockHandler):
    def __init__(self, store: RecordStore) -> None:
        self._store = store


class DbCreateHandler(RecordHandler):
    block_type = "db.create"

    async def run(self, config: DbCreateConfig, context, tenant_id, actor_id) -> Outcome:
        started = time.monotonic()
        table = resolve(config.table_name, context)
        data = resolve(config.insert_data, context)
        if not data:
            raise ValueError("No data provided for insert")

        record = await self._store.create(tenant_id, table, data)
        record_id = record.get("id")
        logger.info("Inserted record %s into %s", record_id, table)
        return Outcome(
            success=True,
            message=f"Data inserted into '{table}' (ID: {record_id})",
            context_patch={
                "recordId": record_id,
                "tableName": table,
                "dbCreateResult": {
                    "tableName": table,
                    "recordId": record_id,
                    "record": record,
                    "executionTime": _elapsed_ms(started),
                },
            },
        )


class DbFindHandler(RecordHandler):
    block_type = "db.find"

    async def run(self, config: DbFindConfig, context, tenant_id, actor_id) -> Outcome:
        started = time.monotonic()
        table = resolve(config.table_name, context)
        conditions = _conditions(config.conditions, context)
        order_by = [o.model_dump() for o in config.order_by]
        rows = await self._store.find(
            tenant_id, table, conditions, order_by, limit=config.limit, offset=config.offset
        )
        if config.columns:
            rows = [{k: row.get(k) for k in config.columns} for row in rows]

        return Outcome(
            success=True,
            message=f"Found {len(rows)} record(s) in '{table}'",
            context_patch={
                "dbFindResult": rows,
                "dbFindCount": len(rows),
                "hasMore": len(rows) == config.limit,
            },
            data={"executionTime": _elapsed_ms(started)},
        )


class DbUpdateHandler(RecordHandler):
    block_type = "db.update"

    async def run(self, config: DbUpdateConfig, context, tenant_id, actor_id) -> Outcome:
        started = time.monotonic()
        table = resolve(config.table_name, context)
        data = resolve(config.update_data, context)
        if not data:
            raise ValueError("No data provided for update")

        changes = await self._store.update(
            tenant_id, table, data, _conditions(config.where_conditions, context)
        )
        return Outcome(
            success=True,
            message=f"Updated {len(changes)} record(s) in '{table}'",
            context_patch={
                "dbUpdateResult": {
                    "tableName": table,
                    "updatedCount": len(changes),
                    "updatedRecords": [c.current for c in changes],
                    "executionTime": _elapsed_ms(started),
                },
            },
        )


class DbUpsertHandler(RecordHandler):
    block_type = "db.upsert"

    async def run(self, config: DbUpsertConfig, context, tenant_id, actor_id) -> Outcome:
        started = time.monotonic()
        table = resolve(config.table_name, context)
        insert_data = resolve(config.insert_data, context) or {}
        update_data = resolve(config.update_data, context) or {}
        if not insert_data:
            insert_data = dict(update_data)

        operation, change = await self._store.upsert(
            tenant_id, table, config.unique_fields, insert_data, update_data or None
        )
        record_id = change.current.get("id")
        return Outcome(
            success=True,
            message=f"Record {record_id} {operation} in '{table}'",
            context_patch={
                "recordId": record_id,
                "dbUpsertResult": {
                    "tableName": table,
                    "operation": operation,
                    "recordId": record_id,
                    "record": change.current,
                    "executionTime": _elapsed_ms(started),
                },
            },
        )
