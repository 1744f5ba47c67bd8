"""Tests for the record store implementations and the db.* blocks."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from blockflow.compiler.blocks import parse_block_config
from blockflow.db.models import Base
from blockflow.handlers.records import DbCreateHandler, DbFindHandler, DbUpdateHandler, DbUpsertHandler
from blockflow.services.record_store import (
    InMemoryRecordStore,
    RecordStoreError,
    SqlRecordStore,
    apply_query,
    condition_matches,
    record_matches,
)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
async def sql_store():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlRecordStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


async def _run(handler, block_type: str, config: dict, context: dict | None = None):
    return await handler.execute(parse_block_config(block_type, config), context or {}, "t1", None)


# ── Query helpers ───────────────────────────────────────────────


class TestConditions:
    ROW = {"id": 1, "name": "Ada", "age": 36, "tags": "x", "note": None}

    def test_operators(self):
        assert condition_matches(self.ROW, {"field": "name", "operator": "equals", "value": "Ada"})
        assert condition_matches(self.ROW, {"field": "age", "operator": "greater_than", "value": "30"})
        assert condition_matches(self.ROW, {"field": "name", "operator": "contains", "value": "ad"})
        assert condition_matches(self.ROW, {"field": "age", "operator": "in", "value": "35,36"})
        assert condition_matches(self.ROW, {"field": "note", "operator": "is_null"})
        assert not condition_matches(self.ROW, {"field": "missing", "operator": "less_than", "value": 3})

    def test_unknown_operator(self):
        with pytest.raises(RecordStoreError):
            condition_matches(self.ROW, {"field": "age", "operator": "sounds_like", "value": 1})

    def test_logic_folds_left_to_right(self):
        conditions = [
            {"field": "name", "value": "Bob"},
            {"field": "age", "value": 36, "logic": "OR"},
        ]
        assert record_matches(self.ROW, conditions)
        assert record_matches(self.ROW, [])

    def test_order_and_paging(self):
        rows = [{"n": 3}, {"n": 1}, {"n": 2}]
        ordered = apply_query(rows, None, [{"field": "n", "direction": "DESC"}], limit=None, offset=0)
        assert [r["n"] for r in ordered] == [3, 2, 1]
        page = apply_query(rows, None, [{"field": "n"}], limit=2, offset=1)
        assert [r["n"] for r in page] == [2, 3]


# ── In-memory store ─────────────────────────────────────────────


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_create_strips_reserved_columns(self, store):
        record = await store.create("t1", "leads", {"id": 99, "email": "a@b.com", "tenant_id": "x"})
        assert record["id"] == 1
        assert record["email"] == "a@b.com"
        assert "tenant_id" not in record

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(self, store):
        await store.create("t1", "leads", {"email": "a@b.com"})
        assert await store.find("t2", "leads") == []

    @pytest.mark.asyncio
    async def test_update_reports_changes(self, store):
        await store.create("t1", "leads", {"email": "a@b.com", "status": "open"})
        changes = await store.update("t1", "leads", {"status": "won"}, [{"field": "email", "value": "a@b.com"}])
        assert len(changes) == 1
        assert changes[0].previous["status"] == "open"
        assert changes[0].current["status"] == "won"
        assert changes[0].changed_columns == ["status"]

    @pytest.mark.asyncio
    async def test_update_requires_conditions(self, store):
        with pytest.raises(RecordStoreError):
            await store.update("t1", "leads", {"status": "won"}, [])

    @pytest.mark.asyncio
    async def test_upsert_creates_then_updates(self, store):
        op, change = await store.upsert("t1", "leads", ["email"], {"email": "a@b.com", "score": 1})
        assert op == "created"
        op, change = await store.upsert("t1", "leads", ["email"], {"email": "a@b.com", "score": 2})
        assert op == "updated"
        assert change.current["score"] == 2
        assert len(store.rows("t1", "leads")) == 1

    @pytest.mark.asyncio
    async def test_upsert_requires_unique_fields_in_data(self, store):
        with pytest.raises(RecordStoreError, match="missing unique field"):
            await store.upsert("t1", "leads", ["email"], {"score": 1})


# ── SQL store ───────────────────────────────────────────────────


class TestSqlStore:
    @pytest.mark.asyncio
    async def test_create_and_find(self, sql_store):
        created = await sql_store.create("t1", "leads", {"email": "a@b.com", "score": 5})
        assert created["id"] == 1
        assert created["created_at"]
        rows = await sql_store.find("t1", "leads", [{"field": "score", "operator": "gte", "value": 5}])
        assert [r["email"] for r in rows] == ["a@b.com"]
        assert await sql_store.find("t2", "leads") == []

    @pytest.mark.asyncio
    async def test_update_persists(self, sql_store):
        await sql_store.create("t1", "leads", {"email": "a@b.com", "status": "open"})
        changes = await sql_store.update("t1", "leads", {"status": "won"}, [{"field": "email", "value": "a@b.com"}])
        assert changes[0].changed_columns[0] == "status"
        rows = await sql_store.find("t1", "leads")
        assert rows[0]["status"] == "won"

    @pytest.mark.asyncio
    async def test_upsert(self, sql_store):
        op, _ = await sql_store.upsert("t1", "leads", ["email"], {"email": "a@b.com"})
        assert op == "created"
        op, change = await sql_store.upsert("t1", "leads", ["email"], {"email": "a@b.com"}, {"status": "vip"})
        assert op == "updated"
        assert change.current["status"] == "vip"


# ── db.* blocks ─────────────────────────────────────────────────


class TestDbBlocks:
    @pytest.mark.asyncio
    async def test_create_resolves_templates(self, store):
        outcome = await _run(
            DbCreateHandler(store), "db.create",
            {"tableName": "leads", "insertData": {"email": "{{formData.email}}"}},
            {"formData": {"email": "a@b.com"}},
        )
        assert outcome.success is True
        assert outcome.context_patch["recordId"] == 1
        assert outcome.context_patch["dbCreateResult"]["record"]["email"] == "a@b.com"
        assert store.rows("t1", "leads")[0]["email"] == "a@b.com"

    @pytest.mark.asyncio
    async def test_create_accepts_json_text(self, store):
        outcome = await _run(
            DbCreateHandler(store), "db.create", {"tableName": "leads", "insertData": '{"email": "x@y.io"}'}
        )
        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_create_without_data_fails(self, store):
        outcome = await _run(DbCreateHandler(store), "db.create", {"tableName": "leads"})
        assert outcome.success is False
        assert outcome.error == "No data provided for insert"

    @pytest.mark.asyncio
    async def test_find_with_columns_and_has_more(self, store):
        for i in range(3):
            await store.create("t1", "leads", {"email": f"{i}@b.com", "score": i})
        outcome = await _run(
            DbFindHandler(store), "db.find",
            {
                "tableName": "leads",
                "conditions": [{"field": "score", "operator": "greater_than", "value": "{{min}}"}],
                "orderBy": [{"field": "score", "direction": "desc"}],
                "limit": 1,
                "columns": "email",
            },
            {"min": 0},
        )
        patch = outcome.context_patch
        assert patch["dbFindResult"] == [{"email": "2@b.com"}]
        assert patch["dbFindCount"] == 1
        assert patch["hasMore"] is True

    @pytest.mark.asyncio
    async def test_update(self, store):
        await store.create("t1", "leads", {"email": "a@b.com", "status": "open"})
        outcome = await _run(
            DbUpdateHandler(store), "db.update",
            {
                "tableName": "leads",
                "updateData": {"status": "{{newStatus}}"},
                "whereConditions": [{"field": "email", "value": "a@b.com"}],
            },
            {"newStatus": "won"},
        )
        result = outcome.context_patch["dbUpdateResult"]
        assert result["updatedCount"] == 1
        assert result["updatedRecords"][0]["status"] == "won"

    @pytest.mark.asyncio
    async def test_upsert(self, store):
        config = {"tableName": "leads", "uniqueFields": "email", "insertData": {"email": "{{email}}", "n": 1}}
        first = await _run(DbUpsertHandler(store), "db.upsert", config, {"email": "a@b.com"})
        second = await _run(DbUpsertHandler(store), "db.upsert", config, {"email": "a@b.com"})
        assert first.context_patch["dbUpsertResult"]["operation"] == "created"
        assert second.context_patch["dbUpsertResult"]["operation"] == "updated"
        assert first.context_patch["recordId"] == second.context_patch["recordId"]
