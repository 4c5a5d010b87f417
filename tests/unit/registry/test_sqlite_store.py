"""Tests for the SQLAlchemy-backed registration store and audit log."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
from sqlalchemy.exc import IntegrityError

from push_broadcast.registry.sqlite import (
    RegistrationRow,
    SqliteAuditLog,
    SqliteDatabase,
    SqliteRegistrationStore,
    database_url,
)
from push_broadcast.types.models import Audience, AuditRecord, BroadcastStatus


def _audit_record(broadcast_id: str, hour: int) -> AuditRecord:
    return AuditRecord(
        broadcast_id=broadcast_id,
        title="T",
        message="M",
        audience=Audience.ALL,
        sent_at=datetime(2024, 5, 1, hour, tzinfo=UTC),
        status=BroadcastStatus.SENT,
        attempted=3,
        delivered=2,
        failed=1,
        recipients_by_class={"user": 2, "agent": 1},
    )


class TestDatabaseUrl:
    def test_in_memory(self) -> None:
        assert database_url(":memory:") == "sqlite+aiosqlite://"

    def test_file(self, tmp_path: Path) -> None:
        path = tmp_path / "registry.sqlite3"

        assert database_url(path) == f"sqlite+aiosqlite:///{path}"


class TestSqliteRegistrationStore:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, database: SqliteDatabase) -> None:
        assert await SqliteRegistrationStore(database).get("users", "nobody") is None

    @pytest.mark.asyncio
    async def test_merge_creates_then_updates(self, database: SqliteDatabase) -> None:
        store = SqliteRegistrationStore(database)

        await store.merge("users", "p1", {"display_name": "Ada"})
        await store.merge("users", "p1", {"token": "tok-A"})

        assert await store.get("users", "p1") == {"principal_id": "p1", "display_name": "Ada", "token": "tok-A"}

    @pytest.mark.asyncio
    async def test_partitions_are_separate(self, database: SqliteDatabase) -> None:
        store = SqliteRegistrationStore(database)
        await store.merge("users", "p1", {"token": "tok-user"})
        await store.merge("agents", "p1", {"token": "tok-agent"})

        users = await store.list_with_token("users")
        agents = await store.list_with_token("agents")

        assert [r["token"] for r in users] == ["tok-user"]
        assert [r["token"] for r in agents] == ["tok-agent"]

    @pytest.mark.asyncio
    async def test_records_without_token_are_not_listed(self, database: SqliteDatabase) -> None:
        store = SqliteRegistrationStore(database)
        await store.merge("users", "p1", {"display_name": "no device"})

        assert await store.list_with_token("users") == []

    @pytest.mark.asyncio
    async def test_token_column_follows_document(self, database: SqliteDatabase) -> None:
        store = SqliteRegistrationStore(database)
        await store.merge("users", "p1", {"token": "tok-A"})

        async with database.session() as session:
            row = await session.get(RegistrationRow, ("users", "p1"))
            assert row is not None
            assert row.token == "tok-A"

        await store.merge("users", "p1", {"token": None})

        assert await store.list_with_token("users") == []
        assert await store.get("users", "p1") == {"principal_id": "p1", "token": None}

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "registry.sqlite3"
        async with SqliteDatabase(path) as db:
            await SqliteRegistrationStore(db).merge("users", "p1", {"token": "tok-A"})

        async with SqliteDatabase(path) as db:
            record = await SqliteRegistrationStore(db).get("users", "p1")

        assert record is not None
        assert record["token"] == "tok-A"

    @pytest.mark.asyncio
    async def test_closed_database_raises(self) -> None:
        db = SqliteDatabase()

        with pytest.raises(RuntimeError, match="not open"):
            _ = await SqliteRegistrationStore(db).get("users", "p1")


class TestSqliteAuditLog:
    @pytest.mark.asyncio
    async def test_documents_newest_first(self, database: SqliteDatabase) -> None:
        audit = SqliteAuditLog(database)
        await audit.record(_audit_record("b1", 9))
        await audit.record(_audit_record("b2", 10))

        documents = await audit.list_documents()

        assert [d["broadcast_id"] for d in documents] == ["b2", "b1"]
        assert documents[0]["recipients_by_class"] == {"user": 2, "agent": 1}
        assert documents[0]["status"] == "sent"

    @pytest.mark.asyncio
    async def test_duplicate_broadcast_id_rejected(self, database: SqliteDatabase) -> None:
        audit = SqliteAuditLog(database)
        await audit.record(_audit_record("b1", 9))

        with pytest.raises(IntegrityError):
            await audit.record(_audit_record("b1", 10))

        assert len(await audit.list_documents()) == 1

    @pytest.mark.asyncio
    async def test_limit(self, database: SqliteDatabase) -> None:
        audit = SqliteAuditLog(database)
        for hour in range(5):
            await audit.record(_audit_record(f"b{hour}", hour))

        assert len(await audit.list_documents(limit=2)) == 2
