"""SQLite-backed registration store and audit log.

Built on the SQLAlchemy asyncio extension with the aiosqlite driver.
Registration fields live in a JSON document column so that merge writes can
update a subset of fields without a schema change; the token is mirrored into
its own indexed column for audience listing.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Final, Self

import sqlalchemy as sa
from sqlalchemy import MetaData, select
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from push_broadcast.types.models import AuditRecord

__all__ = [
    "AuditRecordRow",
    "Base",
    "RegistrationRow",
    "SqliteAuditLog",
    "SqliteDatabase",
    "SqliteRegistrationStore",
    "database_url",
]

logger = logging.getLogger(__name__)

IN_MEMORY: Final[str] = ":memory:"

NAMING_CONVENTION: Final[dict[str, str]] = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(AsyncAttrs, DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class RegistrationRow(Base):
    """One principal's registration within a partition."""

    __tablename__ = "registrations"
    __table_args__ = (sa.Index("ix_registrations_partition_token", "partition", "token"),)

    partition: Mapped[str] = mapped_column(sa.String(32), primary_key=True)
    principal_id: Mapped[str] = mapped_column(sa.String(255), primary_key=True)
    token: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    document: Mapped[dict[str, object]] = mapped_column(sa.JSON, nullable=False)


class AuditRecordRow(Base):
    """One broadcast's audit record."""

    __tablename__ = "audit_records"

    broadcast_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    sent_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), index=True, nullable=False)
    document: Mapped[dict[str, object]] = mapped_column(sa.JSON, nullable=False)


def database_url(path: Path | str) -> str:
    """Return the SQLAlchemy URL for a database file, or an in-memory one.

    Examples:
        >>> database_url(":memory:")
        'sqlite+aiosqlite://'
        >>> database_url("registry.sqlite3")
        'sqlite+aiosqlite:///registry.sqlite3'
    """
    if str(path) == IN_MEMORY:
        return "sqlite+aiosqlite://"
    return f"sqlite+aiosqlite:///{path}"


class SqliteDatabase:
    """Async engine and session factory for the registration database.

    Example:
        >>> async with SqliteDatabase(Path("push-broadcast.sqlite3")) as db:
        ...     store = SqliteRegistrationStore(db)
    """

    def __init__(self, path: Path | str = IN_MEMORY, *, echo: bool = False) -> None:
        self._path: str = str(path)
        self._echo: bool = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    async def open(self) -> None:
        """Create the engine and any missing tables."""
        if self._engine is not None:
            return

        if self._path == IN_MEMORY:
            # An in-memory database exists only on its own connection
            engine = create_async_engine(
                database_url(self._path),
                echo=self._echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                json_serializer=partial(json.dumps, default=str),
            )
        else:
            engine = create_async_engine(
                database_url(self._path),
                echo=self._echo,
                json_serializer=partial(json.dumps, default=str),
            )

        async with engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)

        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)
        logger.debug("Opened registration database at %s", self._path)

    async def close(self) -> None:
        """Dispose of the engine if open."""
        if self._engine is None:
            return
        engine = self._engine
        self._engine = None
        self._session_factory = None
        await engine.dispose()

    def session(self) -> AsyncSession:
        """Return a new session bound to the engine.

        Raises:
            RuntimeError: If the database has not been opened
        """
        if self._session_factory is None:
            msg = "Database is not open. Use 'async with' or call open() first."
            raise RuntimeError(msg)
        return self._session_factory()


class SqliteRegistrationStore:
    """Registration store keeping one JSON document per principal and partition."""

    def __init__(self, database: SqliteDatabase) -> None:
        self._db: SqliteDatabase = database

    async def get(self, partition: str, principal_id: str) -> Mapping[str, object] | None:
        async with self._db.session() as session:
            row = await session.get(RegistrationRow, (partition, principal_id))
            return dict(row.document) if row is not None else None

    async def merge(
        self,
        partition: str,
        principal_id: str,
        fields: Mapping[str, object],
    ) -> None:
        async with self._db.session() as session, session.begin():
            row = await session.get(RegistrationRow, (partition, principal_id))
            if row is None:
                row = RegistrationRow(
                    partition=partition,
                    principal_id=principal_id,
                    document={"principal_id": principal_id},
                )
                session.add(row)

            # Reassigned rather than mutated so the JSON column is flagged dirty
            document = {**row.document, **fields}
            token = document.get("token")
            row.document = document
            row.token = token if isinstance(token, str) else None

    async def list_with_token(self, partition: str) -> Sequence[Mapping[str, object]]:
        statement = select(RegistrationRow.document).where(
            RegistrationRow.partition == partition,
            RegistrationRow.token.is_not(None),
        )
        async with self._db.session() as session:
            documents = await session.scalars(statement)
            return [dict(document) for document in documents]


class SqliteAuditLog:
    """Audit sink writing one row per broadcast."""

    def __init__(self, database: SqliteDatabase) -> None:
        self._db: SqliteDatabase = database

    async def record(self, entry: AuditRecord) -> None:
        async with self._db.session() as session, session.begin():
            session.add(
                AuditRecordRow(
                    broadcast_id=entry.broadcast_id,
                    sent_at=entry.sent_at,
                    document=entry.to_document(),
                )
            )

    async def list_documents(self, *, limit: int = 50) -> list[dict[str, object]]:
        """Return the most recent audit documents, newest first."""
        statement = select(AuditRecordRow.document).order_by(AuditRecordRow.sent_at.desc()).limit(limit)
        async with self._db.session() as session:
            documents = await session.scalars(statement)
            return [dict(document) for document in documents]
