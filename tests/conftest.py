"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from datetime import UTC, datetime

import pytest
import pytest_asyncio

from push_broadcast.core.dispatcher import BatchDispatcher
from push_broadcast.core.orchestrator import BroadcastOrchestrator
from push_broadcast.registry.client import RegistryClient
from push_broadcast.registry.memory import InMemoryAuditLog, InMemoryRegistrationStore
from push_broadcast.registry.sqlite import SqliteDatabase
from push_broadcast.types.models import Principal, PrincipalClass
from push_broadcast.utils.logging import clear_correlation_id
from tests.fixtures.fakes import FakeGateway

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _reset_correlation_id() -> Iterator[None]:
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def store() -> InMemoryRegistrationStore:
    return InMemoryRegistrationStore()


@pytest.fixture
def registry(store: InMemoryRegistrationStore) -> RegistryClient:
    return RegistryClient(store)


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def orchestrator(
    registry: RegistryClient,
    gateway: FakeGateway,
    audit_log: InMemoryAuditLog,
) -> BroadcastOrchestrator:
    return BroadcastOrchestrator(
        registry,
        BatchDispatcher(gateway, max_concurrency=4, batch_timeout_seconds=5.0),
        audit_log,
        broadcast_id_factory=lambda: "bcast-1",
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def admin() -> Principal:
    return Principal(principal_id="admin-1", principal_class=PrincipalClass.ADMINISTRATOR, is_admin=True)


@pytest.fixture
def user() -> Principal:
    return Principal(principal_id="user-1", principal_class=PrincipalClass.USER)


@pytest.fixture
def agent() -> Principal:
    return Principal(principal_id="agent-1", principal_class=PrincipalClass.AGENT)


@pytest_asyncio.fixture
async def database() -> AsyncIterator[SqliteDatabase]:
    async with SqliteDatabase() as db:
        yield db
