"""Caller-facing service: register tokens and send broadcasts.

PushService turns orchestrator results into pydantic response models that a
transport can serialise with ``model_dump()``. Errors propagate as
BroadcastError subclasses; their ``code`` is the transport-neutral status.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from push_broadcast.core.config import MainConfig
from push_broadcast.core.dispatcher import BatchDispatcher
from push_broadcast.core.orchestrator import BroadcastOrchestrator
from push_broadcast.gateways import HTTPPushGateway, build_gateway
from push_broadcast.registry.client import RegistryClient
from push_broadcast.registry.memory import InMemoryAuditLog, InMemoryRegistrationStore
from push_broadcast.registry.sqlite import SqliteAuditLog, SqliteDatabase, SqliteRegistrationStore
from push_broadcast.types.models import Audience, BroadcastResult, Principal
from push_broadcast.types.protocols import AuditSink, PushGateway, RegistrationStore

__all__ = [
    "FailedToken",
    "PushService",
    "RegisterTokenResponse",
    "SendBroadcastResponse",
    "build_service",
    "open_service",
]

logger = logging.getLogger(__name__)


class _Response(BaseModel):
    model_config: ConfigDict = ConfigDict(frozen=True)  # pyright: ignore[reportIncompatibleVariableOverride]


class RegisterTokenResponse(_Response):
    """Result of a token registration."""

    success: bool = True


class FailedToken(_Response):
    """A token the gateway did not deliver to."""

    token: str
    reason: str


class SendBroadcastResponse(_Response):
    """Result of a broadcast.

    ``success`` means the broadcast was attempted; individual failures are
    listed in ``failed``. ``complete`` is False when the broadcast deadline
    passed before every batch finished.
    """

    success: bool = True
    broadcast_id: str
    recipients: Annotated[int, Field(ge=0)]
    delivered: Annotated[int, Field(ge=0)]
    failed: list[FailedToken] = Field(default_factory=list)
    status: str
    complete: bool = True

    @classmethod
    def from_result(cls, result: BroadcastResult) -> SendBroadcastResponse:
        return cls(
            success=result.success,
            broadcast_id=result.broadcast_id,
            recipients=result.recipients,
            delivered=result.delivered,
            failed=[FailedToken(token=f.token, reason=f.reason) for f in result.failures],
            status=result.status.value,
            complete=result.complete,
        )


class PushService:
    """The two caller-facing operations."""

    def __init__(self, orchestrator: BroadcastOrchestrator) -> None:
        self._orchestrator: BroadcastOrchestrator = orchestrator

    async def register_token(self, principal: Principal | None, token: str) -> RegisterTokenResponse:
        """Store the caller's current push token.

        Raises:
            UnauthenticatedError: If no principal is given
            InvalidArgumentError: If the token is missing or empty
            StoreUnavailableError: If the registry cannot be reached
        """
        success = await self._orchestrator.register_token(principal, token)
        return RegisterTokenResponse(success=success)

    async def send_broadcast(
        self,
        principal: Principal | None,
        title: str,
        message: str,
        audience: Audience | str | None = Audience.ALL,
    ) -> SendBroadcastResponse:
        """Notify every registered device of ``audience``.

        Raises:
            UnauthenticatedError: If no principal is given
            PermissionDeniedError: If the principal is not an administrator
            InvalidArgumentError: If title, message or audience is invalid
            StoreUnavailableError: If the registry or audit store fails
        """
        result = await self._orchestrator.broadcast(principal, title, message, audience)
        return SendBroadcastResponse.from_result(result)


def build_service(
    config: MainConfig,
    *,
    store: RegistrationStore,
    audit_sink: AuditSink,
    gateway: PushGateway,
) -> PushService:
    """Wire a PushService around already-opened collaborators."""
    dispatcher = BatchDispatcher(
        gateway,
        max_concurrency=config.dispatch.max_concurrency,
        batch_timeout_seconds=config.dispatch.batch_timeout_seconds,
    )
    orchestrator = BroadcastOrchestrator(
        RegistryClient(store),
        dispatcher,
        audit_sink,
        batch_limit=config.dispatch.batch_limit,
        broadcast_timeout_seconds=config.dispatch.broadcast_timeout_seconds,
        fail_on_total_gateway_failure=config.dispatch.fail_on_total_gateway_failure,
    )
    return PushService(orchestrator)


@asynccontextmanager
async def open_service(config: MainConfig, *, dry_run: bool = False) -> AsyncIterator[PushService]:
    """Open stores and gateway described by ``config`` and yield a PushService.

    Everything opened here is closed on exit.

    Example:
        >>> async with open_service(config) as service:
        ...     await service.register_token(principal, "tok-A")
    """
    async with AsyncExitStack() as stack:
        store: RegistrationStore
        audit_sink: AuditSink
        database_path = config.storage.database_path
        if database_path is None:
            logger.info("Using in-memory registration store")
            store = InMemoryRegistrationStore()
            audit_sink = InMemoryAuditLog()
        else:
            database = await stack.enter_async_context(SqliteDatabase(database_path))
            store = SqliteRegistrationStore(database)
            audit_sink = SqliteAuditLog(database)

        gateway = build_gateway(config.gateway, dry_run=dry_run)
        if isinstance(gateway, HTTPPushGateway):
            gateway = await stack.enter_async_context(gateway)

        yield build_service(config, store=store, audit_sink=audit_sink, gateway=gateway)
