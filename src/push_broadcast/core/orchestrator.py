"""Broadcast orchestrator: the entry point for registration and broadcasts.

This module composes the registry client, audience resolver, batcher,
dispatcher and aggregator. Collaborators are injected once at process start
and shared across concurrent requests; the orchestrator itself keeps no
per-request state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from uuid import uuid4

from push_broadcast.core.aggregator import Clock, aggregate, build_audit_record
from push_broadcast.core.audience import parse_audience, resolve_audience
from push_broadcast.core.batcher import DEFAULT_BATCH_LIMIT, partition_tokens
from push_broadcast.core.dispatcher import BatchDispatcher
from push_broadcast.core.errors import (
    InvalidArgumentError,
    PermissionDeniedError,
    StoreUnavailableError,
    UnauthenticatedError,
    wrap_store_error,
)
from push_broadcast.core.state_machine import BroadcastStateMachine
from push_broadcast.registry.client import RegistryClient
from push_broadcast.types.models import (
    Audience,
    BroadcastResult,
    BroadcastState,
    BroadcastStatus,
    Notification,
    Principal,
)
from push_broadcast.types.protocols import AuditSink
from push_broadcast.utils.logging import correlation_id_context, get_logger, log_with_context

__all__ = ["BroadcastOrchestrator"]

type BroadcastIDFactory = Callable[[], str]


def _require_text(value: object, argument: str) -> str:
    if not isinstance(value, str) or not value.strip():
        msg = f"{argument.capitalize()} is required"
        raise InvalidArgumentError(msg, argument=argument)
    return value.strip()


class BroadcastOrchestrator:
    """Authorize, target, dispatch and account for broadcasts."""

    def __init__(
        self,
        registry: RegistryClient,
        dispatcher: BatchDispatcher,
        audit_sink: AuditSink,
        *,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
        broadcast_timeout_seconds: float | None = None,
        fail_on_total_gateway_failure: bool = False,
        broadcast_id_factory: BroadcastIDFactory | None = None,
        clock: Clock | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if batch_limit < 1:
            msg = "batch_limit must be >= 1"
            raise ValueError(msg)
        if broadcast_timeout_seconds is not None and broadcast_timeout_seconds <= 0:
            msg = "broadcast_timeout_seconds must be greater than zero"
            raise ValueError(msg)

        self._registry: RegistryClient = registry
        self._dispatcher: BatchDispatcher = dispatcher
        self._audit_sink: AuditSink = audit_sink
        self._batch_limit: int = batch_limit
        self._broadcast_timeout_seconds: float | None = broadcast_timeout_seconds
        self._fail_on_total_gateway_failure: bool = fail_on_total_gateway_failure
        self._broadcast_id_factory: BroadcastIDFactory = broadcast_id_factory or (lambda: uuid4().hex)
        self._clock: Clock | None = clock
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def register_token(self, principal: Principal | None, token: str) -> bool:
        """Store ``token`` as the principal's current push token.

        The registration lands in the partition that already knows the
        principal, or in the one matching its class for a first write.

        Raises:
            UnauthenticatedError: If no principal is given
            InvalidArgumentError: If the token is missing or empty
            StoreUnavailableError: If the registry cannot be reached
        """
        if principal is None:
            msg = "Authentication required"
            raise UnauthenticatedError(msg)
        normalized = _require_text(token, "token")

        await self._registry.set_token(principal.principal_id, normalized, principal.principal_class)
        return True

    async def broadcast(
        self,
        principal: Principal | None,
        title: str,
        message: str,
        audience: Audience | str | None = Audience.ALL,
    ) -> BroadcastResult:
        """Send a notification to every device of ``audience``.

        Tokens that fail, and whole batches the gateway rejects, are
        reported in the result rather than raised.

        Raises:
            UnauthenticatedError: If no principal is given
            PermissionDeniedError: If the principal is not an administrator
            InvalidArgumentError: If title, message or audience is invalid
            StoreUnavailableError: If the registry or audit store fails
        """
        machine = BroadcastStateMachine()

        if principal is None:
            machine.transition(BroadcastState.UNAUTHORIZED)
            msg = "Authentication required"
            raise UnauthenticatedError(msg)
        if not principal.is_admin:
            machine.transition(BroadcastState.UNAUTHORIZED)
            log_with_context(
                self._logger,
                logging.WARNING,
                "Broadcast rejected: administrator privileges required",
                extra={"principal_id": principal.principal_id},
            )
            msg = "Admin privileges required"
            raise PermissionDeniedError(msg, principal_id=principal.principal_id)
        machine.transition(BroadcastState.AUTHORIZED)

        try:
            notification = Notification(
                title=_require_text(title, "title"),
                body=_require_text(message, "message"),
            )
            target = parse_audience(audience)
        except InvalidArgumentError:
            machine.fail()
            raise

        broadcast_id = self._broadcast_id_factory()
        with correlation_id_context(broadcast_id):
            return await self._run(machine, broadcast_id, notification, target, principal)

    async def _run(
        self,
        machine: BroadcastStateMachine,
        broadcast_id: str,
        notification: Notification,
        audience: Audience,
        principal: Principal,
    ) -> BroadcastResult:
        log_with_context(
            self._logger,
            logging.INFO,
            "Broadcast received",
            extra={
                "broadcast_id": broadcast_id,
                "audience": audience.value,
                "principal_id": principal.principal_id,
            },
        )

        try:
            resolved = await resolve_audience(audience, self._registry)
        except StoreUnavailableError as exc:
            machine.fail()
            log_with_context(
                self._logger,
                logging.ERROR,
                "Broadcast aborted: registry unavailable",
                extra={"broadcast_id": broadcast_id, "error_message": str(exc)},
            )
            raise
        machine.transition(BroadcastState.AUDIENCE_RESOLVED)

        if resolved.is_empty:
            log_with_context(
                self._logger,
                logging.INFO,
                "No registered devices for audience",
                extra={"broadcast_id": broadcast_id, "audience": audience.value},
            )

        batches = partition_tokens(resolved.tokens, self._batch_limit)
        run = await self._dispatcher.dispatch(
            batches,
            notification,
            timeout=self._broadcast_timeout_seconds,
        )
        machine.transition(BroadcastState.DISPATCHED)

        result = aggregate(
            run.reports,
            broadcast_id=broadcast_id,
            expected=resolved.size,
            batch_count=run.batch_count,
            complete=run.complete,
            distinguish_total_failure=self._fail_on_total_gateway_failure,
        )
        if result.status is BroadcastStatus.FAILED:
            machine.transition(BroadcastState.FAILED)
        else:
            machine.transition(BroadcastState.AGGREGATED)

        record = build_audit_record(
            result,
            notification,
            audience,
            counts_by_class=resolved.counts_by_class,
            clock=self._clock,
        )
        try:
            await self._audit_sink.record(record)
        except Exception as exc:
            machine.fail()
            raise wrap_store_error(exc, "record_audit") from exc

        # An abandoned dispatch stays AGGREGATED so it cannot pass for a complete one
        if result.complete and not machine.is_terminal:
            machine.transition(BroadcastState.COMPLETE)

        log_with_context(
            self._logger,
            logging.INFO,
            "Broadcast finished",
            extra={
                "broadcast_id": broadcast_id,
                "status": result.status.value,
                "attempted": result.attempted,
                "delivered": result.delivered,
                "failed": result.failed_count,
                "batch_count": result.batch_count,
                "failed_batches": result.failed_batches,
                "complete": result.complete,
            },
        )
        return replace(result, trace=machine.history)
