"""Outcome aggregation: merge batch reports into one broadcast result.

The merge is commutative, so the result does not depend on the order in
which batches finished. Failures are sorted by token for the same reason.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime

from push_broadcast.types.models import (
    Audience,
    AuditRecord,
    BatchReport,
    BroadcastResult,
    BroadcastStatus,
    Notification,
    TokenFailure,
)

__all__ = ["aggregate", "build_audit_record"]

type Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def aggregate(
    reports: Iterable[BatchReport],
    *,
    broadcast_id: str,
    expected: int,
    batch_count: int | None = None,
    complete: bool = True,
    distinguish_total_failure: bool = False,
) -> BroadcastResult:
    """Merge per-batch reports into a BroadcastResult.

    Args:
        reports: Reports of the finished batches, in any order
        broadcast_id: Identifier of the broadcast
        expected: Size of the resolved token set
        batch_count: Number of batches dispatched (defaults to reports seen)
        complete: Whether every batch finished
        distinguish_total_failure: Report FAILED when every batch failed
            wholesale, instead of SENT

    Returns:
        Immutable aggregate result

    Raises:
        RuntimeError: If a complete run does not account for every token
    """
    delivered = 0
    failed = 0
    failed_batches = 0
    seen_batches = 0
    failures: list[TokenFailure] = []

    for report in reports:
        seen_batches += 1
        if report.wholesale_failure:
            failed_batches += 1
        for outcome in report.outcomes:
            if outcome.delivered:
                delivered += 1
            else:
                failed += 1
                failures.append(TokenFailure(token=outcome.token, reason=outcome.reason or "unknown"))

    attempted = delivered + failed
    if complete and attempted != expected:
        msg = f"Broadcast {broadcast_id} accounted for {attempted} tokens, expected {expected}"
        raise RuntimeError(msg)

    total_batches = batch_count if batch_count is not None else seen_batches

    if not complete:
        status = BroadcastStatus.INCOMPLETE
    elif distinguish_total_failure and total_batches > 0 and failed_batches == total_batches:
        status = BroadcastStatus.FAILED
    else:
        status = BroadcastStatus.SENT

    failures.sort(key=lambda failure: (failure.token, failure.reason))
    return BroadcastResult(
        broadcast_id=broadcast_id,
        attempted=attempted,
        delivered=delivered,
        failed_count=failed,
        failures=tuple(failures),
        batch_count=total_batches,
        failed_batches=failed_batches,
        status=status,
        complete=complete,
    )


def build_audit_record(
    result: BroadcastResult,
    notification: Notification,
    audience: Audience,
    *,
    counts_by_class: Mapping[str, int] | None = None,
    clock: Clock | None = None,
) -> AuditRecord:
    """Build the audit record persisted for ``result``.

    The timestamp is taken when this function runs, i.e. at aggregation.
    """
    return AuditRecord(
        broadcast_id=result.broadcast_id,
        title=notification.title,
        message=notification.body,
        audience=audience,
        sent_at=(clock or _utcnow)(),
        status=result.status,
        attempted=result.attempted,
        delivered=result.delivered,
        failed=result.failed_count,
        recipients_by_class=dict(counts_by_class or {}),
    )
