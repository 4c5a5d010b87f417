"""Data models for push-broadcast.

This module defines the immutable dataclasses and enums exchanged between
the registry, the dispatch pipeline and the caller-facing service.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, StrEnum, auto


class PrincipalClass(StrEnum):
    """Role class of an authenticated principal."""

    USER = "user"
    AGENT = "agent"
    ADMINISTRATOR = "admin"


class Audience(StrEnum):
    """Closed set of broadcast targets."""

    ALL = "all"
    USERS = "users"
    AGENTS = "agents"


class DeliveryStatus(StrEnum):
    """Per-token delivery result."""

    DELIVERED = "delivered"
    FAILED = "failed"


class BroadcastStatus(StrEnum):
    """Status stored on the audit record.

    ``SENT`` records that the broadcast was attempted, not that every
    device received it.
    """

    SENT = "sent"
    INCOMPLETE = "incomplete"
    FAILED = "failed"


class BroadcastState(Enum):
    """Lifecycle states of a single broadcast request."""

    RECEIVED = auto()
    AUTHORIZED = auto()
    AUDIENCE_RESOLVED = auto()
    DISPATCHED = auto()
    AGGREGATED = auto()
    COMPLETE = auto()
    UNAUTHORIZED = auto()
    FAILED = auto()


type Token = str
type TokenSet = frozenset[Token]
type Batch = tuple[Token, ...]


@dataclass(slots=True, frozen=True)
class Principal:
    """Authenticated identity making a request.

    ``is_admin`` mirrors the administrator claim issued by the auth system;
    it is the only thing checked before a broadcast.
    """

    principal_id: str
    principal_class: PrincipalClass = PrincipalClass.USER
    is_admin: bool = False


@dataclass(slots=True, frozen=True)
class Registration:
    """Current push token of one principal."""

    principal_id: str
    token: Token
    principal_class: PrincipalClass
    updated_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class Notification:
    """Notification payload handed to the push gateway."""

    title: str
    body: str


@dataclass(slots=True, frozen=True)
class GatewayResponse:
    """Per-token result reported by one multicast call."""

    token: Token
    success: bool
    error_code: str | None = None


@dataclass(slots=True, frozen=True)
class DispatchOutcome:
    """Delivery outcome of a single token."""

    token: Token
    status: DeliveryStatus
    reason: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED


@dataclass(slots=True, frozen=True)
class BatchReport:
    """Outcomes of one dispatched batch."""

    index: int
    outcomes: tuple[DispatchOutcome, ...]
    wholesale_failure: bool = False
    elapsed_ms: float = 0.0

    @property
    def size(self) -> int:
        return len(self.outcomes)


@dataclass(slots=True, frozen=True)
class TokenFailure:
    """A token that was not delivered, with the reason."""

    token: Token
    reason: str


@dataclass(slots=True, frozen=True)
class BroadcastResult:
    """Aggregate outcome of one broadcast request.

    Invariant: ``attempted == delivered + failed_count``. When ``complete``
    is set, ``attempted`` also equals the size of the resolved token set.
    """

    broadcast_id: str
    attempted: int
    delivered: int
    failed_count: int
    failures: tuple[TokenFailure, ...] = ()
    batch_count: int = 0
    failed_batches: int = 0
    status: BroadcastStatus = BroadcastStatus.SENT
    complete: bool = True
    trace: tuple[BroadcastState, ...] = ()

    @property
    def success(self) -> bool:
        """A broadcast call that returns a result is a successful call."""
        return True

    @property
    def recipients(self) -> int:
        return self.attempted


@dataclass(slots=True, frozen=True)
class AuditRecord:
    """Persisted trace of one broadcast."""

    broadcast_id: str
    title: str
    message: str
    audience: Audience
    sent_at: datetime
    status: BroadcastStatus
    attempted: int
    delivered: int
    failed: int
    recipients_by_class: Mapping[str, int] = field(default_factory=dict)

    def to_document(self) -> dict[str, object]:
        """Return the record as a flat, storage-friendly mapping."""
        return {
            "broadcast_id": self.broadcast_id,
            "title": self.title,
            "message": self.message,
            "audience": self.audience.value,
            "sent_at": self.sent_at.isoformat(),
            "status": self.status.value,
            "attempted": self.attempted,
            "delivered": self.delivered,
            "failed": self.failed,
            "recipients_by_class": dict(self.recipients_by_class),
        }
