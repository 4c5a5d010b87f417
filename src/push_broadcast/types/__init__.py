"""Type definitions and protocols for push-broadcast.

This package provides:
- Data models (immutable dataclasses and enums)
- Protocol definitions for the store, gateway and audit collaborators
- Type aliases (PEP 695 syntax)
"""

from push_broadcast.types.models import (
    Audience,
    AuditRecord,
    Batch,
    BatchReport,
    BroadcastResult,
    BroadcastState,
    BroadcastStatus,
    DeliveryStatus,
    DispatchOutcome,
    GatewayResponse,
    Notification,
    Principal,
    PrincipalClass,
    Registration,
    Token,
    TokenFailure,
    TokenSet,
)
from push_broadcast.types.protocols import (
    AuditSink,
    PushGateway,
    RegistrationStore,
)

__all__ = [
    # Type aliases
    "Batch",
    "Token",
    "TokenSet",
    # Data models
    "Audience",
    "AuditRecord",
    "BatchReport",
    "BroadcastResult",
    "BroadcastState",
    "BroadcastStatus",
    "DeliveryStatus",
    "DispatchOutcome",
    "GatewayResponse",
    "Notification",
    "Principal",
    "PrincipalClass",
    "Registration",
    "TokenFailure",
    # Protocols
    "AuditSink",
    "PushGateway",
    "RegistrationStore",
]
