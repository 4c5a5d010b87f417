"""push-broadcast: administrator broadcasts to registered push devices.

Administrators send one notification to every device registered by users,
agents, or both. Device tokens are resolved from a partitioned registration
store, split into gateway-sized batches, dispatched concurrently and
reconciled into a single result plus an audit record.
"""

from __future__ import annotations

from push_broadcast.service import (
    PushService,
    RegisterTokenResponse,
    SendBroadcastResponse,
    build_service,
    open_service,
)
from push_broadcast.types.models import Audience, Principal, PrincipalClass

__version__ = "0.1.0"

__all__ = [
    "Audience",
    "Principal",
    "PrincipalClass",
    "PushService",
    "RegisterTokenResponse",
    "SendBroadcastResponse",
    "__version__",
    "build_service",
    "open_service",
]
