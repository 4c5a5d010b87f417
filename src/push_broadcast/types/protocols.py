"""Protocol definitions for external collaborators.

This module defines structural subtyping protocols for the systems the
broadcast core talks to: the registration store, the push gateway and the
audit sink. Concrete implementations live in ``registry`` and ``gateways``.
"""

from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

from push_broadcast.types.models import AuditRecord, GatewayResponse, Notification


@runtime_checkable
class RegistrationStore(Protocol):
    """Key-value store of registration records, split into partitions.

    A partition is one logical collection of records (ordinary users or
    privileged agents). Records are keyed by principal id.
    """

    async def get(self, partition: str, principal_id: str) -> Mapping[str, object] | None:
        """Read one record.

        Args:
            partition: Partition name
            principal_id: Record key

        Returns:
            The stored fields, or None if the record does not exist
        """
        ...

    async def merge(
        self,
        partition: str,
        principal_id: str,
        fields: Mapping[str, object],
    ) -> None:
        """Write ``fields`` into a record, creating it if needed.

        Fields not named in ``fields`` are left untouched.
        """
        ...

    async def list_with_token(self, partition: str) -> Sequence[Mapping[str, object]]:
        """Return every record of ``partition`` that carries a token."""
        ...


@runtime_checkable
class PushGateway(Protocol):
    """Third-party push delivery service."""

    async def multicast_send(
        self,
        tokens: Sequence[str],
        notification: Notification,
    ) -> Sequence[GatewayResponse]:
        """Send one notification to a batch of device tokens.

        The call is atomic at its boundary: it either returns one response
        per token, in input order, or raises.

        Args:
            tokens: Batch of device tokens, within the gateway size limit
            notification: Title and body to deliver

        Returns:
            Per-token responses in the same order as ``tokens``
        """
        ...


@runtime_checkable
class AuditSink(Protocol):
    """Destination for broadcast audit records."""

    async def record(self, entry: AuditRecord) -> None:
        """Persist one audit record."""
        ...
