"""In-process registration store and audit log.

Used for tests and for running the service without a database. Both
classes satisfy the protocols in ``push_broadcast.types.protocols``.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence

from push_broadcast.types.models import AuditRecord

__all__ = ["InMemoryAuditLog", "InMemoryRegistrationStore"]


class InMemoryRegistrationStore:
    """Registration store backed by nested dictionaries."""

    def __init__(self) -> None:
        self._partitions: dict[str, dict[str, dict[str, object]]] = {}

    async def get(self, partition: str, principal_id: str) -> Mapping[str, object] | None:
        record = self._partitions.get(partition, {}).get(principal_id)
        if record is None:
            return None
        return dict(record)

    async def merge(
        self,
        partition: str,
        principal_id: str,
        fields: Mapping[str, object],
    ) -> None:
        records = self._partitions.setdefault(partition, {})
        record = records.setdefault(principal_id, {"principal_id": principal_id})
        record.update(fields)

    async def list_with_token(self, partition: str) -> Sequence[Mapping[str, object]]:
        return [
            dict(record)
            for record in self._partitions.get(partition, {}).values()
            if record.get("token") is not None
        ]

    def count(self, partition: str) -> int:
        """Return the number of records in ``partition``."""
        return len(self._partitions.get(partition, {}))

    def snapshot(self) -> dict[str, dict[str, dict[str, object]]]:
        """Return a deep copy of every partition, for inspection."""
        return copy.deepcopy(self._partitions)


class InMemoryAuditLog:
    """Audit sink that keeps records in a list."""

    def __init__(self) -> None:
        self._records: list[AuditRecord] = []

    async def record(self, entry: AuditRecord) -> None:
        self._records.append(entry)

    @property
    def records(self) -> tuple[AuditRecord, ...]:
        return tuple(self._records)
