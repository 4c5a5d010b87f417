"""Registration storage and the registry client."""

from __future__ import annotations

from .client import PARTITIONS, RegistryClient, partition_for
from .memory import InMemoryAuditLog, InMemoryRegistrationStore
from .sqlite import SqliteAuditLog, SqliteDatabase, SqliteRegistrationStore

__all__ = [
    "PARTITIONS",
    "RegistryClient",
    "partition_for",
    # Stores
    "InMemoryAuditLog",
    "InMemoryRegistrationStore",
    "SqliteAuditLog",
    "SqliteDatabase",
    "SqliteRegistrationStore",
]
