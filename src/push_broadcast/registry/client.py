"""Registry client: reads and writes a principal's current push token.

The registration store keeps ordinary users and privileged agents in two
partitions. This client hides that split from the rest of the core and
enforces the non-empty token invariant at write time, so readers never see
an empty or absent token.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Final

from push_broadcast.core.errors import InvalidArgumentError, wrap_store_error
from push_broadcast.types.models import PrincipalClass, Registration, TokenSet
from push_broadcast.types.protocols import RegistrationStore
from push_broadcast.utils.logging import get_logger, log_with_context

__all__ = ["PARTITIONS", "RegistryClient", "partition_for"]

USERS_PARTITION: Final[str] = "users"
AGENTS_PARTITION: Final[str] = "agents"

PARTITIONS: Final[dict[PrincipalClass, str]] = {
    PrincipalClass.USER: USERS_PARTITION,
    PrincipalClass.AGENT: AGENTS_PARTITION,
    # Administrators have no partition of their own
    PrincipalClass.ADMINISTRATOR: USERS_PARTITION,
}

_CLASS_BY_PARTITION: Final[dict[str, PrincipalClass]] = {
    USERS_PARTITION: PrincipalClass.USER,
    AGENTS_PARTITION: PrincipalClass.AGENT,
}


def partition_for(principal_class: PrincipalClass) -> str:
    """Return the storage partition holding registrations of ``principal_class``."""
    return PARTITIONS[principal_class]


def _now() -> datetime:
    return datetime.now(tz=UTC)


class RegistryClient:
    """Typed access to registration records.

    Any failure raised by the store surfaces as StoreUnavailableError; the
    client never retries.
    """

    def __init__(
        self,
        store: RegistrationStore,
        *,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._store: RegistrationStore = store
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        # Held across partition lookup and write
        self._write_lock: asyncio.Lock = asyncio.Lock()

    async def get_registration(self, principal_id: str) -> Registration | None:
        """Return the principal's registration, or None if it has no token."""
        return await self._read_registration(principal_id, "get_registration")

    async def get_token(self, principal_id: str) -> str | None:
        """Return the principal's current token, looking in both partitions."""
        registration = await self._read_registration(principal_id, "get_token")
        return registration.token if registration is not None else None

    async def _read_registration(self, principal_id: str, operation: str) -> Registration | None:
        for partition in (USERS_PARTITION, AGENTS_PARTITION):
            try:
                record = await self._store.get(partition, principal_id)
            except Exception as exc:
                raise wrap_store_error(exc, operation) from exc
            if record is None:
                continue
            token = record.get("token")
            if isinstance(token, str) and token:
                updated_at = record.get("updated_at")
                return Registration(
                    principal_id=principal_id,
                    token=token,
                    principal_class=_CLASS_BY_PARTITION[partition],
                    updated_at=datetime.fromisoformat(updated_at) if isinstance(updated_at, str) else None,
                )
        return None

    async def find_class(self, principal_id: str) -> PrincipalClass | None:
        """Return the class of the partition that already holds ``principal_id``."""
        return await self._locate(principal_id, "find_class")

    async def _locate(self, principal_id: str, operation: str) -> PrincipalClass | None:
        for partition in (USERS_PARTITION, AGENTS_PARTITION):
            try:
                record = await self._store.get(partition, principal_id)
            except Exception as exc:
                raise wrap_store_error(exc, operation) from exc
            if record is not None:
                return _CLASS_BY_PARTITION[partition]
        return None

    async def set_token(
        self,
        principal_id: str,
        token: str,
        principal_class: PrincipalClass,
    ) -> None:
        """Merge ``token`` into the principal's registration.

        The write goes to the partition that already holds the principal, so a
        principal never has more than one registration. ``principal_class``
        only picks the partition for a first registration.

        Raises:
            InvalidArgumentError: If the token is empty or whitespace
            StoreUnavailableError: If the store cannot be reached
        """
        normalized = token.strip() if isinstance(token, str) else ""
        if not normalized:
            msg = "Token is required"
            raise InvalidArgumentError(msg, argument="token")

        fields: dict[str, object] = {
            "token": normalized,
            "principal_class": principal_class.value,
            "updated_at": _now().isoformat(),
        }
        async with self._write_lock:
            known_class = await self._locate(principal_id, "set_token")
            partition = partition_for(known_class or principal_class)
            try:
                await self._store.merge(partition, principal_id, fields)
            except Exception as exc:
                raise wrap_store_error(exc, "set_token") from exc

        log_with_context(
            self._logger,
            logging.INFO,
            "Registration updated",
            extra={"principal_id": principal_id, "partition": partition},
        )

    async def list_tokens(self, principal_class: PrincipalClass) -> TokenSet:
        """Return every registered token of ``principal_class``, deduplicated."""
        partition = partition_for(principal_class)
        try:
            records = await self._store.list_with_token(partition)
        except Exception as exc:
            raise wrap_store_error(exc, "list_tokens") from exc

        tokens: set[str] = set()
        for record in records:
            token = record.get("token")
            # Records written by other tools may still hold empty values
            if isinstance(token, str) and token:
                tokens.add(token)
        return frozenset(tokens)
