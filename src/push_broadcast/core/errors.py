"""Error taxonomy for registration and broadcast requests.

Every error carries a stable ``code`` string so a transport layer can map
it onto its own status vocabulary without inspecting exception types.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


class BroadcastError(Exception):
    """Base exception for all caller-visible request failures."""

    code: ClassVar[str] = "internal"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:  # pyright: ignore[reportAny] # Flexible error context
        """Initialize BroadcastError.

        Args:
            message: Error message
            context: Additional context information for debugging
        """
        super().__init__(message)
        self.context: dict[str, Any] = context or {}  # pyright: ignore[reportAny] # Flexible error context

    def to_payload(self) -> dict[str, object]:
        """Return a transport-neutral description of the error."""
        return {"code": self.code, "message": str(self)}


class UnauthenticatedError(BroadcastError):
    """Raised when a request carries no authenticated principal."""

    code: ClassVar[str] = "unauthenticated"


class PermissionDeniedError(BroadcastError):
    """Raised when the principal lacks administrator privilege."""

    code: ClassVar[str] = "permission-denied"

    def __init__(
        self,
        message: str,
        principal_id: str | None = None,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible error context
    ) -> None:
        full_context = context or {}
        if principal_id is not None:
            full_context["principal_id"] = principal_id

        super().__init__(message, full_context)
        self.principal_id: str | None = principal_id


class InvalidArgumentError(BroadcastError):
    """Raised when a required argument is missing or malformed."""

    code: ClassVar[str] = "invalid-argument"

    def __init__(
        self,
        message: str,
        argument: str | None = None,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible error context
    ) -> None:
        full_context = context or {}
        if argument is not None:
            full_context["argument"] = argument

        super().__init__(message, full_context)
        self.argument: str | None = argument


class StoreUnavailableError(BroadcastError):
    """Raised when the registration or audit store cannot be reached.

    Fatal to the request; never retried by the core.
    """

    code: ClassVar[str] = "unavailable"

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible error context
    ) -> None:
        full_context = context or {}
        if operation is not None:
            full_context["operation"] = operation

        super().__init__(message, full_context)
        self.operation: str | None = operation


class GatewayBatchError(BroadcastError):
    """A whole batch failed at the gateway.

    Recovered inside the dispatcher by marking every token of the batch as
    failed; it never reaches callers.
    """

    code: ClassVar[str] = "gateway-error"

    def __init__(
        self,
        message: str,
        *,
        batch_index: int,
        batch_size: int,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, {"batch_index": batch_index, "batch_size": batch_size})
        self.batch_index: int = batch_index
        self.batch_size: int = batch_size
        if cause is not None:
            self.__cause__ = cause


class StateTransitionError(Exception):
    """Raised when a broadcast attempts an illegal state transition."""


def wrap_store_error(error: Exception, operation: str) -> StoreUnavailableError:
    """Wrap a store exception as StoreUnavailableError.

    Args:
        error: Original exception raised by the store
        operation: Description of the operation that failed

    Returns:
        Wrapped error with the original attached as ``__cause__``
    """
    logger.debug("Store error during %s: %s", operation, error, exc_info=True)

    if isinstance(error, StoreUnavailableError):
        return error

    wrapped = StoreUnavailableError(
        f"Registration store unavailable during {operation}: {type(error).__name__}",
        operation=operation,
        context={"original_error_type": type(error).__name__},
    )
    wrapped.__cause__ = error
    return wrapped
