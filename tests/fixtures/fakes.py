"""Test doubles for the broadcast collaborators.

FakeGateway records every multicast call and can be told to fail, stall or
reject individual tokens. FailingStore raises on every access.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence

from push_broadcast.types.models import GatewayResponse, Notification

type BatchPredicate = Callable[[int, Sequence[str]], bool]


class FakeGateway:
    """Test double implementing the PushGateway Protocol.

    Calls are numbered in the order they reach the gateway, starting at 0.
    """

    def __init__(
        self,
        *,
        fail_calls: frozenset[int] = frozenset(),
        fail_when: BatchPredicate | None = None,
        rejected_tokens: Mapping[str, str] | None = None,
        delay: float = 0.0,
        delay_for: Mapping[int, float] | None = None,
        short_response_calls: frozenset[int] = frozenset(),
    ) -> None:
        self.fail_calls: frozenset[int] = fail_calls
        self.fail_when: BatchPredicate | None = fail_when
        self.rejected_tokens: dict[str, str] = dict(rejected_tokens or {})
        self.delay: float = delay
        self.delay_for: dict[int, float] = dict(delay_for or {})
        self.short_response_calls: frozenset[int] = short_response_calls
        self.calls: list[tuple[str, ...]] = []
        self.notifications: list[Notification] = []
        self.finished: int = 0
        self.active: int = 0
        self.max_active: int = 0

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def sent_tokens(self) -> list[str]:
        return [token for batch in self.calls for token in batch]

    async def multicast_send(
        self,
        tokens: Sequence[str],
        notification: Notification,
    ) -> Sequence[GatewayResponse]:
        call_index = len(self.calls)
        self.calls.append(tuple(tokens))
        self.notifications.append(notification)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delay_for.get(call_index, self.delay)
            if delay:
                await asyncio.sleep(delay)
            else:
                await asyncio.sleep(0)

            if call_index in self.fail_calls or (self.fail_when is not None and self.fail_when(call_index, tokens)):
                msg = f"gateway unavailable for call {call_index}"
                raise ConnectionError(msg)

            responses = [
                GatewayResponse(token=token, success=False, error_code=self.rejected_tokens[token])
                if token in self.rejected_tokens
                else GatewayResponse(token=token, success=True)
                for token in tokens
            ]
            if call_index in self.short_response_calls:
                return responses[:-1]
            return responses
        finally:
            self.active -= 1
            self.finished += 1


class FailingStore:
    """Registration store whose every operation raises."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error: Exception = error or OSError("registration store offline")
        self.calls: int = 0

    async def get(self, partition: str, principal_id: str) -> Mapping[str, object] | None:
        _ = (partition, principal_id)
        self.calls += 1
        raise self.error

    async def merge(self, partition: str, principal_id: str, fields: Mapping[str, object]) -> None:
        _ = (partition, principal_id, fields)
        self.calls += 1
        raise self.error

    async def list_with_token(self, partition: str) -> Sequence[Mapping[str, object]]:
        _ = partition
        self.calls += 1
        raise self.error


class FailingAuditLog:
    """Audit sink whose writes raise."""

    def __init__(self) -> None:
        self.attempts: int = 0

    async def record(self, entry: object) -> None:
        _ = entry
        self.attempts += 1
        raise OSError("audit store offline")


def make_tokens(count: int, prefix: str = "tok") -> list[str]:
    """Return ``count`` distinct tokens that sort in creation order."""
    return [f"{prefix}-{index:05d}" for index in range(count)]
