"""Audience resolution: from a target class to a deduplicated token set."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import assert_never

from push_broadcast.core.errors import InvalidArgumentError
from push_broadcast.registry.client import RegistryClient
from push_broadcast.types.models import Audience, PrincipalClass, TokenSet

__all__ = ["ResolvedAudience", "parse_audience", "resolve_audience"]


@dataclass(slots=True, frozen=True)
class ResolvedAudience:
    """Token set of one audience plus per-class counts before deduplication."""

    audience: Audience
    tokens: TokenSet
    counts_by_class: Mapping[str, int] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.tokens)

    @property
    def is_empty(self) -> bool:
        return not self.tokens


def parse_audience(value: str | Audience | None) -> Audience:
    """Parse a caller-supplied audience, defaulting to ``Audience.ALL``.

    Raises:
        InvalidArgumentError: If ``value`` names no known audience
    """
    if value is None or value == "":
        return Audience.ALL
    if isinstance(value, Audience):
        return value
    try:
        return Audience(value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(a.value for a in Audience)
        msg = f"Unknown audience {value!r}; expected one of: {allowed}"
        raise InvalidArgumentError(msg, argument="audience") from exc


def _classes_for(audience: Audience) -> tuple[PrincipalClass, ...]:
    match audience:
        case Audience.ALL:
            return (PrincipalClass.USER, PrincipalClass.AGENT)
        case Audience.USERS:
            return (PrincipalClass.USER,)
        case Audience.AGENTS:
            return (PrincipalClass.AGENT,)
        case _:
            assert_never(audience)


async def resolve_audience(audience: Audience, registry: RegistryClient) -> ResolvedAudience:
    """Resolve ``audience`` to the set of tokens to notify.

    A token registered under both classes appears once. An empty result is
    valid and means there is nobody to notify.

    Raises:
        StoreUnavailableError: If the registry cannot be read
    """
    tokens: set[str] = set()
    counts: dict[str, int] = {}
    for principal_class in _classes_for(audience):
        class_tokens = await registry.list_tokens(principal_class)
        counts[principal_class.value] = len(class_tokens)
        tokens |= class_tokens
    return ResolvedAudience(audience=audience, tokens=frozenset(tokens), counts_by_class=counts)
