"""Partition a token set into gateway-sized batches."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Final

from push_broadcast.types.models import Batch

__all__ = ["DEFAULT_BATCH_LIMIT", "partition_tokens"]

# Documented maximum number of tokens per multicast call
DEFAULT_BATCH_LIMIT: Final[int] = 500


def partition_tokens(tokens: Iterable[str], limit: int = DEFAULT_BATCH_LIMIT) -> tuple[Batch, ...]:
    """Split ``tokens`` into batches of at most ``limit`` tokens.

    Every distinct token lands in exactly one batch; only the final batch may
    be smaller than ``limit``. Tokens are sorted first so the same set always
    produces the same batches.

    Args:
        tokens: Tokens to partition (duplicates are collapsed)
        limit: Maximum batch size, at least 1

    Returns:
        Tuple of batches, empty when there are no tokens

    Raises:
        ValueError: If ``limit`` is smaller than 1

    Examples:
        >>> [len(b) for b in partition_tokens([f"t{i}" for i in range(1200)], 500)]
        [500, 500, 200]
    """
    if limit < 1:
        msg = f"Batch limit must be >= 1, got {limit}"
        raise ValueError(msg)

    ordered = sorted(set(tokens))
    return tuple(tuple(ordered[start : start + limit]) for start in range(0, len(ordered), limit))
