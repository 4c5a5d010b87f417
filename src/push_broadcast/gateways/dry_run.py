"""Gateway that logs notifications instead of sending them."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from push_broadcast.types.models import GatewayResponse, Notification
from push_broadcast.utils.sanitization import mask_token

__all__ = ["DryRunGateway"]


class DryRunGateway:
    """Reports every token as delivered without contacting any service."""

    def __init__(self) -> None:
        self._logger: logging.Logger = logging.getLogger(__name__)
        self.sent_batches: int = 0

    async def multicast_send(
        self,
        tokens: Sequence[str],
        notification: Notification,
    ) -> Sequence[GatewayResponse]:
        self.sent_batches += 1
        self._logger.info(
            "[DRY RUN] Would send %r to %d devices (first: %s)",
            notification.title,
            len(tokens),
            mask_token(tokens[0]) if tokens else "-",
        )
        return [GatewayResponse(token=token, success=True) for token in tokens]
