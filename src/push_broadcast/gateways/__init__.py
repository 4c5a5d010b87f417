"""Push gateway implementations."""

from __future__ import annotations

from typing import assert_never

from push_broadcast.core.config import GatewayConfig
from push_broadcast.types.protocols import PushGateway

from .dry_run import DryRunGateway
from .http import GatewayResponseError, HTTPPushGateway

__all__ = ["DryRunGateway", "GatewayResponseError", "HTTPPushGateway", "build_gateway"]


def build_gateway(config: GatewayConfig, *, dry_run: bool = False) -> PushGateway:
    """Create the gateway selected by ``config``.

    ``dry_run`` overrides the configured kind. An HTTPPushGateway must be
    entered with ``async with`` before use.
    """
    if dry_run:
        return DryRunGateway()
    match config.kind:
        case "dry_run":
            return DryRunGateway()
        case "http":
            if config.endpoint is None:
                msg = "gateway.endpoint is required when gateway.kind is 'http'"
                raise ValueError(msg)
            return HTTPPushGateway(
                config.endpoint,
                api_key=config.api_key,
                request_timeout_seconds=config.request_timeout_seconds,
            )
        case _:
            assert_never(config.kind)
