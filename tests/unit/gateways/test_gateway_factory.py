"""Tests for the dry-run gateway and gateway selection."""

from __future__ import annotations

import logging

import pytest
from _pytest.logging import LogCaptureFixture

from push_broadcast.core.config import GatewayConfig
from push_broadcast.gateways import DryRunGateway, HTTPPushGateway, build_gateway
from push_broadcast.types.models import Notification
from push_broadcast.types.protocols import PushGateway


class TestDryRunGateway:
    @pytest.mark.asyncio
    async def test_reports_every_token_delivered(self, caplog: LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO)
        gateway = DryRunGateway()

        responses = await gateway.multicast_send(["tok-1234567", "tok-2"], Notification("T", "M"))

        assert [(r.token, r.success) for r in responses] == [("tok-1234567", True), ("tok-2", True)]
        assert gateway.sent_batches == 1
        assert "[DRY RUN]" in caplog.text
        assert "tok-1234567" not in caplog.text

    def test_satisfies_protocol(self) -> None:
        assert isinstance(DryRunGateway(), PushGateway)


class TestBuildGateway:
    def test_dry_run_kind(self) -> None:
        assert isinstance(build_gateway(GatewayConfig(kind="dry_run")), DryRunGateway)

    def test_http_kind(self) -> None:
        gateway = build_gateway(GatewayConfig(kind="http", endpoint="https://push.example.com/v1/multicast"))

        assert isinstance(gateway, HTTPPushGateway)
        assert isinstance(gateway, PushGateway)

    def test_dry_run_flag_overrides_http(self) -> None:
        config = GatewayConfig(kind="http", endpoint="https://push.example.com/v1/multicast")

        assert isinstance(build_gateway(config, dry_run=True), DryRunGateway)

    def test_http_without_endpoint_rejected(self) -> None:
        config = GatewayConfig.model_construct(kind="http", endpoint=None)

        with pytest.raises(ValueError, match="endpoint"):
            _ = build_gateway(config)
