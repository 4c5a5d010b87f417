"""Unit tests for the aiohttp push gateway."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import aiohttp
import pytest

from push_broadcast.gateways.http import GatewayResponseError, HTTPPushGateway
from push_broadcast.types.models import GatewayResponse, Notification

ENDPOINT = "https://push.example.com/v1/multicast"
NOTIFICATION = Notification(title="Hello", body="World")


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create mock aiohttp ClientSession."""
    return AsyncMock(spec=aiohttp.ClientSession)


def _response(status: int = 200, body: object | None = None) -> AsyncMock:
    response = AsyncMock()
    response.status = status
    response.json = AsyncMock(return_value=body)
    return response


def _gateway_with(session: AsyncMock, response: AsyncMock | None = None) -> HTTPPushGateway:
    gateway = HTTPPushGateway(ENDPOINT, api_key="key-123", request_timeout_seconds=5.0)
    if response is not None:
        session.post.return_value.__aenter__.return_value = response  # pyright: ignore[reportAny]  # mock object
    gateway._session = session  # pyright: ignore[reportPrivateUsage]  # testing internal state
    return gateway


class TestHTTPPushGatewayLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_creates_and_closes_session(self) -> None:
        gateway = HTTPPushGateway(ENDPOINT, api_key="key-123")

        async with gateway:
            session = gateway._session  # pyright: ignore[reportPrivateUsage]  # testing internal state
            assert isinstance(session, aiohttp.ClientSession)
            assert session.headers["Authorization"] == "Bearer key-123"

        assert gateway._session is None  # pyright: ignore[reportPrivateUsage]  # testing internal state

    @pytest.mark.asyncio
    async def test_no_authorization_header_without_key(self) -> None:
        async with HTTPPushGateway(ENDPOINT) as gateway:
            session = gateway._session  # pyright: ignore[reportPrivateUsage]  # testing internal state
            assert session is not None
            assert "Authorization" not in session.headers

    @pytest.mark.asyncio
    async def test_send_outside_context_raises(self) -> None:
        with pytest.raises(RuntimeError, match="not initialized"):
            _ = await HTTPPushGateway(ENDPOINT).multicast_send(["a"], NOTIFICATION)


class TestMulticastSend:
    @pytest.mark.asyncio
    async def test_posts_payload_and_parses_results(self, mock_session: AsyncMock) -> None:
        body = {
            "responses": [
                {"success": True},
                {"success": False, "error": {"code": "invalid-token"}},
                {"success": False},
            ]
        }
        gateway = _gateway_with(mock_session, _response(200, body))

        responses = await gateway.multicast_send(["a", "b", "c"], NOTIFICATION)

        assert list(responses) == [
            GatewayResponse(token="a", success=True),
            GatewayResponse(token="b", success=False, error_code="invalid-token"),
            GatewayResponse(token="c", success=False, error_code=None),
        ]
        mock_session.post.assert_called_once_with(  # pyright: ignore[reportAny]  # mock method
            ENDPOINT,
            json={"tokens": ["a", "b", "c"], "notification": {"title": "Hello", "body": "World"}},
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 500, 503])
    async def test_non_2xx_fails_whole_call(self, mock_session: AsyncMock, status: int) -> None:
        gateway = _gateway_with(mock_session, _response(status, {}))

        with pytest.raises(GatewayResponseError) as exc_info:
            _ = await gateway.multicast_send(["a"], NOTIFICATION)

        assert exc_info.value.status == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"responses": "nope"},
            {"responses": [{"success": True}]},
            {"responses": [1, 2]},
            ["not", "an", "object"],
        ],
    )
    async def test_malformed_body(self, mock_session: AsyncMock, body: object) -> None:
        gateway = _gateway_with(mock_session, _response(200, body))

        with pytest.raises(GatewayResponseError):
            _ = await gateway.multicast_send(["a", "b"], NOTIFICATION)

    @pytest.mark.asyncio
    async def test_invalid_json(self, mock_session: AsyncMock) -> None:
        response = _response(200)
        response.json.side_effect = ValueError("not json")  # pyright: ignore[reportAny]  # mock object
        gateway = _gateway_with(mock_session, response)

        with pytest.raises(GatewayResponseError, match="not valid JSON"):
            _ = await gateway.multicast_send(["a"], NOTIFICATION)

    @pytest.mark.asyncio
    async def test_timeout(self, mock_session: AsyncMock) -> None:
        async def slow_request(*args: object, **kwargs: object) -> None:  # pyright: ignore[reportUnusedParameter]
            await asyncio.sleep(10)

        mock_session.post.return_value.__aenter__.side_effect = slow_request  # pyright: ignore[reportAny]  # mock object
        gateway = HTTPPushGateway(ENDPOINT, request_timeout_seconds=0.05)
        gateway._session = mock_session  # pyright: ignore[reportPrivateUsage]  # testing internal state

        with pytest.raises(TimeoutError):
            _ = await gateway.multicast_send(["a"], NOTIFICATION)

    @pytest.mark.asyncio
    async def test_invalid_url(self, mock_session: AsyncMock) -> None:
        mock_session.post.side_effect = aiohttp.InvalidURL("invalid")  # pyright: ignore[reportAny]  # mock object
        gateway = _gateway_with(mock_session)

        with pytest.raises(ValueError, match="Malformed URL"):
            _ = await gateway.multicast_send(["a"], NOTIFICATION)

    @pytest.mark.asyncio
    async def test_connection_error_propagates(self, mock_session: AsyncMock) -> None:
        mock_session.post.side_effect = aiohttp.ClientConnectionError("refused")  # pyright: ignore[reportAny]  # mock object
        gateway = _gateway_with(mock_session)

        with pytest.raises(aiohttp.ClientConnectionError):
            _ = await gateway.multicast_send(["a"], NOTIFICATION)
