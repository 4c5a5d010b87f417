"""HTTP push gateway backed by aiohttp.

The gateway exposes a JSON multicast endpoint. One POST carries a batch of
device tokens and a notification; the response lists one result per token,
in the order the tokens were sent:

    {"responses": [{"success": true}, {"success": false, "error": {"code": "invalid-token"}}]}

Any non-2xx status or malformed body fails the whole call. Retries are left
to the caller's policy, which is to record the batch as failed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Self, TypeIs

import aiohttp

from push_broadcast.types.models import GatewayResponse, Notification
from push_broadcast.utils.sanitization import sanitize_url

__all__ = ["GatewayResponseError", "HTTPPushGateway"]


class GatewayResponseError(Exception):
    """Raised when the gateway rejects a call or answers with an unusable body."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status: int | None = status


def _is_mapping(value: object) -> TypeIs[Mapping[str, object]]:
    return isinstance(value, Mapping)


def _is_list(value: object) -> TypeIs[list[object]]:
    return isinstance(value, list)


class HTTPPushGateway:
    """Push gateway client speaking the JSON multicast protocol.

    Example:
        >>> async with HTTPPushGateway("https://push.example.com/v1/multicast", api_key="k") as gateway:
        ...     responses = await gateway.multicast_send(["tok-1"], Notification("Hi", "Body"))
    """

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        request_timeout_seconds: float = 10.0,
    ) -> None:
        self._endpoint: str = endpoint
        self._api_key: str | None = api_key
        self._request_timeout_seconds: float = request_timeout_seconds
        self._session: aiohttp.ClientSession | None = None
        self._logger: logging.Logger = logging.getLogger(__name__)

    async def __aenter__(self) -> Self:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._request_timeout_seconds),
            headers=headers,
            json_serialize=json.dumps,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def multicast_send(
        self,
        tokens: Sequence[str],
        notification: Notification,
    ) -> Sequence[GatewayResponse]:
        """POST one batch to the multicast endpoint.

        Raises:
            RuntimeError: If used outside ``async with``
            TimeoutError: If the request exceeds the configured timeout
            ValueError: If the endpoint URL is malformed
            GatewayResponseError: On a non-2xx status or malformed body
            aiohttp.ClientError: For connection issues
        """
        if self._session is None:
            msg = "Gateway session not initialized. Use 'async with' context manager."
            raise RuntimeError(msg)

        payload = {
            "tokens": list(tokens),
            "notification": {"title": notification.title, "body": notification.body},
        }
        safe_url = sanitize_url(self._endpoint)
        self._logger.debug("Posting multicast batch of %d to %s", len(tokens), safe_url)

        try:
            async with asyncio.timeout(self._request_timeout_seconds):
                async with self._session.post(self._endpoint, json=payload) as response:
                    if not 200 <= response.status < 300:
                        msg = f"Gateway returned HTTP {response.status}"
                        raise GatewayResponseError(msg, status=response.status)
                    try:
                        body: object = await response.json()  # pyright: ignore[reportAny]  # aiohttp returns Any
                    except (aiohttp.ContentTypeError, ValueError) as exc:
                        msg = "Gateway response is not valid JSON"
                        raise GatewayResponseError(msg, status=response.status) from exc
        except TimeoutError:
            self._logger.warning(
                "Multicast request to %s timed out after %.1fs",
                safe_url,
                self._request_timeout_seconds,
            )
            raise
        except aiohttp.InvalidURL as exc:
            self._logger.error("Invalid gateway URL: %s", safe_url)
            raise ValueError(f"Malformed URL: {safe_url}") from exc
        except aiohttp.ClientError as exc:
            self._logger.warning("Client error for %s: %s", safe_url, type(exc).__name__)
            raise

        return self._parse_responses(tokens, body)

    def _parse_responses(self, tokens: Sequence[str], body: object) -> list[GatewayResponse]:
        entries = body.get("responses") if _is_mapping(body) else None
        if not _is_list(entries):
            msg = "Gateway response has no 'responses' list"
            raise GatewayResponseError(msg)
        if len(entries) != len(tokens):
            msg = f"Gateway returned {len(entries)} results for {len(tokens)} tokens"
            raise GatewayResponseError(msg)

        responses: list[GatewayResponse] = []
        for token, entry in zip(tokens, entries, strict=True):
            if not _is_mapping(entry):
                msg = "Gateway result entry is not an object"
                raise GatewayResponseError(msg)
            if entry.get("success") is True:
                responses.append(GatewayResponse(token=token, success=True))
                continue
            error = entry.get("error")
            code = error.get("code") if _is_mapping(error) else None
            responses.append(
                GatewayResponse(
                    token=token,
                    success=False,
                    error_code=code if isinstance(code, str) and code else None,
                )
            )
        return responses
