"""JSON-RPC over HTTP POST."""

from __future__ import annotations

import itertools
import json
import logging
from collections.abc import Iterable
from typing import Any

import httpx

from .base import (
    BatchTransport,
    Call,
    InvalidResponseError,
    RpcTransportError,
    TransportError,
    build_request,
    output_id,
    result_from_output,
)

logger = logging.getLogger(__name__)

USER_AGENT = "rpcwire"


def _parse_url(url: str) -> httpx.URL:
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as err:
        raise TransportError(f"failed to parse url: {err}") from err
    if not parsed.scheme or not parsed.host:
        raise TransportError(f"failed to parse url: {url!r} is not an absolute URL")
    return parsed


def _outcome(output: Any) -> Any:
    try:
        return result_from_output(output)
    except RpcTransportError as err:
        return err


def handle_batch_response(ids: Iterable[int], outputs: Iterable[Any]) -> list[Any]:
    """Match batch outputs to request ids, restoring the request order.

    Each item is the call's result, or the RpcTransportError for that call.
    """
    ids = list(ids)
    outputs = list(outputs)
    if len(ids) != len(outputs):
        raise InvalidResponseError("unexpected number of responses")
    by_id = {output_id(output): _outcome(output) for output in outputs}
    results = []
    for request_id in ids:
        try:
            results.append(by_id.pop(request_id))
        except KeyError:
            raise InvalidResponseError(f"batch response is missing id {request_id}") from None
    return results


class Http(BatchTransport):
    """Sends JSON-RPC requests as HTTP POST bodies to one URL."""

    def __init__(self, url: str, client: httpx.AsyncClient | None = None) -> None:
        self._url = _parse_url(url)
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        self._ids = itertools.count()

    def prepare(self, method: str, params: list[Any]) -> tuple[int, Call]:
        request_id = next(self._ids)
        return request_id, build_request(request_id, method, params)

    async def send(self, request_id: int, call: Call) -> Any:
        output = await self._execute_rpc(call, request_id, dict)
        return result_from_output(output)

    async def send_batch(self, requests: Iterable[tuple[int, Call]]) -> list[Any]:
        request_id = next(self._ids)
        pairs = list(requests)
        ids = [rid for rid, _ in pairs]
        calls = [call for _, call in pairs]
        outputs = await self._execute_rpc(calls, request_id, list)
        return handle_batch_response(ids, outputs)

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _execute_rpc(self, request: Any, request_id: int, expected: type) -> Any:
        body = json.dumps(request, separators=(",", ":"))
        logger.debug("[id:%s] sending request: %s", request_id, body)
        try:
            response = await self._client.post(
                self._url,
                content=body.encode("utf-8"),
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as err:
            raise TransportError(f"failed to send request: {err}") from err
        content = response.content
        text = content.decode("utf-8", errors="replace")
        logger.debug("[id:%s] received response: %s", request_id, text)
        if not response.is_success:
            raise TransportError(code=response.status_code)
        try:
            decoded = json.loads(content)
        except ValueError as err:
            raise TransportError(f"failed to deserialize response: {err}: {text}") from err
        if not isinstance(decoded, expected):
            kind = "an object" if expected is dict else "an array"
            raise TransportError(f"failed to deserialize response: expected {kind}: {text}")
        if expected is list and not all(isinstance(item, dict) for item in decoded):
            raise TransportError(f"failed to deserialize response: expected objects: {text}")
        return decoded