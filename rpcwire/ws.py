"""JSON-RPC over a WebSocket connection, with subscription notifications."""

from __future__ import annotations

import asyncio
import base64
import contextlib
import itertools
import json
import logging
from collections.abc import AsyncIterator, Iterable
from typing import Any
from urllib.parse import unquote, urlsplit, urlunsplit

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus, InvalidURI

from .base import (
    BatchTransport,
    Call,
    DuplexTransport,
    InvalidResponseError,
    RpcTransportError,
    TransportError,
    build_request,
    result_from_output,
)

logger = logging.getLogger(__name__)

_DROPPED = "Cannot send request. Internal task finished."
_MAX_MESSAGE_SIZE = 256 * 1024 * 1024
_END = object()


def _dropped() -> TransportError:
    return TransportError(_DROPPED)


async def connect_websocket(url: str) -> WebSocket:
    """Open a WebSocket connection to url and return a transport using it.

    Credentials in the URL are sent as a basic Authorization header.
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as err:
        raise TransportError(f"failed to parse url: {err}") from err
    if not parts.scheme:
        raise TransportError("failed to parse url: relative URL without a base")
    if parts.scheme not in ("ws", "wss"):
        raise TransportError(f"Wrong scheme: {parts.scheme}")
    host = parts.hostname
    if not host:
        raise TransportError("Wrong host name")

    netloc = f"[{host}]" if ":" in host else host
    if port is not None:
        netloc = f"{netloc}:{port}"
    target = urlunsplit((parts.scheme, netloc, parts.path, parts.query, ""))

    headers: dict[str, str] = {}
    if parts.password is not None:
        credentials = f"{unquote(parts.username or '')}:{unquote(parts.password)}"
        headers["Authorization"] = "Basic " + base64.b64encode(credentials.encode("utf-8")).decode("ascii")

    logger.debug("Connecting websocket client to %s", target)
    try:
        connection = await connect(target, additional_headers=headers or None, max_size=_MAX_MESSAGE_SIZE)
    except InvalidStatus as err:
        raise TransportError(code=err.response.status_code) from err
    except InvalidURI as err:
        raise TransportError(f"failed to parse url: {err}") from err
    except InvalidHandshake as err:
        raise TransportError(f"Handshake Error: {err!r}") from err
    except (OSError, asyncio.TimeoutError) as err:
        raise TransportError(f"Connection Error: {err!r}") from err
    return WebSocket(connection)


def batch_to_single(response: Iterable[Any]) -> Any:
    """Return the first outcome of a batch result, raising it if it is an error."""
    outcomes = list(response)
    if not outcomes:
        raise InvalidResponseError("Expected single, got batch.")
    first = outcomes[0]
    if isinstance(first, BaseException):
        raise first
    return first


def _is_output(value: Any) -> bool:
    return isinstance(value, dict) and "id" in value and (("result" in value) != ("error" in value))


def _outputs_of(value: Any) -> list[dict[str, Any]]:
    if _is_output(value):
        return [value]
    if isinstance(value, list) and all(_is_output(item) for item in value):
        return value
    return []


def _outcome(output: Any) -> Any:
    try:
        return result_from_output(output)
    except RpcTransportError as err:
        return err


async def _notifications(queue: asyncio.Queue[Any]) -> AsyncIterator[Any]:
    while True:
        item = await queue.get()
        if item is _END:
            return
        yield item


class WebSocket(BatchTransport, DuplexTransport):
    """Speaks JSON-RPC over an open WebSocket connection.

    The connection needs async send(text), close() and async iteration over
    incoming messages. Must be created inside a running event loop; a
    background task reads responses and notifications.
    """

    def __init__(self, connection: Any) -> None:
        self._connection = connection
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[list[Any]]] = {}
        self._subscriptions: dict[str, asyncio.Queue[Any]] = {}
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(self._receive_loop())

    def __repr__(self) -> str:
        return f"WebSocket(pending={len(self._pending)}, closed={self._closed})"

    async def __aenter__(self) -> WebSocket:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def prepare(self, method: str, params: list[Any]) -> tuple[int, Call]:
        request_id = next(self._ids)
        return request_id, build_request(request_id, method, params)

    async def send(self, request_id: int, call: Call) -> Any:
        return batch_to_single(await self._send_request(request_id, call))

    async def send_batch(self, requests: Iterable[tuple[int, Call]]) -> list[Any]:
        pairs = list(requests)
        request_id = pairs[0][0] if pairs else 0
        return await self._send_request(request_id, [call for _, call in pairs])

    def subscribe(self, subscription_id: str) -> AsyncIterator[Any]:
        if self._closed:
            raise _dropped()
        queue: asyncio.Queue[Any] = asyncio.Queue()
        previous = self._subscriptions.get(subscription_id)
        if previous is not None:
            logger.warning("Replacing already-registered subscription with id %r", subscription_id)
            previous.put_nowait(_END)
        self._subscriptions[subscription_id] = queue
        return _notifications(queue)

    def unsubscribe(self, subscription_id: str) -> None:
        if self._closed:
            raise _dropped()
        queue = self._subscriptions.pop(subscription_id, None)
        if queue is None:
            logger.warning("Unsubscribing from non-existent subscription with id %r", subscription_id)
        else:
            queue.put_nowait(_END)

    async def close(self) -> None:
        """Close the connection and fail whatever is still pending."""
        self._closed = True
        with contextlib.suppress(ConnectionClosed, OSError):
            await self._connection.close()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._shutdown()

    async def _send_request(self, request_id: int, request: Any) -> list[Any]:
        text = json.dumps(request, separators=(",", ":"))
        logger.debug("[%s] Calling: %s", request_id, text)
        if self._closed:
            raise _dropped()
        future: asyncio.Future[list[Any]] = asyncio.get_running_loop().create_future()
        previous = self._pending.get(request_id)
        if previous is not None:
            logger.warning("Replacing a pending request with id %r", request_id)
            if not previous.done():
                previous.set_exception(_dropped())
        self._pending[request_id] = future
        try:
            await self._connection.send(text)
        except (ConnectionClosed, OSError, RuntimeError) as err:
            logger.error("WS connection error: %r", err)
            if self._pending.get(request_id) is future:
                del self._pending[request_id]
            if not future.done():
                future.set_exception(_dropped())
        return await future

    async def _receive_loop(self) -> None:
        try:
            async for message in self._connection:
                self._handle_message(message)
        except (ConnectionClosed, OSError) as err:
            logger.error("WS connection error: %r", err)
        finally:
            self._shutdown()

    def _shutdown(self) -> None:
        self._closed = True
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(_dropped())
        subscriptions, self._subscriptions = self._subscriptions, {}
        for queue in subscriptions.values():
            queue.put_nowait(_END)

    def _handle_message(self, message: str | bytes) -> None:
        logger.debug("Message received: %r", message)
        try:
            value = json.loads(message)
        except ValueError:
            value = None
        if isinstance(value, dict) and "method" in value and "id" not in value:
            self._notify(value)
            return

        outputs = _outputs_of(value)
        response_id = outputs[0]["id"] if outputs else 0
        if isinstance(response_id, bool) or not isinstance(response_id, int) or response_id < 0:
            logger.warning("Got unsupported response (id: %r)", response_id)
            return
        future = self._pending.pop(response_id, None)
        if future is None:
            logger.warning("Got response for unknown request (id: %r)", response_id)
            return
        if future.done():
            logger.warning("Sending a response to deallocated channel (id: %r)", response_id)
            return
        future.set_result([_outcome(output) for output in outputs])

    def _notify(self, notification: dict[str, Any]) -> None:
        params = notification.get("params")
        if not isinstance(params, dict):
            return
        subscription_id = params.get("subscription")
        if not isinstance(subscription_id, str) or "result" not in params:
            logger.error("Got unsupported notification (id: %r)", subscription_id)
            return
        queue = self._subscriptions.get(subscription_id)
        if queue is None:
            logger.warning("Got notification for unknown subscription (id: %r)", subscription_id)
            return
        queue.put_nowait(params["result"])