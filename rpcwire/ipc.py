"""JSON-RPC over a Unix domain socket, with subscription notifications."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import itertools
import json
import logging
import os
import re
from collections.abc import AsyncIterator, Iterable
from typing import Any

from .base import (
    BatchTransport,
    Call,
    DuplexTransport,
    RpcTransportError,
    TransportError,
    build_request,
    result_from_output,
)

logger = logging.getLogger(__name__)

_READ_SIZE = 64 * 1024
_SPACE = re.compile(r"\s*")
_DECODER = json.JSONDecoder()
_END = object()


async def connect_ipc(path: str | os.PathLike[str]) -> Ipc:
    """Connect to the Unix socket at path and return a transport using it."""
    if not hasattr(asyncio, "open_unix_connection"):
        raise TransportError("IPC is only available on Unix")
    try:
        reader, writer = await asyncio.open_unix_connection(os.fspath(path))
    except OSError as err:
        raise TransportError(f"failed to connect to {os.fspath(path)}: {err}") from err
    return Ipc(reader, writer)


def _split_values(text: str) -> tuple[list[Any], int]:
    """Decode the complete JSON values at the start of text.

    Returns the values and how many characters they took up.
    """
    values: list[Any] = []
    consumed = 0
    while True:
        start = _SPACE.match(text, consumed).end()
        if start == len(text):
            return values, consumed
        try:
            value, end = _DECODER.raw_decode(text, start)
        except ValueError:
            return values, consumed
        values.append(value)
        consumed = end


def _is_output(value: Any) -> bool:
    return isinstance(value, dict) and "id" in value and (("result" in value) != ("error" in value))


def _outputs_of(value: Any) -> list[dict[str, Any]] | None:
    if _is_output(value):
        return [value]
    if isinstance(value, list) and all(_is_output(item) for item in value):
        return value
    return None


async def _notifications(queue: asyncio.Queue[Any]) -> AsyncIterator[Any]:
    while True:
        item = await queue.get()
        if item is _END:
            return
        yield item


class Ipc(BatchTransport, DuplexTransport):
    """Speaks JSON-RPC over an already connected stream pair.

    Must be created inside a running event loop; a background task reads
    responses and notifications from the stream.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._subscriptions: dict[str, asyncio.Queue[Any]] = {}
        self._write_lock = asyncio.Lock()
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(self._read_loop())

    async def __aenter__(self) -> Ipc:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def prepare(self, method: str, params: list[Any]) -> tuple[int, Call]:
        request_id = next(self._ids)
        return request_id, build_request(request_id, method, params)

    async def send(self, request_id: int, call: Call) -> Any:
        self._ensure_open()
        future = self._register(request_id)
        await self._write(call, [request_id])
        return result_from_output(await future)

    async def send_batch(self, requests: Iterable[tuple[int, Call]]) -> list[Any]:
        self._ensure_open()
        pairs = list(requests)
        futures = [self._register(request_id) for request_id, _ in pairs]
        await self._write([call for _, call in pairs], [request_id for request_id, _ in pairs])
        results: list[Any] = []
        for future in futures:
            try:
                results.append(result_from_output(await future))
            except RpcTransportError as err:
                results.append(err)
        return results

    def subscribe(self, subscription_id: str) -> AsyncIterator[Any]:
        self._ensure_open()
        queue: asyncio.Queue[Any] = asyncio.Queue()
        previous = self._subscriptions.get(subscription_id)
        if previous is not None:
            logger.warning("Replacing a subscription with id %r", subscription_id)
            previous.put_nowait(_END)
        self._subscriptions[subscription_id] = queue
        return _notifications(queue)

    def unsubscribe(self, subscription_id: str) -> None:
        self._ensure_open()
        queue = self._subscriptions.pop(subscription_id, None)
        if queue is None:
            logger.warning("Unsubscribing not subscribed id %r", subscription_id)
        else:
            queue.put_nowait(_END)

    async def close(self) -> None:
        """Stop reading, close the socket and fail whatever is still pending."""
        self._closed = True
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._shutdown("transport closed")
        self._writer.close()
        with contextlib.suppress(OSError):
            await self._writer.wait_closed()

    def _ensure_open(self) -> None:
        if self._closed:
            raise TransportError("Send Error: transport is closed")

    def _register(self, request_id: int) -> asyncio.Future[Any]:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        previous = self._pending.get(request_id)
        if previous is not None:
            logger.warning("Replacing a pending request with id %r", request_id)
            if not previous.done():
                previous.set_exception(TransportError("Recv Error: request replaced"))
        self._pending[request_id] = future
        return future

    async def _write(self, payload: Any, request_ids: list[int]) -> None:
        data = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        try:
            async with self._write_lock:
                self._writer.write(data)
                await self._writer.drain()
        except (OSError, RuntimeError) as err:
            logger.error("IPC write error: %r", err)
            for request_id in request_ids:
                future = self._pending.pop(request_id, None)
                if future is not None and not future.done():
                    future.set_exception(TransportError(f"Recv Error: {err}"))

    async def _read_loop(self) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")("replace")
        buffer = ""
        try:
            while True:
                chunk = await self._reader.read(_READ_SIZE)
                if not chunk:
                    break
                buffer += decoder.decode(chunk)
                values, consumed = _split_values(buffer)
                buffer = buffer[consumed:]
                for value in values:
                    self._dispatch(value)
        except OSError as err:
            logger.error("IPC read error: %r", err)
        finally:
            self._shutdown("connection closed")

    def _shutdown(self, reason: str) -> None:
        self._closed = True
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(TransportError(f"Recv Error: {reason}"))
        subscriptions, self._subscriptions = self._subscriptions, {}
        for queue in subscriptions.values():
            queue.put_nowait(_END)

    def _dispatch(self, value: Any) -> None:
        if isinstance(value, dict) and "method" in value and "id" not in value:
            self._notify(value)
            return
        outputs = _outputs_of(value)
        if outputs is None:
            logger.warning("JSON is not a response or notification")
            return
        for output in outputs:
            self._respond(output)

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

    def _respond(self, output: dict[str, Any]) -> None:
        response_id = output["id"]
        if isinstance(response_id, bool) or not isinstance(response_id, int):
            logger.warning("Got unsupported response (id: %r)", response_id)
            return
        future = self._pending.pop(response_id, None)
        if future is None:
            logger.warning("Got response for unknown request (id: %r)", response_id)
            return
        if future.done():
            logger.warning("Sending a response to deallocated channel (id: %r)", response_id)
            return
        future.set_result(output)