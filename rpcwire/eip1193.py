"""Transport that talks to an EIP-1193 provider object.

A provider offers ``await request({"method": ..., "params": [...]})``,
``on(event_name, listener)`` and ``remove_listener(event_name, listener)``.
When ``request`` rejects, it raises an exception whose only argument is the
error value the provider reported.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from .base import Call, DuplexTransport, InvalidResponseError, RpcError

logger = logging.getLogger(__name__)

_END = object()
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1
_RPC_ERROR_FIELDS = frozenset({"code", "message", "data", "stack"})
_HEX_DIGITS = re.compile(r"[0-9a-fA-F]+")
_ADDRESS = re.compile(r"0x[0-9a-fA-F]{40}")

Listener = Callable[[Any], None]


def _parse_rpc_error(value: Any, *, strict: bool) -> RpcError | None:
    """Read a JSON-RPC error object; with strict, only the known fields may appear."""
    if not isinstance(value, dict):
        return None
    if strict and not set(value) <= _RPC_ERROR_FIELDS:
        return None
    code = value.get("code")
    message = value.get("message")
    if isinstance(code, bool) or not isinstance(code, int) or not _I64_MIN <= code <= _I64_MAX:
        return None
    if not isinstance(message, str):
        return None
    return RpcError(code, message, value.get("data"))


def parse_response(value: Any, is_error: bool) -> Any:
    """Turn what a provider returned, or rejected with, into a result.

    A successful value is returned as plain JSON data. A rejection raises
    RpcError when it is a well-formed error object and InvalidResponseError
    otherwise; so does a successful value that is not JSON data.
    """
    if not is_error:
        try:
            return json.loads(json.dumps(value, allow_nan=False))
        except (TypeError, ValueError) as err:
            raise InvalidResponseError(f"{value!r}: {err}") from err
    error = _parse_rpc_error(value, strict=True)
    if error is None:
        raise InvalidResponseError(f"{value!r}")
    raise error


def _parse_u256(value: Any, name: str) -> int:
    if isinstance(value, str) and value.startswith("0x") and _HEX_DIGITS.fullmatch(value[2:]):
        number = int(value[2:], 16)
        if number < 2**256:
            return number
    raise InvalidResponseError(f"couldn't deserialize {name}: {value!r}")


def _parse_address(value: Any) -> str:
    if isinstance(value, str) and _ADDRESS.fullmatch(value):
        return value.lower()
    raise InvalidResponseError(f"couldn't deserialize account address: {value!r}")


def _method_call_parts(call: Any) -> tuple[str, list[Any]]:
    if (
        isinstance(call, dict)
        and isinstance(call.get("method"), str)
        and "id" in call
        and isinstance(call.get("params"), list)
    ):
        return call["method"], call["params"]
    raise ValueError("Can't send JSON-RPC requests other than method calls with EIP-1193 transport!")


async def _drain(queue: asyncio.Queue[Any]) -> AsyncIterator[Any]:
    while True:
        item = await queue.get()
        if item is _END:
            return
        yield item


class Eip1193(DuplexTransport):
    """Sends calls through an EIP-1193 provider and relays its events."""

    def __init__(self, provider: Any) -> None:
        self._provider = provider
        self._listeners: dict[str, list[Listener]] = {}
        self._subscriptions: dict[str, asyncio.Queue[Any]] = {}
        self._event_queues: list[asyncio.Queue[Any]] = []
        self._on("message", self._handle_message)

    def __enter__(self) -> Eip1193:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def connect_stream(self) -> AsyncIterator[str | None]:
        """Stream of chain ids from ``connect`` events; delivery is unreliable."""

        def handle(event: Any) -> str | None:
            chain_id = event.get("chainId") if isinstance(event, dict) else _END
            if chain_id is _END or not (chain_id is None or isinstance(chain_id, str)):
                raise InvalidResponseError(f"couldn't parse connect event: {event!r}")
            return chain_id

        return self._event_stream("connect", handle)

    def disconnect_stream(self) -> AsyncIterator[RpcError]:
        """Stream of the errors carried by ``disconnect`` events."""

        def handle(event: Any) -> RpcError:
            error = _parse_rpc_error(event, strict=False)
            if error is None:
                raise InvalidResponseError(f"deserializing disconnect error failed: {event!r}")
            return error

        return self._event_stream("disconnect", handle)

    def chain_changed_stream(self) -> AsyncIterator[int]:
        """Stream of the chain ids from ``chainChanged`` events."""
        return self._event_stream("chainChanged", lambda event: _parse_u256(event, "chain changed event"))

    def accounts_changed_stream(self) -> AsyncIterator[list[str]]:
        """Stream of the account addresses from ``accountsChanged`` events."""

        def handle(event: Any) -> list[str]:
            if not isinstance(event, (list, tuple)):
                raise InvalidResponseError(f"{event!r} not an array")
            return [_parse_address(item) for item in event]

        return self._event_stream("accountsChanged", handle)

    def prepare(self, method: str, params: list[Any]) -> tuple[int, Call]:
        # The provider takes only method and params; the id is not used.
        return 0, {"method": method, "params": list(params), "id": None}

    def send(self, request_id: int, call: Call) -> Awaitable[Any]:
        method, params = _method_call_parts(call)
        try:
            plain_params = json.loads(json.dumps(params, allow_nan=False))
        except (TypeError, ValueError) as err:
            raise ValueError("couldn't send method params via JSON") from err
        return self._request(method, plain_params)

    def subscribe(self, subscription_id: str) -> AsyncIterator[Any]:
        queue: asyncio.Queue[Any] = asyncio.Queue()
        previous = self._subscriptions.get(subscription_id)
        if previous is not None:
            previous.put_nowait(_END)
        self._subscriptions[subscription_id] = queue
        return _drain(queue)

    def unsubscribe(self, subscription_id: str) -> None:
        queue = self._subscriptions.pop(subscription_id, None)
        if queue is None:
            raise KeyError(
                "Tried to unsubscribe from non-existent subscription. Did we already unsubscribe?"
            )
        queue.put_nowait(_END)

    def close(self) -> None:
        """Detach every listener from the provider and end all streams."""
        listeners, self._listeners = self._listeners, {}
        for name, handlers in listeners.items():
            for handler in handlers:
                self._provider.remove_listener(name, handler)
        queues, self._event_queues = self._event_queues, []
        for queue in queues:
            queue.put_nowait(_END)
        subscriptions, self._subscriptions = self._subscriptions, {}
        for queue in subscriptions.values():
            queue.put_nowait(_END)

    async def _request(self, method: str, params: list[Any]) -> Any:
        try:
            value = await self._provider.request({"method": method, "params": params})
        except Exception as err:
            payload = err.args[0] if len(err.args) == 1 else None
            return parse_response(payload, True)
        return parse_response(value, False)

    def _on(self, name: str, listener: Listener) -> None:
        self._provider.on(name, listener)
        self._listeners.setdefault(name, []).append(listener)

    def _event_stream(self, name: str, handler: Callable[[Any], Any]) -> AsyncIterator[Any]:
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._event_queues.append(queue)

        def listener(event: Any) -> None:
            queue.put_nowait(handler(event))

        self._on(name, listener)
        return _drain(queue)

    def _handle_message(self, event: Any) -> None:
        data = event.get("data") if isinstance(event, dict) else None
        if (
            not isinstance(event, dict)
            or not isinstance(event.get("type"), str)
            or not isinstance(data, dict)
            or not isinstance(data.get("subscription"), str)
            or "result" not in data
        ):
            raise InvalidResponseError(f"Couldn't parse event data: {event!r}")
        logger.debug("Message from provider: %r", event)
        event_type = event["type"]
        if event_type != "eth_subscription":
            logger.warning("Got unknown notification type: %s", event_type)
            return
        subscription_id = data["subscription"]
        queue = self._subscriptions.get(subscription_id)
        if queue is None:
            logger.warning("Got message for non-existent subscription %s", subscription_id)
            return
        queue.put_nowait(data["result"])