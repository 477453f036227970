"""JSON-RPC transport interfaces, errors and message helpers."""

from __future__ import annotations

import abc
from collections.abc import AsyncIterator, Awaitable, Iterable
from typing import Any

Call = dict[str, Any]


class RpcTransportError(Exception):
    """Base class of every error a transport reports."""


class TransportError(RpcTransportError):
    """The transport failed: a message describing why, or a status code."""

    def __init__(self, message: str | None = None, *, code: int | None = None) -> None:
        self.message = message
        self.code = code
        text = message if message is not None else f"transport error, status code {code}"
        super().__init__(text)


class InvalidResponseError(RpcTransportError):
    """The remote side answered with something that is not a valid response."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RpcError(RpcTransportError):
    """The remote side answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC error {code}: {message}")


class InternalError(RpcTransportError):
    """A response was lost inside the transport."""


class UnreachableError(RpcTransportError):
    """A request arrived where none was expected."""


def build_request(request_id: int, method: str, params: list[Any]) -> Call:
    """Build a JSON-RPC 2.0 method call."""
    return {"jsonrpc": "2.0", "method": method, "params": list(params), "id": request_id}


def result_from_output(output: Any) -> Any:
    """Return the result carried by a response, raising RpcError for an error response."""
    if not isinstance(output, dict):
        raise InvalidResponseError(f"response is not an object: {output!r}")
    if "error" in output:
        error = output["error"]
        if (
            not isinstance(error, dict)
            or not isinstance(error.get("code"), int)
            or isinstance(error.get("code"), bool)
            or not isinstance(error.get("message"), str)
        ):
            raise InvalidResponseError(f"malformed error object: {error!r}")
        raise RpcError(error["code"], error["message"], error.get("data"))
    if "result" in output:
        return output["result"]
    raise InvalidResponseError(f"response has neither result nor error: {output!r}")


def output_id(output: Any) -> int:
    """Return the numeric id of a response."""
    response_id = output.get("id") if isinstance(output, dict) else None
    if isinstance(response_id, bool) or not isinstance(response_id, int) or response_id < 0:
        raise InvalidResponseError("response id is not u64")
    return response_id


class Transport(abc.ABC):
    """Something that can deliver JSON-RPC calls and return their results."""

    @abc.abstractmethod
    def prepare(self, method: str, params: list[Any]) -> tuple[int, Call]:
        """Assign an id to a call and build it."""

    @abc.abstractmethod
    def send(self, request_id: int, call: Call) -> Awaitable[Any]:
        """Send a prepared call; the awaitable resolves to its result."""

    async def execute(self, method: str, params: Iterable[Any]) -> Any:
        """Prepare and send a call, returning its result."""
        request_id, call = self.prepare(method, list(params))
        return await self.send(request_id, call)

    def set_max_response_bytes(self, value: int) -> None:
        """Limit the size of responses; transports without such a limit ignore it."""


class BatchTransport(Transport):
    """A transport able to send several calls at once."""

    @abc.abstractmethod
    def send_batch(self, requests: Iterable[tuple[int, Call]]) -> Awaitable[list[Any]]:
        """Send prepared calls together.

        The awaitable resolves to one item per call, in request order: the
        result, or the RpcTransportError raised for that call.
        """


class DuplexTransport(Transport):
    """A transport that also delivers subscription notifications."""

    @abc.abstractmethod
    def subscribe(self, subscription_id: str) -> AsyncIterator[Any]:
        """Return a stream of notifications for a subscription."""

    @abc.abstractmethod
    def unsubscribe(self, subscription_id: str) -> None:
        """Stop delivering notifications for a subscription."""