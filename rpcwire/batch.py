"""A transport that queues calls and sends them together."""

from __future__ import annotations

import asyncio
from typing import Any

from .base import BatchTransport, Call, InternalError, Transport


class Batch(Transport):
    """Collects calls sent through it until submit_batch sends them as one batch."""

    def __init__(self, transport: BatchTransport) -> None:
        self.transport = transport
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._batch: list[tuple[int, Call]] = []

    def prepare(self, method: str, params: list[Any]) -> tuple[int, Call]:
        return self.transport.prepare(method, params)

    def send(self, request_id: int, call: Call) -> asyncio.Future[Any]:
        """Queue a call; the returned future resolves once the batch is submitted."""
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        self._batch.append((request_id, call))
        return future

    async def submit_batch(self) -> list[Any]:
        """Send every queued call as one batch and resolve their futures."""
        batch, self._batch = self._batch, []
        ids = [request_id for request_id, _ in batch]
        try:
            results = await self.transport.send_batch(batch)
        except Exception as err:
            for request_id in ids:
                self._resolve(request_id, err)
            raise
        for index, request_id in enumerate(ids):
            outcome = results[index] if index < len(results) else InternalError("missing batch result")
            self._resolve(request_id, outcome)
        return results

    def set_max_response_bytes(self, value: int) -> None:
        self.transport.set_max_response_bytes(value)

    def _resolve(self, request_id: int, outcome: Any) -> None:
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            return
        if isinstance(outcome, BaseException):
            future.set_exception(outcome)
        else:
            future.set_result(outcome)