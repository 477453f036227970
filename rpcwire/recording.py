"""A transport that records requests and replays canned responses."""

from __future__ import annotations

import copy
import json
import logging
from collections import deque
from typing import Any

from .base import Call, Transport, UnreachableError, build_request

logger = logging.getLogger(__name__)


class RecordingTransport(Transport):
    """Records every prepared call and answers with queued responses."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, list[Any]]] = []
        self._responses: deque[Any] = deque()
        self._asserted = 0

    def prepare(self, method: str, params: list[Any]) -> tuple[int, Call]:
        params = list(params)
        call = build_request(1, method, copy.deepcopy(params))
        self.requests.append((method, params))
        return len(self.requests), call

    async def send(self, request_id: int, call: Call) -> Any:
        if not self._responses:
            logger.warning("Unexpected request (id: %s): %s", request_id, call)
            raise UnreachableError(f"Unexpected request (id: {request_id}): {call}")
        return self._responses.popleft()

    def set_response(self, value: Any) -> None:
        """Replace all queued responses with a single one."""
        self._responses = deque([value])

    def add_response(self, value: Any) -> None:
        """Queue one more response."""
        self._responses.append(value)

    def assert_request(self, method: str, params: list[str]) -> None:
        """Check the next recorded request; params are given as compact JSON text."""
        index = self._asserted
        self._asserted += 1
        if index >= len(self.requests):
            raise AssertionError("Expected result.")
        recorded_method, recorded_params = self.requests[index]
        if recorded_method != method:
            raise AssertionError(f"method {recorded_method!r} != {method!r}")
        encoded = [json.dumps(p, separators=(",", ":"), sort_keys=True) for p in recorded_params]
        if encoded != list(params):
            raise AssertionError(f"params {encoded!r} != {list(params)!r}")

    def assert_no_more_requests(self) -> None:
        """Check that every recorded request has been asserted."""
        if self._asserted != len(self.requests):
            raise AssertionError(f"Expected no more requests, got: {self.requests[self._asserted:]!r}")