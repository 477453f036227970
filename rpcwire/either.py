"""A transport that is one of two alternatives."""

from __future__ import annotations

import enum

from .base import BatchTransport, DuplexTransport, Transport


class Side(enum.Enum):
    """Which of the two alternatives is held."""

    LEFT = "left"
    RIGHT = "right"


class Either(BatchTransport, DuplexTransport):
    """Holds one of two transports and forwards every operation to it."""

    def __init__(self, side, transport: Transport) -> None:
        self.side = Side(side)
        self.transport = transport

    def prepare(self, method, params):
        """Build a call with the held transport."""
        return self.transport.prepare(method, params)

    def send(self, request_id, call):
        """Send one call through the held transport."""
        return self.transport.send(request_id, call)

    def send_batch(self, requests):
        """Send a batch through the held transport."""
        return self.transport.send_batch(requests)

    def subscribe(self, subscription_id):
        """Open a notification stream on the held transport."""
        return self.transport.subscribe(subscription_id)

    def unsubscribe(self, subscription_id):
        """Close a notification stream on the held transport."""
        self.transport.unsubscribe(subscription_id)

    def set_max_response_bytes(self, value):
        """Pass the response size limit on to the held transport."""
        self.transport.set_max_response_bytes(value)

    def __repr__(self) -> str:
        return f"Either({self.side.name}, {self.transport!r})"