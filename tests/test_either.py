import pytest

from rpcwire.base import BatchTransport, DuplexTransport, build_request
from rpcwire.either import Either, Side


class FakeTransport(BatchTransport, DuplexTransport):
    def __init__(self, name):
        self.name = name
        self.unsubscribed = []
        self.max_bytes = None

    def prepare(self, method, params):
        return 0, build_request(0, method, [self.name, *params])

    async def send(self, request_id, call):
        return (self.name, call["method"])

    async def send_batch(self, requests):
        return [(self.name, call["method"]) for _, call in requests]

    async def subscribe(self, subscription_id):
        yield (self.name, subscription_id)

    def unsubscribe(self, subscription_id):
        self.unsubscribed.append(subscription_id)

    def set_max_response_bytes(self, value):
        self.max_bytes = value


@pytest.fixture(params=[Side.LEFT, Side.RIGHT])
def wrapped(request):
    inner = FakeTransport(request.param.value)
    return Either(request.param, inner), inner


def test_prepare_is_forwarded(wrapped):
    either, inner = wrapped
    _, call = either.prepare("eth_a", [1])
    assert call["params"] == [inner.name, 1]


@pytest.mark.asyncio
async def test_execute_is_forwarded(wrapped):
    either, inner = wrapped
    assert await either.execute("eth_a", []) == (inner.name, "eth_a")


@pytest.mark.asyncio
async def test_send_batch_is_forwarded(wrapped):
    either, inner = wrapped
    requests = [either.prepare("eth_a", []), either.prepare("eth_b", [])]
    assert await either.send_batch(requests) == [(inner.name, "eth_a"), (inner.name, "eth_b")]


@pytest.mark.asyncio
async def test_subscriptions_are_forwarded(wrapped):
    either, inner = wrapped
    received = [item async for item in either.subscribe("0xsub")]
    assert received == [(inner.name, "0xsub")]
    either.unsubscribe("0xsub")
    assert inner.unsubscribed == ["0xsub"]


def test_limit_is_forwarded(wrapped):
    either, inner = wrapped
    either.set_max_response_bytes(99)
    assert inner.max_bytes == 99


def test_side_accepts_its_value():
    either = Either("right", FakeTransport("r"))
    assert either.side is Side.RIGHT


def test_unknown_side_is_rejected():
    with pytest.raises(ValueError):
        Either("middle", FakeTransport("m"))