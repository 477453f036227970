import contextlib

import httpx
import pytest
import respx

from rpcwire.base import InvalidResponseError, RpcError, TransportError
from rpcwire.http import Http, handle_batch_response

URL = "http://127.0.0.1:3001/"
EXPECTED = '{"jsonrpc":"2.0","method":"eth_getAccounts","params":[],"id":0}'
RESPONSE = '{"jsonrpc":"2.0","id":0,"result":"x"}'


@contextlib.asynccontextmanager
async def _client(url=URL, **mock):
    """An Http transport against a mocked endpoint; yields the client and the route."""
    with respx.mock:
        route = respx.post(URL).mock(**mock)
        client = Http(url)
        try:
            yield client, route
        finally:
            await client.aclose()


@pytest.mark.asyncio
async def test_should_make_a_request():
    async with _client("http://127.0.0.1:3001", return_value=httpx.Response(200, text=RESPONSE)) as (client, route):
        response = await client.execute("eth_getAccounts", [])
    assert response == "x"
    request = route.calls.last.request
    assert (request.method, request.url.path, request.content.decode()) == ("POST", "/", EXPECTED)


def test_handles_batch_response_being_in_different_order_than_input():
    ids = [0, 1, 2]
    outputs = [{"id": i, "result": i} for i in (1, 0, 2)]
    assert handle_batch_response(ids, outputs) == ids


@pytest.mark.parametrize(
    "ids, outputs, message",
    [
        ([0, 1], [{"id": 0, "result": 0}], "unexpected number of responses"),
        ([0, 2], [{"id": 0, "result": 0}, {"id": 1, "result": 1}], "batch response is missing id 2"),
    ],
)
def test_invalid_batch_responses(ids, outputs, message):
    with pytest.raises(InvalidResponseError) as info:
        handle_batch_response(ids, outputs)
    assert info.value.message == message


def test_batch_response_keeps_per_call_errors():
    outputs = [{"id": 1, "error": {"code": -32000, "message": "bad"}}, {"id": 0, "result": "ok"}]
    first, second = handle_batch_response([0, 1], outputs)
    assert first == "ok"
    assert isinstance(second, RpcError) and second.message == "bad"


@pytest.mark.asyncio
async def test_send_batch_restores_order():
    body = [{"jsonrpc": "2.0", "id": 1, "result": "b"}, {"jsonrpc": "2.0", "id": 0, "result": "a"}]
    async with _client(return_value=httpx.Response(200, json=body)) as (client, route):
        results = await client.send_batch([client.prepare("eth_a", []), client.prepare("eth_b", [])])
    assert results == ["a", "b"]
    assert route.calls.last.request.content.decode().startswith('[{"jsonrpc":"2.0","method":"eth_a"')


@pytest.mark.asyncio
async def test_error_status_is_reported_as_code():
    async with _client(return_value=httpx.Response(503, text="down")) as (client, _):
        with pytest.raises(TransportError) as info:
            await client.execute("eth_a", [])
    assert info.value.code == 503


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "mock, prefix",
    [
        ({"return_value": httpx.Response(200, text="not json")}, "failed to deserialize response"),
        ({"side_effect": httpx.ConnectError("refused")}, "failed to send request"),
    ],
)
async def test_transport_failures_are_described(mock, prefix):
    async with _client(**mock) as (client, _):
        with pytest.raises(TransportError) as info:
            await client.execute("eth_a", [])
    assert info.value.message.startswith(prefix)


@pytest.mark.asyncio
async def test_rpc_error_response_raises():
    body = {"jsonrpc": "2.0", "id": 0, "error": {"code": -32601, "message": "Method not found"}}
    async with _client(return_value=httpx.Response(200, json=body)) as (client, _):
        with pytest.raises(RpcError) as info:
            await client.execute("eth_missing", [])
    assert (info.value.code, info.value.message) == (-32601, "Method not found")


def test_ids_increase_from_zero():
    client = Http(URL)
    assert [client.prepare("m", [])[0] for _ in range(3)] == [0, 1, 2]


def test_invalid_url_is_rejected():
    with pytest.raises(TransportError) as info:
        Http("not a url")
    assert info.value.message.startswith("failed to parse url")