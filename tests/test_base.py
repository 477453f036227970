import json

import pytest

from rpcwire.base import (
    InvalidResponseError,
    RpcError,
    Transport,
    TransportError,
    build_request,
    output_id,
    result_from_output,
)


class EchoTransport(Transport):
    def __init__(self):
        self.sent = []

    def prepare(self, method, params):
        return 7, build_request(7, method, params)

    async def send(self, request_id, call):
        self.sent.append((request_id, call))
        return call["params"]


def test_build_request_wire_format():
    call = build_request(0, "eth_getAccounts", [])
    encoded = json.dumps(call, separators=(",", ":"))
    assert encoded == '{"jsonrpc":"2.0","method":"eth_getAccounts","params":[],"id":0}'


def test_build_request_copies_params():
    params = ["a"]
    call = build_request(3, "m", params)
    params.append("b")
    assert call["params"] == ["a"]
    assert call["id"] == 3


def test_result_from_success_output():
    assert result_from_output({"jsonrpc": "2.0", "id": 0, "result": "x"}) == "x"


def test_result_from_failure_output_raises_rpc_error():
    output = {"jsonrpc": "2.0", "id": 0, "error": {"code": -32601, "message": "nope", "data": [1]}}
    with pytest.raises(RpcError) as info:
        result_from_output(output)
    assert (info.value.code, info.value.message, info.value.data) == (-32601, "nope", [1])


@pytest.mark.parametrize(
    "output",
    [{"jsonrpc": "2.0", "id": 0}, "text", {"id": 1, "error": {"code": "red", "message": ""}}],
)
def test_result_from_malformed_output(output):
    with pytest.raises(InvalidResponseError):
        result_from_output(output)


def test_output_id_numeric():
    assert output_id({"id": 5, "result": None}) == 5


@pytest.mark.parametrize("bad_id", ["2", None, True, -1, 1.5])
def test_output_id_rejects_non_u64(bad_id):
    with pytest.raises(InvalidResponseError) as info:
        output_id({"id": bad_id, "result": None})
    assert info.value.message == "response id is not u64"


def test_transport_error_carries_code():
    err = TransportError(code=404)
    assert err.code == 404
    assert err.message is None


def test_transport_is_abstract():
    with pytest.raises(TypeError):
        Transport()


@pytest.mark.asyncio
async def test_execute_prepares_and_sends():
    transport = EchoTransport()
    result = await transport.execute("eth_echo", ("p",))
    assert result == ["p"]
    assert transport.sent == [(7, build_request(7, "eth_echo", ["p"]))]