# rpcwire

Asynchronous JSON-RPC 2.0 transports for talking to Ethereum-style nodes,
built on `asyncio`.

## The shared interface

Every transport derives from the abstract classes in `rpcwire.base`:

- `Transport.prepare(method, params)` assigns a request id and returns
  `(request_id, call)`, where `call` is a JSON-RPC method call as a `dict`;
- `Transport.send(request_id, call)` returns an awaitable that resolves to the
  call's result;
- `Transport.execute(method, params)` prepares and sends in one step;
- `Transport.set_max_response_bytes(value)` is accepted by every transport and
  passed on by the wrapping ones (`Batch`, `Either`); the others ignore it.

`BatchTransport` adds `send_batch(requests)`, which takes `(request_id, call)`
pairs and resolves to one item per call, in request order: either the result
or the `RpcTransportError` instance for that call (returned, not raised).

`DuplexTransport` adds `subscribe(subscription_id)`, returning an async
iterator of notification results, and `unsubscribe(subscription_id)`, which
ends that iterator.

The module also provides `build_request(request_id, method, params)`,
`result_from_output(output)` and `output_id(output)` for working with
JSON-RPC messages directly.

### Errors

All errors derive from `RpcTransportError`:

| Exception | Raised when |
| --- | --- |
| `TransportError` | connecting, sending or decoding failed (`.message`), or an HTTP / handshake status was not accepted (`.code`) |
| `RpcError` | the node answered with a JSON-RPC error object (`.code`, `.message`, `.data`) |
| `InvalidResponseError` | the answer could not be understood |
| `InternalError` | a batched call got no result back |
| `UnreachableError` | `RecordingTransport` received a request with no response queued |

## Transports

| Module | Names | What it does |
| --- | --- | --- |
| `rpcwire.http` | `Http`, `handle_batch_response` | JSON-RPC over HTTP POST with `httpx`; single calls and batches |
| `rpcwire.ipc` | `Ipc`, `connect_ipc` | Unix domain socket; single calls, batches and subscriptions |
| `rpcwire.ws` | `WebSocket`, `connect_websocket`, `batch_to_single` | WebSocket with `websockets`; single calls, batches and subscriptions |
| `rpcwire.eip1193` | `Eip1193`, `parse_response` | Sends calls through an EIP-1193 style provider object and relays its events |
| `rpcwire.batch` | `Batch` | Queues calls on any batch transport and sends them together |
| `rpcwire.either` | `Either`, `Side` | Holds one of two transports and forwards every operation to it |
| `rpcwire.recording` | `RecordingTransport` | Records requests and replays canned responses, for tests |

Notes on each:

- `Http(url, client=None)` checks the URL when constructed and raises
  `TransportError` if it is not absolute. Without a `client` it creates its
  own `httpx.AsyncClient` (User-Agent `rpcwire`) and `aclose()` closes it; a
  client you pass in is left for you to close. Batch replies may arrive in
  any order; `handle_batch_response(ids, outputs)` puts them back in request
  order.
- `connect_ipc(path)` opens the socket and returns an `Ipc`; `Ipc(reader,
  writer)` wraps an existing `asyncio` stream pair. Request ids start at 1.
  Responses split across reads or several values in one read are handled.
  `close()` (or `async with`) stops the reader and fails whatever is pending.
- `connect_websocket(url)` accepts `ws://` and `wss://` URLs; credentials in
  the URL, as in `ws://user:password@localhost:8546`, are sent as a basic
  `Authorization` header. A rejected handshake raises `TransportError` with
  the status code. `WebSocket(connection)` wraps any object with async
  `send(text)`, `close()` and async iteration over incoming messages.
- `Eip1193(provider)` expects a provider with `await request({"method": ...,
  "params": [...]})`, `on(event_name, listener)` and
  `remove_listener(event_name, listener)`; a rejected request raises an
  exception whose single argument is the provider's error value.
  `connect_stream()`, `disconnect_stream()`, `chain_changed_stream()` and
  `accounts_changed_stream()` return async iterators of parsed events
  (chain ids as `int`, addresses in lower case). `close()` (or `with`)
  removes every listener and ends all streams. Unsubscribing an id that is
  not subscribed raises `KeyError`.
- `Batch(transport).send(...)` returns an `asyncio.Future` that resolves once
  `submit_batch()` has sent the queued calls; `submit_batch()` returns the
  batch's result list and raises if the whole batch failed.
- `Either(Side.LEFT, transport)` or `Either("right", transport)`.
- `RecordingTransport.assert_request(method, params)` compares params given as
  compact JSON text with sorted keys, and raises `AssertionError` on a
  mismatch; `assert_no_more_requests()` checks every request was asserted.

## Examples

A single call over HTTP:

```python
import asyncio
from rpcwire.http import Http

async def main():
    transport = Http("http://localhost:8545")
    try:
        print(await transport.execute("eth_accounts", []))
    finally:
        await transport.aclose()

asyncio.run(main())
```

Several calls in one round trip:

```python
from rpcwire.batch import Batch
from rpcwire.http import Http

async def balances(addresses):
    http = Http("http://localhost:8545")
    batch = Batch(http)
    pending = [
        batch.send(*batch.prepare("eth_getBalance", [address, "latest"]))
        for address in addresses
    ]
    try:
        await batch.submit_batch()
        return [await result for result in pending]
    finally:
        await http.aclose()
```

Subscriptions over a WebSocket:

```python
from rpcwire.ws import connect_websocket

async def watch_heads():
    async with await connect_websocket("ws://localhost:8546") as transport:
        subscription_id = await transport.execute("eth_subscribe", ["newHeads"])
        async for head in transport.subscribe(subscription_id):
            print(head)
```

Testing code that uses a transport:

```python
from rpcwire.recording import RecordingTransport

async def test_block_number():
    transport = RecordingTransport()
    transport.set_response("0x10")
    assert await transport.execute("eth_blockNumber", []) == "0x10"
    transport.assert_request("eth_blockNumber", [])
    transport.assert_no_more_requests()
```

## What it does not do

rpcwire only moves JSON-RPC messages. It has no typed API for node methods
(no block, transaction or account types; results are plain JSON values), no
command-line tool, and no server. The IPC and WebSocket transports do not
reconnect: once the connection ends, pending calls fail with
`TransportError` and further calls are refused. IPC works only where
`asyncio` supports Unix sockets.

## Installing

```
pip install rpcwire
```

To run the tests, install the `test` extra (`pip install rpcwire[test]`) and run `pytest`.