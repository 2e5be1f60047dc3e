import json

import pytest
import pytest_asyncio
import websockets

from fake_node import FUNDING, PROPOSER
from race_oracle.errors import FinalityTimeout, TransportError
from race_oracle.finality import FinalityWaiter
from race_oracle.ws import new_block_height, wait_for_blocks


@pytest.mark.asyncio
async def test_wait_returns_once_blocks_are_produced(client, node):
    waiter = FinalityWaiter(client, blocks=2, poll_interval=0, max_polls=10)
    start = node.height
    height = await waiter.wait()
    assert height >= start + 2


@pytest.mark.asyncio
async def test_wait_applies_pending_transfers(client, node):
    before = await client.get_balance(PROPOSER)
    await client.transfer(FUNDING, PROPOSER, 7)
    assert await client.get_balance(PROPOSER) == before
    await FinalityWaiter(client, poll_interval=0, max_polls=3).wait()
    assert await client.get_balance(PROPOSER) == before + 7


@pytest.mark.asyncio
async def test_stalled_chain_times_out(client, node):
    node.frozen = True
    waiter = FinalityWaiter(client, poll_interval=0, max_polls=4)
    with pytest.raises(FinalityTimeout):
        await waiter.wait()
    # initial read plus every poll
    assert len(node.calls_to("cmt_blockNumber")) == 5


def test_rejects_bad_settings(client):
    with pytest.raises(ValueError):
        FinalityWaiter(client, blocks=0)
    with pytest.raises(ValueError):
        FinalityWaiter(client, mode="sleep")
    with pytest.raises(ValueError):
        FinalityWaiter(client, mode="ws", ws_url=None)


def test_from_config(client, config):
    waiter = FinalityWaiter.from_config(client, config)
    assert waiter.mode == "poll"
    assert waiter.max_polls == 5
    assert waiter.ws_url == config["node"]["ws_url"]


def _new_block(height: str) -> str:
    return json.dumps({
        "jsonrpc": "2.0",
        "id": "1#event",
        "result": {
            "query": "tm.event='NewBlock'",
            "data": {"type": "tendermint/event/NewBlock", "value": {"block": {"header": {"height": height}}}},
        },
    })


def test_new_block_height():
    assert new_block_height(_new_block("42")) == 42
    # subscription acknowledgment
    assert new_block_height(json.dumps({"jsonrpc": "2.0", "id": 1, "result": {}})) is None
    assert new_block_height("not json") is None


def test_new_block_stream_error():
    with pytest.raises(TransportError):
        new_block_height(json.dumps({"jsonrpc": "2.0", "id": 1, "error": {"code": -32603, "message": "bad query"}}))


@pytest.mark.asyncio
async def test_unreachable_block_stream():
    with pytest.raises(TransportError):
        await wait_for_blocks("ws://127.0.0.1:1/websocket", 1, timeout=5)


def _serve_blocks(*heights: int):
    """Block stream that acknowledges the subscription, then sends one NewBlock per height."""

    async def handler(ws):
        await ws.recv()
        await ws.send(json.dumps({"jsonrpc": "2.0", "id": 1, "result": {}}))
        for height in heights:
            await ws.send(_new_block(str(height)))
        async for _ in ws:
            pass

    return websockets.serve(handler, "127.0.0.1", 0)


def _url(server) -> str:
    port = server.sockets[0].getsockname()[1]
    return f"ws://127.0.0.1:{port}/websocket"


@pytest_asyncio.fixture
async def block_stream():
    async with _serve_blocks(10, 11, 12) as server:
        yield _url(server)


@pytest_asyncio.fixture
async def silent_stream():
    async with _serve_blocks() as server:
        yield _url(server)


@pytest.mark.asyncio
async def test_block_stream_counts_new_blocks(block_stream):
    assert await wait_for_blocks(block_stream, 2, timeout=5) == 11


@pytest.mark.asyncio
async def test_ws_mode_waiter(client, block_stream):
    waiter = FinalityWaiter(client, blocks=1, mode="ws", ws_url=block_stream, poll_interval=1, max_polls=5)
    assert await waiter.wait() == 10
    assert await waiter.wait(3) == 12


@pytest.mark.asyncio
async def test_silent_block_stream_times_out(silent_stream):
    with pytest.raises(FinalityTimeout):
        await wait_for_blocks(silent_stream, 1, timeout=0.2)
