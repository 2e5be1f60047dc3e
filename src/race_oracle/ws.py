# race_oracle/ws.py
"""
Block stream listener for the node's Tendermint websocket endpoint.

Subscribes to NewBlock events and counts them, so callers can wait for
finality without hammering the JSON-RPC endpoint.
"""
import asyncio
import json
import logging

import websockets

from race_oracle.errors import FinalityTimeout, TransportError

log = logging.getLogger("race_oracle.ws")

NEW_BLOCK_QUERY = "tm.event='NewBlock'"


def new_block_height(raw_msg: str | bytes) -> int | None:
    """Return the block height carried by a NewBlock event, None for anything else.

    Message structure:
    {
        "jsonrpc": "2.0",
        "id": "1#event",
        "result": {
            "query": "tm.event='NewBlock'",
            "data": {"type": "tendermint/event/NewBlock",
                     "value": {"block": {"header": {"height": "42", ...}}}}
        }
    }
    """
    try:
        obj = json.loads(raw_msg)
    except json.JSONDecodeError:
        log.debug("WS raw (non-JSON): %s", raw_msg[:200])
        return None

    if obj.get("error"):
        raise TransportError(f"block stream error: {obj['error']}")

    data = (obj.get("result") or {}).get("data") or {}
    header = ((data.get("value") or {}).get("block") or {}).get("header") or {}
    height = header.get("height")
    if height is None:
        # Subscription acknowledgments, other events
        return None
    return int(height)


async def wait_for_blocks(ws_url: str, count: int, *, timeout: float) -> int:
    """
    Connect to the node's websocket and wait for 'count' new blocks.

    Parameters
    ----------
    ws_url:
        Tendermint websocket URL (e.g., "ws://node:26657/websocket")
    count:
        Number of NewBlock events to observe
    timeout:
        Overall budget in seconds; exceeding it raises FinalityTimeout

    Returns the height of the last block observed.
    """
    subscribe_msg = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "subscribe",
        "params": {"query": NEW_BLOCK_QUERY},
    }
    log.debug("Connecting to %s to wait for %s blocks...", ws_url, count)
    try:
        async with asyncio.timeout(timeout):
            async with websockets.connect(ws_url, ping_interval=20, ping_timeout=20, close_timeout=1) as ws:
                await ws.send(json.dumps(subscribe_msg))
                seen = 0
                async for msg in ws:
                    height = new_block_height(msg)
                    if height is None:
                        continue
                    seen += 1
                    log.debug("Block %s committed. (%s/%s)", height, seen, count)
                    if seen >= count:
                        return height
    except TimeoutError as e:
        raise FinalityTimeout(f"saw fewer than {count} blocks on {ws_url} within {timeout}s") from e
    except (OSError, websockets.exceptions.WebSocketException) as e:
        raise TransportError(f"block stream {ws_url}: {type(e).__name__}: {e}") from e

    raise TransportError(f"block stream {ws_url} closed before {count} blocks were seen")
