"""Async JSON-RPC client for the node under test.

Every harness operation gets one of these injected rather than reaching for a
global client, so tests can swap the transport for an httpx.MockTransport.
"""

import asyncio
import itertools
import logging
from typing import Any

import httpx

import race_oracle.constants as C
from race_oracle.errors import NodeError, TransportError
from race_oracle.models import TransactionRequest, as_int, to_hex

log = logging.getLogger("race_oracle.rpc")


class NodeClient:
    def __init__(
        self,
        url: str,
        *,
        timeout: float = C.RPC_TIMEOUT,
        submit_timeout: float = C.SUBMIT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.submit_timeout = submit_timeout
        # Submissions block until the node commits, so the HTTP timeout follows the longest call.
        self._http = httpx.AsyncClient(timeout=max(timeout, submit_timeout), transport=transport)
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, conf: dict, *, transport: httpx.AsyncBaseTransport | None = None) -> "NodeClient":
        to = conf.get("timeout", {})
        return cls(
            conf["node"]["rpc_url"],
            timeout=float(to.get("rpc", C.RPC_TIMEOUT)),
            submit_timeout=float(to.get("submit", C.SUBMIT_TIMEOUT)),
            transport=transport,
        )

    async def __aenter__(self) -> "NodeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def call(self, method: str, *params: Any, timeout: float | None = None) -> Any:
        """Send one JSON-RPC request and return its result.

        Raises TransportError when the node cannot be reached or answers with
        something that is not JSON-RPC, and NodeError when it answers with an
        error object.
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": list(params)}
        log.debug("-> %s %s", method, params)
        try:
            resp = await asyncio.wait_for(self._http.post(self.url, json=payload), timeout=timeout or self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} timed out after {timeout or self.timeout}s") from e
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"{method}: {type(e).__name__}: {e}") from e

        if not isinstance(body, dict):
            raise TransportError(f"{method}: expected a JSON-RPC object, got {type(body).__name__}")
        if body.get("error") is not None:
            log.debug("<- %s error %s", method, body["error"])
            raise NodeError(method, body["error"])
        log.debug("<- %s %s", method, body.get("result"))
        return body.get("result")

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    async def get_balance(self, address: str, at: str | int = "latest") -> int:
        block = to_hex(at) if isinstance(at, int) else at
        return as_int(await self.call("cmt_getBalance", address, block))

    async def get_nonce(self, address: str) -> int:
        return as_int(await self.call("cmt_getTransactionCount", address, "latest"))

    async def block_number(self) -> int:
        return as_int(await self.call("cmt_blockNumber"))

    async def get_params(self) -> dict:
        return await self.call("cmt_getParams") or {}

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #

    async def submit(self, request: TransactionRequest) -> dict:
        """Submit a governance/stake request and wait for the node's commit result."""
        return await self.call(request.method, request.payload(), timeout=self.submit_timeout)

    async def transfer(self, from_: str, to: str, amount: int, gas_price: int | None = None) -> str:
        tx = {"from": from_, "to": to, "value": to_hex(amount), "gasPrice": to_hex(gas_price or 0)}
        tx_hash = await self.call("cmt_sendTransaction", tx)
        log.debug("transfer %s -> %s %s: %s", from_, to, amount, tx_hash)
        return tx_hash

    async def withdraw_candidacy(self, address: str) -> dict:
        return await self.call("cmt_withdrawCandidacy", {"from": address}, timeout=self.submit_timeout)

    async def new_account(self, passphrase: str) -> str:
        return await self.call("personal_newAccount", passphrase)

    async def unlock_account(self, address: str, passphrase: str) -> bool:
        return bool(await self.call("personal_unlockAccount", address, passphrase))

    async def probe(self, max_retries: int = 30, retry_delay: float = 2.0) -> int:
        """Probe the RPC endpoint with retries until it responds.

        Args:
            max_retries: Maximum number of attempts
            retry_delay: Seconds to wait between attempts

        Returns:
            The block number the node reported
        """
        for attempt in range(1, max_retries + 1):
            try:
                height = await self.block_number()
                log.info(f"RPC endpoint responding at height {height} (attempt {attempt}/{max_retries})")
                return height
            except TransportError as e:
                if attempt == max_retries:
                    log.error(f"RPC failed after {max_retries} attempts")
                    raise
                log.info(f"RPC not ready yet (attempt {attempt}/{max_retries}): {e} - retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
        raise TransportError("probe called with max_retries < 1")
