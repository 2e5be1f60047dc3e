import asyncio
import logging

import race_oracle.constants as C
from race_oracle import ws
from race_oracle.errors import FinalityTimeout
from race_oracle.rpc import NodeClient

log = logging.getLogger("race_oracle.finality")


class FinalityWaiter:
    """Synchronization boundary between "submit" and "observe".

    A transaction's effect is only guaranteed observable once blocks have been
    produced on top of the submission, so every balance read and every
    classification happens after wait() returns.
    """

    def __init__(
        self,
        client: NodeClient,
        *,
        blocks: int = C.FINALITY_BLOCKS,
        poll_interval: float = C.POLL_INTERVAL,
        max_polls: int = C.MAX_POLLS,
        mode: str = "poll",
        ws_url: str | None = None,
    ) -> None:
        if blocks < 1:
            raise ValueError(f"finality needs at least one block, got {blocks}")
        if mode not in ("poll", "ws"):
            raise ValueError(f"unknown finality mode {mode!r}")
        if mode == "ws" and not ws_url:
            raise ValueError("finality mode 'ws' needs a ws_url")
        self.client = client
        self.blocks = blocks
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.mode = mode
        self.ws_url = ws_url

    @classmethod
    def from_config(cls, client: NodeClient, conf: dict) -> "FinalityWaiter":
        f = conf.get("finality", {})
        return cls(
            client,
            blocks=int(f.get("blocks", C.FINALITY_BLOCKS)),
            poll_interval=float(f.get("poll_interval", C.POLL_INTERVAL)),
            max_polls=int(f.get("max_polls", C.MAX_POLLS)),
            mode=f.get("mode", "poll"),
            ws_url=conf.get("node", {}).get("ws_url"),
        )

    @property
    def budget(self) -> float:
        return self.poll_interval * self.max_polls

    async def wait(self, blocks: int | None = None) -> int:
        """Block until `blocks` new blocks exist (default: the configured count).

        Returns the height observed. Raises FinalityTimeout when the budget
        runs out first.
        """
        n = self.blocks if blocks is None else blocks
        if n < 1:
            raise ValueError(f"finality needs at least one block, got {n}")
        if self.mode == "ws":
            return await ws.wait_for_blocks(self.ws_url, n, timeout=self.budget)
        return await self._poll(n)

    async def _poll(self, n: int) -> int:
        start = await self.client.block_number()
        target = start + n
        height = start
        for attempt in range(1, self.max_polls + 1):
            await asyncio.sleep(self.poll_interval)
            height = await self.client.block_number()
            if height >= target:
                log.debug("Reached height %s (start %s) after %s polls", height, start, attempt)
                return height
        raise FinalityTimeout(
            f"no {n} new blocks after height {start} within {self.max_polls} polls "
            f"({self.budget:.1f}s); last height {height}"
        )
