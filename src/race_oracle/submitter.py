import asyncio
import logging
from collections.abc import Callable

from race_oracle.errors import NodeError, TransportError
from race_oracle.models import SubmissionResult, TransactionRequest
from race_oracle.rpc import NodeClient

log = logging.getLogger("race_oracle.submitter")

# Builds the request for one nonce; called once for n and once for n+1.
RequestFactory = Callable[[int], TransactionRequest]


class DualSubmitter:
    """Fires two requests under consecutive nonces at the same time.

    The nonce is read once, right before submission, and never cached: a
    previous scenario's cleanup may have moved it. Both requests are in flight
    before either is awaited so the node, not the client, decides ordering.
    """

    def __init__(self, client: NodeClient) -> None:
        self.client = client

    async def submit(self, sender: str, build: RequestFactory) -> tuple[SubmissionResult, SubmissionResult]:
        """Submit build(n) and build(n+1) concurrently.

        Returns the two results ordered by nonce, not by completion. A transport
        failure on one request lands in its slot of the pair and does not cancel
        the other.
        """
        nonce = await self.client.get_nonce(sender)
        requests = (build(nonce), build(nonce + 1))
        for r in requests:
            if r.sender != sender or r.nonce not in (nonce, nonce + 1):
                raise ValueError(f"request factory produced {r!r} for sender {sender} nonce {nonce}")

        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(self._submit_one(r), name=f"submit-{r.kind}-{r.nonce}") for r in requests]

        first, second = (t.result() for t in tasks)
        log.debug("pair for %s: %s=%s %s=%s", sender, first.nonce, first.status, second.nonce, second.status)
        return first, second

    async def _submit_one(self, request: TransactionRequest) -> SubmissionResult:
        log.debug("submit %s %s", request.method, request.payload())
        try:
            response = await self.client.submit(request)
        except TransportError as e:
            log.warning("Transport error on %s nonce=%s: %s", request.kind, request.nonce, e)
            return SubmissionResult.transport_error(request.nonce, e)
        except NodeError as e:
            log.info("Node rejected %s nonce=%s: %s", request.kind, request.nonce, e.error)
            return SubmissionResult.rejected(request.nonce, e.error)
        return SubmissionResult.from_response(request.nonce, response)
