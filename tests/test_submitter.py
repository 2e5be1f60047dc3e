import json

import httpx
import pytest

import race_oracle.constants as C
from fake_node import PROPOSER
from race_oracle.models import CandidacyUpdate
from race_oracle.rpc import NodeClient
from race_oracle.submitter import DualSubmitter

S = C.SubmissionStatus


def update(nonce: int) -> CandidacyUpdate:
    return CandidacyUpdate(sender=PROPOSER, nonce=nonce)


@pytest.mark.asyncio
async def test_consecutive_nonces_from_a_fresh_read(client, node):
    node.nonces[PROPOSER] = 41
    first, second = await DualSubmitter(client).submit(PROPOSER, update)
    assert (first.nonce, second.nonce) == (41, 42)
    assert len(node.calls_to("cmt_getTransactionCount")) == 1
    assert sorted(n for _, _, n in node.submissions) == [41, 42]


@pytest.mark.asyncio
async def test_both_requests_in_flight_together(client, node):
    await DualSubmitter(client).submit(PROPOSER, update)
    assert node.max_in_flight == 2


@pytest.mark.asyncio
async def test_results_follow_nonce_order(client, node):
    # enough gas for both: the lower nonce commits first, the higher one after it
    first, second = await DualSubmitter(client).submit(PROPOSER, update)
    assert first.status == S.INCLUDED_SUCCESS
    assert second.status == S.INCLUDED_SUCCESS
    assert first.height < second.height


@pytest.mark.asyncio
async def test_unfunded_sender(client, node):
    node.balances[PROPOSER] = 0
    first, second = await DualSubmitter(client).submit(PROPOSER, update)
    assert first.status == S.NOT_INCLUDED
    assert second.status == S.NOT_INCLUDED
    assert node.nonces[PROPOSER] == 0


@pytest.mark.asyncio
async def test_transport_error_stays_in_its_slot(client, node):
    node.drop_nonces = {1}
    first, second = await DualSubmitter(client).submit(PROPOSER, update)
    assert first.status == S.INCLUDED_SUCCESS
    assert second.status == S.TRANSPORT_ERROR
    assert second.nonce == 1


@pytest.mark.asyncio
async def test_node_rejection_is_not_included(client, node):
    node.reject_nonces = {0}
    first, second = await DualSubmitter(client).submit(PROPOSER, update)
    assert first.status == S.NOT_INCLUDED
    assert first.raw["error"]["message"] == "tx rejected by mempool"
    # nonce 0 never landed, so 1 is out of order
    assert second.status == S.NOT_INCLUDED


@pytest.mark.asyncio
async def test_factory_must_honour_sender_and_nonce(client):
    with pytest.raises(ValueError):
        await DualSubmitter(client).submit(PROPOSER, lambda nonce: CandidacyUpdate(sender=PROPOSER, nonce=7))
    with pytest.raises(ValueError):
        await DualSubmitter(client).submit(PROPOSER, lambda nonce: CandidacyUpdate(sender="0xother", nonce=nonce))


@pytest.mark.asyncio
async def test_non_object_answers_stay_in_their_slots():
    def handler(request):
        body = json.loads(request.content)
        if body["method"] == "cmt_getTransactionCount":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0x3"})
        return httpx.Response(200, json=["not", "an", "object"])

    async with NodeClient("http://node:8545", transport=httpx.MockTransport(handler)) as client:
        first, second = await DualSubmitter(client).submit(PROPOSER, update)
    assert (first.nonce, second.nonce) == (3, 4)
    assert first.status == S.TRANSPORT_ERROR
    assert second.status == S.TRANSPORT_ERROR
