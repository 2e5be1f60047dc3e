import pytest

import race_oracle.constants as C
from fake_node import FUNDING, PROPOSER, TRANSFER_FROM
from race_oracle.gas import GasSchedule
from race_oracle.scenarios import STANDARD_SUITE, ScenarioContext, build_plan


@pytest.fixture
def ctx(client, config):
    return ScenarioContext(
        client=client,
        gas=GasSchedule.from_config(config["gas"]),
        accounts=config["accounts"],
        settings=config["scenarios"],
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("capacity", [0, 1])
async def test_fund_transfer_limits_gas(ctx, capacity):
    plan = await build_plan(ctx, C.TxKind.FUND_TRANSFER, capacity)
    fee = ctx.gas.fee(C.TxKind.FUND_TRANSFER)
    assert plan.sender == PROPOSER
    assert plan.precondition.balances == {PROPOSER: capacity * fee, TRANSFER_FROM: 2 * 1000 * C.CMT}
    assert plan.expected == (C.Verdict.ALL_FAIL if capacity == 0 else C.Verdict.EXACTLY_ONE_SUCCEEDS)


@pytest.mark.asyncio
async def test_fund_transfer_limits_amount(ctx):
    plan = await build_plan(ctx, "FundTransfer", 1, "amount")
    fee = ctx.gas.fee(C.TxKind.FUND_TRANSFER)
    assert plan.precondition.balances == {PROPOSER: 2 * fee, TRANSFER_FROM: 1000 * C.CMT}
    request = plan.build(9)
    assert (request.nonce, request.transfer_from, request.transfer_to) == (9, TRANSFER_FROM, FUNDING)
    assert request.amount == 1000 * C.CMT
    assert plan.expected == C.Verdict.EXACTLY_ONE_SUCCEEDS
    assert plan.label == "FundTransfer/amount k=1"


@pytest.mark.asyncio
async def test_candidacy_update_plan(ctx):
    plan = await build_plan(ctx, C.TxKind.CANDIDACY_UPDATE, 0)
    assert plan.precondition.balances == {PROPOSER: 0}
    assert plan.expected == C.Verdict.ALL_FAIL
    assert plan.teardown is None


@pytest.mark.asyncio
async def test_candidacy_declaration_provisions_a_fresh_validator(ctx, node):
    plan = await build_plan(ctx, C.TxKind.CANDIDACY_DECLARATION, 1)
    assert plan.sender in node.passphrases
    assert plan.sender != PROPOSER
    fee = ctx.gas.fee(C.TxKind.CANDIDACY_DECLARATION)
    assert plan.precondition.balances == {plan.sender: fee + 10}
    assert plan.build(4).pub_key == f"{C.PUB_KEY_PREFIX}4="
    assert plan.build(5).pub_key != plan.build(4).pub_key

    other = await build_plan(ctx, C.TxKind.CANDIDACY_DECLARATION, 0)
    assert other.sender != plan.sender
    assert other.precondition.balances == {other.sender: 0}


@pytest.mark.asyncio
async def test_unsupported_resource(ctx):
    with pytest.raises(ValueError):
        await build_plan(ctx, C.TxKind.CANDIDACY_UPDATE, 1, C.Resource.AMOUNT)


@pytest.mark.asyncio
@pytest.mark.parametrize("capacity", [-1, 2])
async def test_uncontested_capacity(ctx, capacity):
    with pytest.raises(ValueError):
        await build_plan(ctx, C.TxKind.CANDIDACY_UPDATE, capacity)


@pytest.mark.asyncio
async def test_unknown_kind(ctx):
    with pytest.raises(ValueError):
        await build_plan(ctx, "Transfer", 1)


def test_standard_suite_covers_every_kind_at_both_capacities():
    seen = {(kind, capacity) for kind, capacity, _ in STANDARD_SUITE}
    assert seen == {(kind, k) for kind in C.TxKind for k in (0, 1)}
