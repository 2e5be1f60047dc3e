"""Scenario plans: who races, what they race for, and how much they can afford.

Each planner turns (kind, capacity k, resource) into the exact balances the
precondition setter must establish and a factory for the two raced requests.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import race_oracle.constants as C
from race_oracle.classifier import expected_verdict
from race_oracle.errors import HarnessError
from race_oracle.gas import GasSchedule
from race_oracle.models import (
    CandidacyDeclaration,
    CandidacyUpdate,
    FundTransfer,
    ScenarioPrecondition,
    SubmissionResult,
)
from race_oracle.rpc import NodeClient
from race_oracle.submitter import RequestFactory

log = logging.getLogger("race_oracle.scenarios")

# Called with the submitted pair, whether or not the scenario finished
Teardown = Callable[[tuple[SubmissionResult, SubmissionResult]], Awaitable[None]]


@dataclass(slots=True)
class ScenarioContext:
    client: NodeClient
    gas: GasSchedule
    accounts: dict  # [accounts] section of the config
    settings: dict  # [scenarios] section of the config

    @property
    def transfer_amount(self) -> int:
        return int(self.settings.get("transfer_amount", C.DEFAULT_TRANSFER_AMOUNT // C.CMT)) * C.CMT

    @property
    def declare_margin(self) -> int:
        return int(self.settings.get("declare_margin", C.DECLARE_MARGIN))


@dataclass(slots=True)
class ScenarioPlan:
    kind: C.TxKind
    resource: C.Resource
    capacity: int
    sender: str
    precondition: ScenarioPrecondition
    build: RequestFactory
    teardown: Teardown | None = None

    @property
    def expected(self) -> C.Verdict:
        return expected_verdict(self.capacity)

    @property
    def label(self) -> str:
        return f"{self.kind}/{self.resource} k={self.capacity}"


async def _plan_fund_transfer(ctx: ScenarioContext, capacity: int, resource: C.Resource, account: str | None) -> ScenarioPlan:
    """The proposer asks twice to move funds out of transfer_from.

    resource=gas: the proposer can pay for k proposals, transfer_from holds plenty.
    resource=amount: the proposer can pay for both, transfer_from holds k amounts.
    """
    proposer = account or ctx.accounts["proposer"]
    source = ctx.accounts["transfer_from"]
    destination = ctx.accounts.get("transfer_to") or ctx.accounts["funding"]
    amount = ctx.transfer_amount
    fee = ctx.gas.fee(C.TxKind.FUND_TRANSFER)

    if resource == C.Resource.GAS:
        targets = {proposer: capacity * fee, source: 2 * amount}
    else:
        targets = {proposer: 2 * fee, source: capacity * amount}

    def build(nonce: int) -> FundTransfer:
        return FundTransfer(sender=proposer, nonce=nonce, transfer_from=source, transfer_to=destination, amount=amount)

    return ScenarioPlan(
        kind=C.TxKind.FUND_TRANSFER,
        resource=resource,
        capacity=capacity,
        sender=proposer,
        precondition=ScenarioPrecondition(capacity=capacity, balances=targets),
        build=build,
    )


async def _plan_candidacy_update(ctx: ScenarioContext, capacity: int, resource: C.Resource, account: str | None) -> ScenarioPlan:
    candidate = account or ctx.accounts["proposer"]
    fee = ctx.gas.fee(C.TxKind.CANDIDACY_UPDATE)

    def build(nonce: int) -> CandidacyUpdate:
        return CandidacyUpdate(sender=candidate, nonce=nonce)

    return ScenarioPlan(
        kind=C.TxKind.CANDIDACY_UPDATE,
        resource=resource,
        capacity=capacity,
        sender=candidate,
        precondition=ScenarioPrecondition(capacity=capacity, balances={candidate: capacity * fee}),
        build=build,
    )


async def provision_validator(client: NodeClient, passphrase: str) -> str:
    """Create a fresh node-managed account and unlock it for signing."""
    address = await client.new_account(passphrase)
    if not await client.unlock_account(address, passphrase):
        raise HarnessError(f"node refused to unlock new account {address}")
    log.info("Provisioned validator account %s", address)
    return address


async def _plan_candidacy_declaration(
    ctx: ScenarioContext, capacity: int, resource: C.Resource, account: str | None
) -> ScenarioPlan:
    """A fresh account declares candidacy twice, with a distinct key per nonce."""
    validator = account or await provision_validator(ctx.client, ctx.accounts["passphrase"])
    fee = ctx.gas.fee(C.TxKind.CANDIDACY_DECLARATION)
    target = capacity * fee + (ctx.declare_margin if capacity else 0)

    def build(nonce: int) -> CandidacyDeclaration:
        return CandidacyDeclaration(sender=validator, nonce=nonce, pub_key=f"{C.PUB_KEY_PREFIX}{nonce}=")

    async def teardown(results: tuple[SubmissionResult, SubmissionResult]) -> None:
        if not any(r.succeeded for r in results):
            return
        try:
            r = await ctx.client.withdraw_candidacy(validator)
        except HarnessError as e:
            log.warning("Could not withdraw candidacy of %s: %s", validator, e)
            return
        log.debug(r)
        log.info("validator %s removed", validator)

    return ScenarioPlan(
        kind=C.TxKind.CANDIDACY_DECLARATION,
        resource=resource,
        capacity=capacity,
        sender=validator,
        precondition=ScenarioPrecondition(capacity=capacity, balances={validator: target}),
        build=build,
        teardown=teardown,
    )


Planner = Callable[[ScenarioContext, int, C.Resource, str | None], Awaitable[ScenarioPlan]]

# Scenario kinds and the resources each can race for
_PLANNERS: dict[C.TxKind, tuple[Planner, frozenset[C.Resource]]] = {
    C.TxKind.FUND_TRANSFER: (_plan_fund_transfer, frozenset({C.Resource.GAS, C.Resource.AMOUNT})),
    C.TxKind.CANDIDACY_UPDATE: (_plan_candidacy_update, frozenset({C.Resource.GAS})),
    C.TxKind.CANDIDACY_DECLARATION: (_plan_candidacy_declaration, frozenset({C.Resource.GAS})),
}


def resources_for(kind: C.TxKind | str) -> frozenset[C.Resource]:
    return _PLANNERS[C.TxKind(kind)][1]


# (kind, capacity, resource), in the order the suite runs
STANDARD_SUITE: list[tuple[C.TxKind, int, C.Resource]] = [
    (C.TxKind.FUND_TRANSFER, 0, C.Resource.GAS),
    (C.TxKind.FUND_TRANSFER, 1, C.Resource.GAS),
    (C.TxKind.FUND_TRANSFER, 1, C.Resource.AMOUNT),
    (C.TxKind.CANDIDACY_UPDATE, 0, C.Resource.GAS),
    (C.TxKind.CANDIDACY_UPDATE, 1, C.Resource.GAS),
    (C.TxKind.CANDIDACY_DECLARATION, 0, C.Resource.GAS),
    (C.TxKind.CANDIDACY_DECLARATION, 1, C.Resource.GAS),
]


async def build_plan(
    ctx: ScenarioContext,
    kind: C.TxKind | str,
    capacity: int,
    resource: C.Resource | str = C.Resource.GAS,
    account: str | None = None,
) -> ScenarioPlan:
    kind = C.TxKind(kind)
    resource = C.Resource(resource)
    expected_verdict(capacity)  # rejects anything but k in {0, 1}
    planner, resources = _PLANNERS[kind]
    if resource not in resources:
        raise ValueError(f"{kind} cannot race for {resource}; supported: {sorted(resources)}")
    plan = await planner(ctx, capacity, resource, account)
    log.debug("Planned %s: sender=%s targets=%s", plan.label, plan.sender, plan.precondition.balances)
    return plan
