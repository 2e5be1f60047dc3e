import asyncio
import logging
import time
from typing import Any

import race_oracle.constants as C
from race_oracle.classifier import evaluate
from race_oracle.errors import HarnessError, NodeError
from race_oracle.finality import FinalityWaiter
from race_oracle.gas import GasSchedule
from race_oracle.models import Account, ScenarioReport
from race_oracle.precondition import FixturePool, PreconditionSetter
from race_oracle.rpc import NodeClient
from race_oracle.scenarios import STANDARD_SUITE, ScenarioContext, build_plan
from race_oracle.store import InMemoryStore, Store
from race_oracle.submitter import DualSubmitter

log = logging.getLogger("race_oracle.oracle")


class Oracle:
    """Runs race scenarios against one node.

    Scenarios share the funding and sink accounts, so they run one at a time
    under self._lock.
    """

    def __init__(self, config: dict, client: NodeClient, *, store: Store | None = None):
        self.config = config
        self.client = client

        accounts = config["accounts"]
        self.pool = FixturePool(funding=accounts["funding"], sink=accounts.get("sink") or accounts["funding"])
        self.gas = GasSchedule.from_config(config["gas"])
        self.finality = FinalityWaiter.from_config(client, config)
        self.setter = PreconditionSetter(
            client,
            self.finality,
            self.pool,
            self.gas,
            funding_gas_price=int(config["gas"].get("funding_price", 0)),
        )
        self.submitter = DualSubmitter(client)
        self.store: Store = store or InMemoryStore()
        self._lock = asyncio.Lock()

    def context(self) -> ScenarioContext:
        return ScenarioContext(
            client=self.client,
            gas=self.gas,
            accounts=self.config["accounts"],
            settings=self.config.get("scenarios", {}),
        )

    async def refresh_gas(self) -> GasSchedule:
        """Pull gas price and limits from the node, keeping configured values it doesn't report."""
        try:
            params = await self.client.get_params()
        except NodeError as e:
            log.warning(f"Node has no params endpoint ({e}); using configured gas schedule")
            return self.gas
        self.gas = GasSchedule.from_params_result(params, self.config["gas"])
        self.setter.gas = self.gas
        log.info(f"Gas schedule: {self.gas.to_dict()}")
        return self.gas

    async def account(self, address: str) -> Account:
        balance, nonce = await asyncio.gather(self.client.get_balance(address), self.client.get_nonce(address))
        return Account(address=address, balance=balance, nonce=nonce)

    async def run_scenario(
        self,
        kind: C.TxKind | str,
        capacity: int,
        *,
        resource: C.Resource | str = C.Resource.GAS,
        account: str | None = None,
    ) -> ScenarioReport:
        """Fund, race, wait, classify.

        Returns the report whatever the verdict; call report.raise_for_verdict()
        to turn a mismatch into an InvariantViolation. Setup and finality
        problems raise HarnessError subclasses instead, with a note naming the
        state the scenario had reached. The plan's teardown runs once the pair
        was submitted, even when finality then fails.
        """
        async with self._lock:
            plan = await build_plan(self.context(), kind, capacity, resource, account)
            started = time.time()
            state = C.ScenarioState.UNFUNDED
            results = None
            try:
                log.debug("%s: %s", plan.label, state)
                await self.setter.apply(plan.precondition.balances)
                state = C.ScenarioState.PARTIALLY_FUNDED
                log.debug("%s: %s(%s)", plan.label, state, capacity)

                results = await self.submitter.submit(plan.sender, plan.build)
                state = C.ScenarioState.SUBMITTED
                log.debug("%s: %s nonces=%s,%s", plan.label, state, results[0].nonce, results[1].nonce)

                height = await self.finality.wait()
                state = C.ScenarioState.FINALIZED
                log.debug("%s: %s at height %s", plan.label, state, height)
            except HarnessError as e:
                log.error("%s aborted in state %s: %s", plan.label, state, e)
                e.add_note(f"{plan.label} aborted in state {state}")
                raise
            finally:
                if plan.teardown is not None and results is not None:
                    await plan.teardown(results)

            verdict = evaluate(results, plan.expected, label=plan.label)
            log.debug("%s: %s %s", plan.label, C.ScenarioState.CLASSIFIED, verdict)
            report = ScenarioReport(
                kind=plan.kind,
                resource=plan.resource,
                capacity=plan.capacity,
                sender=plan.sender,
                expected=plan.expected,
                verdict=verdict,
                results=results,
                started_at=started,
                finished_at=time.time(),
            )
            await self.store.record(report)
            return report

    async def run_suite(self, suite: list[tuple[C.TxKind, int, C.Resource]] | None = None) -> list[ScenarioReport]:
        """Run every scenario in order, then put the borrowed accounts back.

        When a scenario aborts, the accounts are still restored; a failing
        restore is logged and the scenario's error is the one raised.
        """
        reports = []
        try:
            for kind, capacity, resource in suite or STANDARD_SUITE:
                reports.append(await self.run_scenario(kind, capacity, resource=resource))
        except Exception as e:
            e.add_note(f"{len(reports)} scenarios completed before the abort")
            await self.restore_after_abort()
            raise
        await self.restore()
        return reports

    async def restore(self) -> list[str]:
        async with self._lock:
            return await self.setter.restore()

    async def restore_after_abort(self) -> None:
        """Restore while another error is in flight; a failing restore is logged, not raised."""
        try:
            await self.restore()
        except HarnessError as e:
            log.error("Restore after aborted scenario failed: %s", e)

    def snapshot_stats(self) -> dict[str, Any]:
        return {
            **self.store.snapshot_stats(),
            "funding": self.pool.funding,
            "sink": self.pool.sink,
            "tracked_baselines": len(self.pool.baselines),
        }
