import logging
from dataclasses import dataclass, field

from race_oracle.errors import SetupError
from race_oracle.finality import FinalityWaiter
from race_oracle.gas import GasSchedule
from race_oracle.rpc import NodeClient

log = logging.getLogger("race_oracle.precondition")


@dataclass
class FixturePool:
    """Shared accounts every scenario borrows, owned by the driver.

    funding tops accounts up, sink receives drained balances (they may be the
    same account). baselines holds the balance each touched account had the
    first time a precondition moved it, so restore() can put it back.
    """

    funding: str
    sink: str
    baselines: dict[str, int] = field(default_factory=dict)

    def remember(self, address: str, balance: int) -> None:
        if address in (self.funding, self.sink):
            return
        self.baselines.setdefault(address, balance)


class PreconditionSetter:
    def __init__(
        self,
        client: NodeClient,
        finality: FinalityWaiter,
        pool: FixturePool,
        gas: GasSchedule,
        *,
        funding_gas_price: int = 0,
    ) -> None:
        self.client = client
        self.finality = finality
        self.pool = pool
        self.gas = gas
        self.funding_gas_price = funding_gas_price

    async def apply(self, targets: dict[str, int]) -> list[str]:
        """Drive every address in targets to its exact balance.

        Issues at most one corrective transfer per address, waits for finality
        once, then re-reads and verifies every balance. An address already at
        its target costs no transfer, so reapplying a reached precondition is
        a no-op.

        Returns:
            Hashes of the transfers issued (empty when nothing had to move)

        Raises:
            ValueError: a target is not a non-negative integer
            SetupError: the funding account cannot cover the top-ups, or a
                balance did not land on its target
        """
        for address, target in targets.items():
            if not isinstance(target, int) or isinstance(target, bool) or target < 0:
                raise ValueError(f"target balance for {address} must be a non-negative int, got {target!r}")

        fee = self.gas.transfer_fee(self.funding_gas_price)
        funding_balance = await self.client.get_balance(self.pool.funding)
        committed = 0
        issued: list[str] = []

        for address, target in targets.items():
            current = await self.client.get_balance(address)
            self.pool.remember(address, current)
            delta = target - current
            if delta == 0:
                log.debug("%s already at %s", address, target)
                continue

            if delta > 0:
                if committed + delta + fee > funding_balance:
                    raise SetupError(
                        f"funding account {self.pool.funding} has {funding_balance}, "
                        f"cannot top up {address} by {delta} (+{fee} fee, {committed} already committed)"
                    )
                committed += delta + fee
                log.info(f"Top up {address}: {current} -> {target}")
                issued.append(await self.client.transfer(self.pool.funding, address, delta, self.funding_gas_price))
            else:
                amount = -delta - fee
                if amount < 0:
                    raise SetupError(f"cannot drain {address} from {current} to {target}: transfer fee is {fee}")
                log.info(f"Drain {address}: {current} -> {target}")
                issued.append(await self.client.transfer(address, self.pool.sink, amount, self.funding_gas_price))

        if not issued:
            return issued

        await self.finality.wait()
        for address, target in targets.items():
            observed = await self.client.get_balance(address)
            if observed != target:
                raise SetupError(f"{address} settled at {observed}, expected {target}")
        return issued

    async def restore(self) -> list[str]:
        """Return every account a precondition touched to its baseline balance."""
        if not self.pool.baselines:
            return []
        log.info("Restoring %s accounts to their baseline", len(self.pool.baselines))
        issued = await self.apply(dict(self.pool.baselines))
        self.pool.baselines.clear()
        return issued
