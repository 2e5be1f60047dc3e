"""Gas fee data structures.

A scenario's capacity k is measured in "operations' worth" of gas, so every
precondition balance is derived from this schedule.
"""

from dataclasses import dataclass

import race_oracle.constants as C
from race_oracle.models import as_int

# Keys the node reports in cmt_getParams, mapped to our operation kinds.
PARAM_KEYS = {
    C.TxKind.FUND_TRANSFER: "transfer_fund_proposal_gas",
    C.TxKind.CANDIDACY_UPDATE: "update_candidacy_gas",
    C.TxKind.CANDIDACY_DECLARATION: "declare_candidacy_gas",
}


@dataclass
class GasSchedule:
    """Gas price and per-operation gas limits.

    All fee values are in the chain's minor unit. The node's own params win
    over the configured defaults so the oracle follows governance changes.
    """

    gas_price: int
    transfer_gas: int
    limits: dict[C.TxKind, int]

    def fee(self, kind: C.TxKind) -> int:
        return self.limits[kind] * self.gas_price

    def transfer_fee(self, gas_price: int | None) -> int:
        return self.transfer_gas * (gas_price or 0)

    @classmethod
    def from_config(cls, gas_cfg: dict) -> "GasSchedule":
        return cls(
            gas_price=int(gas_cfg["price"]),
            transfer_gas=int(gas_cfg.get("transfer", 21000)),
            limits={
                C.TxKind.FUND_TRANSFER: int(gas_cfg["transfer_fund_proposal"]),
                C.TxKind.CANDIDACY_UPDATE: int(gas_cfg["update_candidacy"]),
                C.TxKind.CANDIDACY_DECLARATION: int(gas_cfg["declare_candidacy"]),
            },
        )

    @classmethod
    def from_params_result(cls, result: dict, gas_cfg: dict) -> "GasSchedule":
        """Parse cmt_getParams into a GasSchedule, using gas_cfg for missing keys.

        Args:
            result: The 'result' field of the cmt_getParams response
            gas_cfg: The [gas] section of the config

        Returns:
            GasSchedule with the node's values where it reports them
        """
        schedule = cls.from_config(gas_cfg)
        if "gas_price" in result:
            schedule.gas_price = as_int(result["gas_price"])
        for kind, key in PARAM_KEYS.items():
            if key in result:
                schedule.limits[kind] = as_int(result[key])
        return schedule

    def to_dict(self) -> dict:
        return {
            "gas_price": self.gas_price,
            "transfer_gas": self.transfer_gas,
            "fees": {str(kind): self.fee(kind) for kind in self.limits},
        }
