"""Domain data structures for the race oracle."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import race_oracle.constants as C
from race_oracle.errors import InvariantViolation


def to_hex(value: int) -> str:
    return hex(value)


def as_int(value: Any) -> int:
    """Parse an int the node may render as int, decimal string or 0x-prefixed hex."""
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.lower().startswith("0x") else int(value)
    raise TypeError(f"not an integer: {value!r}")


@dataclass(slots=True)
class Account:
    address: str
    balance: int
    nonce: int


# ============================================================================
# Transaction requests. Nonce is always caller-assigned.
# ============================================================================


@dataclass(slots=True, frozen=True)
class FundTransfer:
    sender: str
    nonce: int
    transfer_from: str
    transfer_to: str
    amount: int

    kind = C.TxKind.FUND_TRANSFER
    method = "cmt_proposeRecoverFund"

    def payload(self) -> dict:
        return {
            "from": self.sender,
            "nonce": to_hex(self.nonce),
            "transferFrom": self.transfer_from,
            "transferTo": self.transfer_to,
            "amount": to_hex(self.amount),
        }


@dataclass(slots=True, frozen=True)
class CandidacyUpdate:
    sender: str
    nonce: int

    kind = C.TxKind.CANDIDACY_UPDATE
    method = "cmt_updateCandidacy"

    def payload(self) -> dict:
        return {"from": self.sender, "nonce": to_hex(self.nonce)}


@dataclass(slots=True, frozen=True)
class CandidacyDeclaration:
    sender: str
    nonce: int
    pub_key: str

    kind = C.TxKind.CANDIDACY_DECLARATION
    method = "cmt_declareCandidacy"

    def payload(self) -> dict:
        return {"from": self.sender, "pubKey": self.pub_key, "nonce": to_hex(self.nonce)}


TransactionRequest = FundTransfer | CandidacyUpdate | CandidacyDeclaration


@dataclass(slots=True)
class SubmissionResult:
    """Outcome of one submitted transaction after the node answered.

    raw holds the node's response (or the transport error text) for diagnostics.
    """

    nonce: int
    status: C.SubmissionStatus
    height: int = 0
    code: int | None = None
    raw: Any = None

    @property
    def succeeded(self) -> bool:
        return self.status == C.SubmissionStatus.INCLUDED_SUCCESS

    @classmethod
    def from_response(cls, nonce: int, response: dict) -> "SubmissionResult":
        """Classify a broadcast_tx_commit style response.

        height == 0 means the node never included the transaction. Tendermint
        omits a zero deliver_tx code, so a present deliver_tx without a code is
        a success. An included transaction with no readable deliver_tx is
        INDETERMINATE.
        """
        if not isinstance(response, dict):
            return cls(nonce, C.SubmissionStatus.INDETERMINATE, raw=response)
        try:
            height = as_int(response.get("height", 0))
        except (TypeError, ValueError):
            return cls(nonce, C.SubmissionStatus.INDETERMINATE, raw=response)

        if height == 0:
            check = response.get("check_tx") or {}
            code = check.get("code") if isinstance(check, dict) else None
            return cls(nonce, C.SubmissionStatus.NOT_INCLUDED, height=0, code=code, raw=response)

        deliver = response.get("deliver_tx")
        if not isinstance(deliver, dict):
            return cls(nonce, C.SubmissionStatus.INDETERMINATE, height=height, raw=response)
        try:
            code = as_int(deliver.get("code", 0))
        except (TypeError, ValueError):
            return cls(nonce, C.SubmissionStatus.INDETERMINATE, height=height, raw=response)

        status = C.SubmissionStatus.INCLUDED_SUCCESS if code == 0 else C.SubmissionStatus.INCLUDED_FAILURE
        return cls(nonce, status, height=height, code=code, raw=response)

    @classmethod
    def rejected(cls, nonce: int, error: dict) -> "SubmissionResult":
        """The node refused the request outright with a JSON-RPC error."""
        return cls(nonce, C.SubmissionStatus.NOT_INCLUDED, raw={"error": error})

    @classmethod
    def transport_error(cls, nonce: int, exc: BaseException) -> "SubmissionResult":
        return cls(nonce, C.SubmissionStatus.TRANSPORT_ERROR, raw=f"{type(exc).__name__}: {exc}")

    def to_dict(self) -> dict:
        return {
            "nonce": self.nonce,
            "status": str(self.status),
            "height": self.height,
            "code": self.code,
            "raw": self.raw,
        }


@dataclass(slots=True, frozen=True)
class ScenarioPrecondition:
    """Target balances, in minor units, keyed by address."""

    capacity: int
    balances: dict[str, int]


@dataclass(slots=True)
class ScenarioReport:
    kind: C.TxKind
    resource: C.Resource
    capacity: int
    sender: str
    expected: C.Verdict
    verdict: C.Verdict
    results: tuple[SubmissionResult, SubmissionResult]
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    @property
    def passed(self) -> bool:
        return self.verdict == self.expected

    @property
    def nonces(self) -> tuple[int, int]:
        return self.results[0].nonce, self.results[1].nonce

    def raise_for_verdict(self) -> None:
        if not self.passed:
            raise InvariantViolation(self)

    def to_dict(self) -> dict:
        return {
            "kind": str(self.kind),
            "resource": str(self.resource),
            "capacity": self.capacity,
            "sender": self.sender,
            "expected": str(self.expected),
            "verdict": str(self.verdict),
            "passed": self.passed,
            "nonces": list(self.nonces),
            "results": [r.to_dict() for r in self.results],
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }
