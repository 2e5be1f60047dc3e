"""Harness error taxonomy.

HarnessError and its subclasses abort the current scenario: they mean the
oracle itself could not do its job. InvariantViolation is the signal the
oracle exists to produce and is an AssertionError so test runners report it
as a plain test failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from race_oracle.models import ScenarioReport


class HarnessError(Exception):
    pass


class SetupError(HarnessError):
    """The funding account cannot bring an account to its precondition balance."""


class FinalityTimeout(HarnessError):
    """Polling budget exhausted before the expected number of blocks was produced."""


class TransportError(HarnessError):
    """Connection failure or RPC timeout outside of a dual submission."""


class NodeError(HarnessError):
    """The node answered a query with a JSON-RPC error object."""

    def __init__(self, method: str, error: dict) -> None:
        self.method = method
        self.error = error
        super().__init__(f"{method} failed: {error.get('message', error)}")


class InvariantViolation(AssertionError):
    def __init__(self, report: ScenarioReport) -> None:
        self.report = report
        first, second = report.results
        super().__init__(
            f"{report.kind} k={report.capacity}: expected {report.expected}, observed {report.verdict}\n"
            f"  nonce {first.nonce}: {first.status} {first.raw!r}\n"
            f"  nonce {second.nonce}: {second.status} {second.raw!r}"
        )
