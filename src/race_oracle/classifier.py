"""Outcome classifier for a pair of concurrent submissions.

The node may serialize either request first, so only the number of
successes matters: when the sender can afford k operations, k=0 means
neither request may succeed and k=1 means exactly one must.
"""

import logging
from collections.abc import Sequence

from antithesis.assertions import always, sometimes

import race_oracle.constants as C
from race_oracle.models import SubmissionResult

log = logging.getLogger("race_oracle.classifier")

_BY_SUCCESSES = {
    0: C.Verdict.ALL_FAIL,
    1: C.Verdict.EXACTLY_ONE_SUCCEEDS,
    2: C.Verdict.BOTH_SUCCEED,
}


def expected_verdict(capacity: int) -> C.Verdict:
    if capacity == 0:
        return C.Verdict.ALL_FAIL
    if capacity == 1:
        return C.Verdict.EXACTLY_ONE_SUCCEEDS
    # k >= 2 lets both succeed and exercises no conflict at all
    raise ValueError(f"capacity must be 0 or 1, got {capacity}")


def classify(results: Sequence[SubmissionResult]) -> C.Verdict:
    if len(results) != 2:
        raise ValueError(f"expected a pair of results, got {len(results)}")
    if any(r.status == C.SubmissionStatus.INDETERMINATE for r in results):
        return C.Verdict.AMBIGUOUS
    return _BY_SUCCESSES[sum(r.succeeded for r in results)]


def evaluate(results: Sequence[SubmissionResult], expected: C.Verdict, *, label: str = "") -> C.Verdict:
    """Classify the pair, log the outcome and report it to the antithesis SDK."""
    verdict = classify(results)
    details = {
        "scenario": label,
        "expected": str(expected),
        "verdict": str(verdict),
        "results": [r.to_dict() for r in results],
    }

    always(verdict not in C.INVALID_VERDICTS, "Concurrent same-account transactions never both succeed", details)
    always(verdict == expected, "Race verdict matches the funded capacity", details)
    if verdict == C.Verdict.EXACTLY_ONE_SUCCEEDS:
        sometimes(results[0].succeeded, "Lower nonce wins the race", details)
        sometimes(results[1].succeeded, "Higher nonce wins the race", details)

    first, second = results
    if verdict == expected:
        log.info("%s: %s (nonce %s=%s, nonce %s=%s)", label, verdict, first.nonce, first.status, second.nonce, second.status)
    else:
        log.error(
            "%s: expected %s, observed %s\n  nonce %s: %s %r\n  nonce %s: %s %r",
            label, expected, verdict,
            first.nonce, first.status, first.raw,
            second.nonce, second.status, second.raw,
        )
    return verdict
