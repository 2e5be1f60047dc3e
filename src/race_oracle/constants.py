from typing import Final
from enum import StrEnum

# 1 CMT in its minor unit
CMT: Final = 10**18

DEFAULT_TRANSFER_AMOUNT = 1000 * CMT
DECLARE_MARGIN = 10
# Declared validator keys are this prefix + the nonce + "="
PUB_KEY_PREFIX: Final = "r7fTVtIlliUUCfGEHuj4qnHcxB7dfRC1fFUDkSHYIA"

RPC_TIMEOUT = 5.0
SUBMIT_TIMEOUT = 30.0
FINALITY_BLOCKS = 1
POLL_INTERVAL = 0.5
MAX_POLLS = 120


class TxKind(StrEnum):
    FUND_TRANSFER         = "FundTransfer"
    CANDIDACY_UPDATE      = "CandidacyUpdate"
    CANDIDACY_DECLARATION = "CandidacyDeclaration"


class Resource(StrEnum):
    GAS    = "gas"
    AMOUNT = "amount"


class SubmissionStatus(StrEnum):
    NOT_INCLUDED     = "NOT_INCLUDED"
    INCLUDED_SUCCESS = "INCLUDED_SUCCESS"
    INCLUDED_FAILURE = "INCLUDED_FAILURE"
    TRANSPORT_ERROR  = "TRANSPORT_ERROR"
    INDETERMINATE    = "INDETERMINATE"


class Verdict(StrEnum):
    ALL_FAIL             = "ALL_FAIL"
    EXACTLY_ONE_SUCCEEDS = "EXACTLY_ONE_SUCCEEDS"
    BOTH_SUCCEED         = "BOTH_SUCCEED"
    AMBIGUOUS            = "AMBIGUOUS"


class ScenarioState(StrEnum):
    UNFUNDED         = "UNFUNDED"
    PARTIALLY_FUNDED = "PARTIALLY_FUNDED"
    SUBMITTED        = "SUBMITTED"
    FINALIZED        = "FINALIZED"
    CLASSIFIED       = "CLASSIFIED"


NON_SUCCESS = {
    SubmissionStatus.NOT_INCLUDED,
    SubmissionStatus.INCLUDED_FAILURE,
    SubmissionStatus.TRANSPORT_ERROR,
}
INVALID_VERDICTS = {Verdict.BOTH_SUCCEED, Verdict.AMBIGUOUS}

__all__ = [
    "CMT",
    "DECLARE_MARGIN",
    "DEFAULT_TRANSFER_AMOUNT",
    "FINALITY_BLOCKS",
    "INVALID_VERDICTS",
    "MAX_POLLS",
    "NON_SUCCESS",
    "POLL_INTERVAL",
    "PUB_KEY_PREFIX",
    "RPC_TIMEOUT",
    "SUBMIT_TIMEOUT",

    ######
    "Resource",
    "ScenarioState",
    "SubmissionStatus",
    "TxKind",
    "Verdict",
]
