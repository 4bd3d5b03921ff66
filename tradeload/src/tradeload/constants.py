from typing import Final
from enum import StrEnum


class TaskState(StrEnum):
    CHECK_BALANCE = "CHECK_BALANCE"
    CLAIM = "CLAIM"
    APPROVE = "APPROVE"
    TRADE = "TRADE"
    DONE = "DONE"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


TERMINAL_STATE = {TaskState.DONE, TaskState.SKIPPED, TaskState.FAILED, TaskState.TIMED_OUT}

GWEI: Final = 10**9
MAX_UINT256: Final = 2**256 - 1
APPROVED_THRESHOLD: Final = MAX_UINT256 // 2

# Submitter
SUBMIT_ATTEMPTS = 5
REPLAY_COOLDOWN = 30.0
FEE_BUMP_NUM = 12
FEE_BUMP_DEN = 10
MAX_FEE_BUMPS = 3

# Receipt waiter
RECEIPT_ATTEMPTS = 10
RECEIPT_WAIT_TIMEOUT = 300.0
RECEIPT_BACKOFF_MAX = 10.0
CONFIRMATIONS = 1

# Account task
APPROVE_ATTEMPTS = 5
APPROVE_RETRY_DELAY = 3.0
TRADE_ATTEMPTS = 100
PROOF_STALE_COOLDOWN = 5.0
PROOF_FETCH_RETRY_DELAY = 3.0
TRADE_DECIMALS = 6
LEVERAGE = 1

GAS_MULTIPLIER_CLAIM = 1.2
GAS_MULTIPLIER_APPROVE = 1.5
GAS_MULTIPLIER_TRADE = 1.3

# Pool
TASK_TIMEOUT = 20 * 60
ROUND_COOLDOWN = 3.0

RPC_TIMEOUT = 30.0

__all__ = [
    "APPROVED_THRESHOLD",
    "APPROVE_ATTEMPTS",
    "APPROVE_RETRY_DELAY",
    "CONFIRMATIONS",
    "FEE_BUMP_DEN",
    "FEE_BUMP_NUM",
    "GAS_MULTIPLIER_APPROVE",
    "GAS_MULTIPLIER_CLAIM",
    "GAS_MULTIPLIER_TRADE",
    "GWEI",
    "LEVERAGE",
    "MAX_FEE_BUMPS",
    "MAX_UINT256",
    "PROOF_FETCH_RETRY_DELAY",
    "PROOF_STALE_COOLDOWN",
    "RECEIPT_ATTEMPTS",
    "RECEIPT_BACKOFF_MAX",
    "RECEIPT_WAIT_TIMEOUT",
    "REPLAY_COOLDOWN",
    "ROUND_COOLDOWN",
    "RPC_TIMEOUT",
    "SUBMIT_ATTEMPTS",
    "TASK_TIMEOUT",
    "TERMINAL_STATE",
    "TRADE_ATTEMPTS",
    "TRADE_DECIMALS",

    ######
    "TaskState",
]
