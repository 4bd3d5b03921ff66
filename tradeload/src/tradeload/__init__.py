from tradeload.account_task import AccountTask, trade_size
from tradeload.fees import FeeEscalator
from tradeload.nonce import NonceTracker
from tradeload.pool import WorkerPool
from tradeload.receipts import ReceiptWaiter
from tradeload.submitter import Submitter

__all__ = [
    "AccountTask",
    "FeeEscalator",
    "NonceTracker",
    "ReceiptWaiter",
    "Submitter",
    "WorkerPool",
    "trade_size",
]
