"""Exception taxonomy for the submission engine.

Recoverable classes are handled by the layer that detects them (submitter,
receipt waiter, nonce tracker). Only ExhaustionError and FatalAccountError
travel up to the account task, which turns them into a FAILED outcome.
"""


class TradeloadError(Exception):
    """Base for everything raised on purpose by tradeload."""


class LedgerError(TradeloadError):
    """An RPC call to the ledger node failed."""


class TransientRPCError(LedgerError):
    """Throttling, connection resets, timeouts. Retry with backoff."""


class StaleSequenceError(LedgerError):
    """The node already has a transaction at this nonce."""


class UnderpricedError(LedgerError):
    """A replacement at this nonce was rejected for offering too little."""


class ReplaySubmissionError(LedgerError):
    """The node refused a resubmission it considers a replay."""


class ConfirmationTimeout(LedgerError):
    """The primary inclusion wait ran out of time."""


class TransactionDropped(LedgerError):
    """The node no longer knows the transaction."""


class ExecutionReverted(LedgerError):
    """Gas estimation reverted, including custom-error reverts."""


class ProofError(TradeloadError):
    pass


class ProofFetchError(ProofError):
    """The proof service was unreachable or returned no proof."""


class ProofStaleError(ProofError):
    """The ledger rejected the trade during estimation, presumably for its proof."""


class ExhaustionError(TradeloadError):
    """An attempt budget was spent."""


class SubmissionExhausted(ExhaustionError):
    def __init__(self, attempts: int, last_error: Exception | None = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"transaction not accepted after {attempts} attempts: {last_error}")


class ReceiptNotFound(ExhaustionError):
    def __init__(self, tx_hash: str, attempts: int):
        self.tx_hash = tx_hash
        self.attempts = attempts
        super().__init__(f"no receipt for {tx_hash} after {attempts} attempts")


class FatalAccountError(TradeloadError):
    """This account cannot make progress in this round."""
