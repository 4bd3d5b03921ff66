import asyncio
import logging
from collections.abc import Awaitable, Callable

import tradeload.constants as C
from tradeload.errors import ConfirmationTimeout, LedgerError, ReceiptNotFound, TransactionDropped
from tradeload.ledger import LedgerClient
from tradeload.models import Receipt

log = logging.getLogger("tradeload.receipts")


class ReceiptWaiter:
    """Confirms inclusion of a submitted transaction.

    The node's wait channel is not trusted on its own: when a wait times out
    the status is re-derived from a transaction + receipt lookup, and after
    the last attempt one more direct receipt lookup is made.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        attempts: int = C.RECEIPT_ATTEMPTS,
        wait_timeout: float = C.RECEIPT_WAIT_TIMEOUT,
        confirmations: int = C.CONFIRMATIONS,
        backoff_max: float = C.RECEIPT_BACKOFF_MAX,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log: logging.Logger | logging.LoggerAdapter = log,
    ):
        self.ledger = ledger
        self.attempts = attempts
        self.wait_timeout = wait_timeout
        self.confirmations = confirmations
        self.backoff_max = backoff_max
        self.sleep = sleep
        self.log = log

    async def wait(self, tx_hash: str) -> Receipt:
        for attempt in range(self.attempts):
            try:
                return await self.ledger.wait_for_inclusion(tx_hash, self.confirmations, self.wait_timeout)

            except TransactionDropped as e:
                self.log.warning("[attempt %s] %s not found, possibly dropped from the pending pool: %s", attempt + 1, tx_hash, e)
                continue

            except ConfirmationTimeout as e:
                self.log.warning("[attempt %s] waiting for %s timed out: %s", attempt + 1, tx_hash, e)
                receipt = await self.probe(tx_hash)
                if receipt is not None:
                    self.log.info("receipt for %s found by status lookup", tx_hash)
                    return receipt

            except LedgerError as e:
                self.log.warning("[attempt %s] waiting for %s failed: %s", attempt + 1, tx_hash, e)

            await self.sleep(min(2**attempt, self.backoff_max))

        try:
            receipt = await self.ledger.get_transaction_receipt(tx_hash)
        except LedgerError as e:
            self.log.warning("final receipt lookup for %s failed: %s", tx_hash, e)
            raise ReceiptNotFound(tx_hash, self.attempts) from e
        if receipt is not None:
            return receipt
        raise ReceiptNotFound(tx_hash, self.attempts)

    async def probe(self, tx_hash: str) -> Receipt | None:
        """Transaction lookup then receipt lookup. None while still pending or unknown."""
        try:
            tx = await self.ledger.get_transaction(tx_hash)
            if tx is None:
                self.log.warning("transaction %s unknown to the node", tx_hash)
                return None
            receipt = await self.ledger.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            head = await self.ledger.get_block_number()
            self.log.info("block %s, %s still pending", head, tx_hash)
        except LedgerError as e:
            self.log.warning("status lookup for %s failed: %s", tx_hash, e)
        return None
