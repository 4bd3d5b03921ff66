import logging

from tradeload.ledger import LedgerClient

log = logging.getLogger("tradeload.nonce")


class NonceTracker:
    """Next-nonce counter for one account, owned by the task driving that account.

    Seeded lazily from the node's pending transaction count, then advanced
    locally. The value never goes down: a resync only moves it forward.
    """

    def __init__(self, ledger: LedgerClient, address: str, *, log: logging.Logger | logging.LoggerAdapter = log):
        self.ledger = ledger
        self.address = address
        self.log = log
        self._next: int | None = None

    @property
    def seeded(self) -> bool:
        return self._next is not None

    async def current(self) -> int:
        if self._next is None:
            self._next = await self.ledger.get_nonce(self.address, "pending")
            self.log.debug("nonce seeded at %s", self._next)
        return self._next

    async def resync(self) -> int:
        # Errors from the node propagate to the caller.
        fetched = await self.ledger.get_nonce(self.address, "pending")
        old = self._next
        self._next = fetched if old is None else max(old, fetched)
        self.log.debug("nonce resync %s -> %s (node says %s)", old, self._next, fetched)
        return self._next

    def advance_past(self, nonce: int) -> int:
        """Mark `nonce` as spent. Advancing past an already-spent nonce is a no-op."""
        if self._next is None or nonce + 1 > self._next:
            self._next = nonce + 1
        return self._next
