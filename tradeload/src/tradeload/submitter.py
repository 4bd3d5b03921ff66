import asyncio
import logging
from collections.abc import Awaitable, Callable

import tradeload.constants as C
from tradeload.errors import (
    LedgerError,
    ReplaySubmissionError,
    StaleSequenceError,
    SubmissionExhausted,
    UnderpricedError,
)
from tradeload.fees import FeeEscalator
from tradeload.ledger import LedgerClient
from tradeload.models import Account, PendingCall
from tradeload.nonce import NonceTracker

log = logging.getLogger("tradeload.submitter")

Sleep = Callable[[float], Awaitable[None]]


class Submitter:
    """Gets one signed call accepted by the node.

    Per attempt:
      - replay rejection: wait REPLAY_COOLDOWN, resend unchanged
      - stale sequence / underpriced replacement: resync nonce, resend, no fee bump
      - anything else: bump fees (while budget remains), back off 2**attempt seconds

    The nonce tracker is only read and resynced here. Advancing it is the
    caller's job once the call is confirmed.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        account: Account,
        nonces: NonceTracker,
        *,
        attempts: int = C.SUBMIT_ATTEMPTS,
        replay_cooldown: float = C.REPLAY_COOLDOWN,
        sleep: Sleep = asyncio.sleep,
        log: logging.Logger | logging.LoggerAdapter = log,
    ):
        self.ledger = ledger
        self.account = account
        self.nonces = nonces
        self.attempts = attempts
        self.replay_cooldown = replay_cooldown
        self.sleep = sleep
        self.log = log

    async def submit(self, call: PendingCall, fees: FeeEscalator) -> tuple[str, PendingCall]:
        """Send `call` until accepted. Returns the tx hash and the call as finally sent."""
        last_error: LedgerError | None = None
        call = call.with_fees(fees.current)

        for attempt in range(self.attempts):
            try:
                tx_hash = await self.ledger.send_signed_transaction(call, self.account)
                self.log.debug("sent nonce=%s hash=%s (attempt %s)", call.nonce, tx_hash, attempt + 1)
                return tx_hash, call

            except ReplaySubmissionError as e:
                last_error = e
                self.log.warning(
                    "[attempt %s] replay rejection, cooling down %.0fs: %s", attempt + 1, self.replay_cooldown, e
                )
                if attempt + 1 < self.attempts:
                    await self.sleep(self.replay_cooldown)

            except (StaleSequenceError, UnderpricedError) as e:
                last_error = e
                nonce = await self.nonces.resync()
                self.log.warning("[attempt %s] %s, nonce %s -> %s", attempt + 1, e.__class__.__name__, call.nonce, nonce)
                call = call.with_nonce(nonce)

            except LedgerError as e:
                last_error = e
                if fees.bump():
                    call = call.with_fees(fees.current)
                    self.log.warning(
                        "[attempt %s] fee bump %s/%s: maxFeePerGas=%s maxPriorityFeePerGas=%s",
                        attempt + 1,
                        fees.bumps,
                        fees.max_bumps,
                        call.fees.max_fee_per_gas,
                        call.fees.max_priority_fee_per_gas,
                    )
                self.log.warning("[attempt %s] send failed: %s", attempt + 1, e)
                if attempt + 1 < self.attempts:
                    await self.sleep(2**attempt)

        raise SubmissionExhausted(self.attempts, last_error)
