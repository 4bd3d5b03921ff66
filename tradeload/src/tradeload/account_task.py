"""Per-account state machine: check balance, claim if empty, approve, trade.

    CHECK_BALANCE -> (CLAIM -> CHECK_BALANCE) -> APPROVE -> TRADE -> DONE | SKIPPED
    FAILED is reachable from every state.

A task owns its Account, NonceTracker, Submitter and ReceiptWaiter outright.
Nothing here is shared with another task.
"""
import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from decimal import ROUND_DOWN, Decimal

import tradeload.constants as C
from tradeload.config import Pair, Settings
from tradeload.constants import TaskState
from tradeload.contracts import encode_approve, encode_claim, encode_open_position
from tradeload.errors import (
    ExecutionReverted,
    ExhaustionError,
    FatalAccountError,
    LedgerError,
    ProofFetchError,
    ProofStaleError,
    ReceiptNotFound,
    SubmissionExhausted,
    TradeloadError,
)
from tradeload.fees import FeeEscalator
from tradeload.ledger import LedgerClient
from tradeload.logging_config import AccountLog
from tradeload.models import Account, PendingCall, Receipt, TaskOutcome
from tradeload.nonce import NonceTracker
from tradeload.proof import ProofSource
from tradeload.receipts import ReceiptWaiter
from tradeload.submitter import Submitter

log = logging.getLogger("tradeload.task")

SIZE_QUANTUM = Decimal(1).scaleb(-C.TRADE_DECIMALS)


def trade_size(balance: Decimal, rng: random.Random) -> Decimal | None:
    """Size of the next trade for `balance`, or None when the balance is too small.

    >= 15: random in [10, 15); >= 5: random in [1, balance); >= 1: the whole balance.
    """
    if balance >= 15:
        low, high = Decimal(10), Decimal(15)
    elif balance >= 5:
        low, high = Decimal(1), balance
    elif balance >= 1:
        return balance.quantize(SIZE_QUANTUM, rounding=ROUND_DOWN)
    else:
        return None
    value = low + (high - low) * Decimal(str(rng.random()))
    return min(value.quantize(SIZE_QUANTUM, rounding=ROUND_DOWN), high - SIZE_QUANTUM)


class AccountTask:
    def __init__(
        self,
        account: Account,
        ledger: LedgerClient,
        proofs: ProofSource,
        settings: Settings,
        *,
        resync_first: bool = False,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log: logging.Logger | logging.LoggerAdapter = log,
    ):
        self.account = account
        self.ledger = ledger
        self.proofs = proofs
        self.settings = settings
        self.resync_first = resync_first
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.log = AccountLog(log, account.index, account.address)

        self.nonces = NonceTracker(ledger, account.address, log=self.log)
        self.submitter = Submitter(ledger, account, self.nonces, sleep=sleep, log=self.log)
        self.receipts = ReceiptWaiter(ledger, sleep=sleep, log=self.log)

        self.state = TaskState.CHECK_BALANCE
        self.history: list[TaskState] = []
        self.balance: Decimal | None = None
        self.decimals: int | None = None
        self.claimed = False
        self.claims = 0
        self.trade_attempts = 0
        self.tx_hash: str | None = None
        self.block_number: int | None = None
        self.reason: str | None = None

        self._handlers = {
            TaskState.CHECK_BALANCE: self.check_balance,
            TaskState.CLAIM: self.claim,
            TaskState.APPROVE: self.approve,
            TaskState.TRADE: self.trade,
        }

    async def run(self) -> TaskOutcome:
        outcome = TaskOutcome(account_index=self.account.index, address=self.account.address, state=self.state)
        self.log.info("processing wallet %s", self.account.short_address)
        try:
            if self.resync_first:
                self.log.warning("previous task for this account timed out, resyncing nonce before acting")
                await self.nonces.resync()
            else:
                await self.nonces.current()
        except LedgerError as e:
            self._fail(f"could not read nonce: {e}")

        while self.state not in C.TERMINAL_STATE:
            self.history.append(self.state)
            try:
                self.state = await self._handlers[self.state]()
            except (ExhaustionError, FatalAccountError) as e:
                self._fail(str(e))
            except TradeloadError as e:
                self._fail(f"{e.__class__.__name__}: {e}")

        outcome.state = self.state
        outcome.tx_hash = self.tx_hash
        outcome.block_number = self.block_number
        outcome.reason = self.reason
        outcome.finished_at = time.time()
        return outcome

    def _fail(self, reason: str) -> None:
        self.log.error("failed in %s: %s", self.state, reason)
        self.reason = reason
        self.state = TaskState.FAILED

    # ------------------------------------------------------------------
    # states
    # ------------------------------------------------------------------

    async def check_balance(self) -> TaskState:
        try:
            self.balance = await self.read_balance()
        except LedgerError as e:
            raise FatalAccountError(f"token balance unreadable: {e}") from e
        self.log.info("token balance: %s", self.balance)
        if self.balance == 0 and not self.claimed:
            return TaskState.CLAIM
        return TaskState.APPROVE

    async def claim(self) -> TaskState:
        self.log.info("token balance is zero, claiming")
        self.claimed = True
        self.claims += 1
        try:
            call = await self._prepare(self.settings.claim_contract, encode_claim(), C.GAS_MULTIPLIER_CLAIM)
            tx_hash, receipt = await self._send_and_confirm(call)
        except (LedgerError, ExhaustionError) as e:
            raise FatalAccountError(f"claim failed: {e}") from e
        if not receipt.succeeded:
            raise FatalAccountError(f"claim {tx_hash} reverted")
        self.log.info("claim confirmed: %s (block %s)", tx_hash, receipt.block_number)
        return TaskState.CHECK_BALANCE

    async def approve(self) -> TaskState:
        for attempt in range(1, C.APPROVE_ATTEMPTS + 1):
            if await self.ensure_approved():
                return TaskState.TRADE
            self.log.warning("approve failed (attempt %s/%s)", attempt, C.APPROVE_ATTEMPTS)
            if attempt < C.APPROVE_ATTEMPTS:
                await self.sleep(C.APPROVE_RETRY_DELAY)
        raise FatalAccountError(f"could not approve spender after {C.APPROVE_ATTEMPTS} attempts")

    async def trade(self) -> TaskState:
        try:
            self.balance = await self.read_balance()
        except LedgerError as e:
            raise FatalAccountError(f"token balance unreadable: {e}") from e

        size = trade_size(self.balance, self.rng)
        if size is None:
            self.reason = f"balance too low to trade ({self.balance})"
            self.log.warning("%s, skipping", self.reason)
            return TaskState.SKIPPED

        pair = self.rng.choice(self.settings.pairs)
        is_long = self.rng.random() > 0.5
        units = int(size.scaleb(self.decimals or 0))
        self.log.info("trade %s %s %s (balance %s)", "Long" if is_long else "Short", size, pair.name, self.balance)

        attempts = self.settings.trade_attempts
        for attempt in range(1, attempts + 1):
            self.trade_attempts = attempt
            self.log.info("trade attempt %s/%s", attempt, attempts)
            try:
                result = await self.trade_once(pair, is_long, units, self.balance)
            except ProofStaleError as e:
                self.log.warning("proof likely stale or market moved, refetching: %s", e)
                await self.sleep(C.PROOF_STALE_COOLDOWN)
                continue
            except ProofFetchError as e:
                self.log.error("%s", e)
                await self.sleep(C.PROOF_FETCH_RETRY_DELAY)
                continue
            except (LedgerError, ExhaustionError) as e:
                self.log.error("[attempt %s/%s] trade failed: %s", attempt, attempts, e)
                result = None

            if result is not None:
                self.tx_hash, self.block_number = result
                self.log.info("trade done: %s (block %s)", self.tx_hash, self.block_number)
                return TaskState.DONE

            if attempt < attempts:
                wait = min(5 + attempt * 2, 15)
                self.log.warning("waiting %ss before the next trade attempt", wait)
                await self.sleep(wait)

        raise ExhaustionError(f"trade not executed after {attempts} attempts")

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    async def read_balance(self) -> Decimal:
        if self.decimals is None:
            self.decimals = await self.ledger.token_decimals(self.settings.token)
        raw = await self.ledger.token_balance(self.settings.token, self.account.address)
        return Decimal(raw).scaleb(-self.decimals)

    async def ensure_approved(self) -> bool:
        """One approval attempt. True once the spender's allowance is known to be unlimited."""
        spender = self.settings.spender
        if spender in self.account.approved_spenders:
            return True
        try:
            allowance = await self.ledger.token_allowance(self.settings.token, self.account.address, spender)
            if allowance >= C.APPROVED_THRESHOLD:
                self.log.info("spender %s already approved", spender)
                self.account.approved_spenders.add(spender)
                return True

            self.log.info("approving spender %s (current allowance %s)", spender, allowance)
            call = await self._prepare(self.settings.token, encode_approve(spender), C.GAS_MULTIPLIER_APPROVE)
            try:
                tx_hash, receipt = await self._send_and_confirm(call)
            except ReceiptNotFound as e:
                self.log.warning("approve unconfirmed, checking allowance: %s", e)
                await self.nonces.resync()
                allowance = await self.ledger.token_allowance(self.settings.token, self.account.address, spender)
                if allowance >= C.APPROVED_THRESHOLD:
                    self.log.info("approve confirmed by allowance check")
                    self.account.approved_spenders.add(spender)
                    return True
                return False
        except (LedgerError, SubmissionExhausted) as e:
            self.log.error("approve failed: %s", e)
            return False

        if not receipt.succeeded:
            self.log.error("approve %s reverted", tx_hash)
            return False
        self.log.info("approve confirmed: %s", tx_hash)
        self.account.approved_spenders.add(spender)
        return True

    async def trade_once(
        self, pair: Pair, is_long: bool, units: int, balance_before: Decimal
    ) -> tuple[str, int | None] | None:
        """One trade attempt with a freshly fetched proof.

        Returns (tx_hash, block_number) on success; block_number is None when
        the trade was only confirmed by the balance dropping. None on a soft
        failure the caller should retry.
        """
        spender = self.settings.spender
        if spender not in self.account.approved_spenders:
            self.log.info("spender not approved yet, approving before trade")
            if not await self.ensure_approved():
                return None

        proof = await self.proofs.fetch(pair.index)

        allowance = await self.ledger.token_allowance(self.settings.token, self.account.address, spender)
        if allowance < units:
            self.log.warning("allowance %s below trade size %s, approving again", allowance, units)
            self.account.approved_spenders.discard(spender)
            if not await self.ensure_approved():
                return None

        data = encode_open_position(pair.index, proof, is_long, units)
        try:
            call = await self._prepare(self.settings.router, data, C.GAS_MULTIPLIER_TRADE)
        except ExecutionReverted as e:
            raise ProofStaleError(str(e)) from e

        try:
            tx_hash, receipt = await self._send_and_confirm(call)
        except ReceiptNotFound as e:
            self.log.warning("no receipt for trade, checking balance: %s", e)
            await self.nonces.resync()
            balance_after = await self.read_balance()
            if balance_after < balance_before:
                self.log.info("trade %s confirmed by balance change %s -> %s", e.tx_hash, balance_before, balance_after)
                return e.tx_hash, None
            return None

        if not receipt.succeeded:
            self.log.error("trade %s reverted in block %s", tx_hash, receipt.block_number)
            return None
        return tx_hash, receipt.block_number

    async def _prepare(self, to: str, data: str, gas_multiplier: float) -> PendingCall:
        nonce = await self.nonces.current()
        gas = await self.ledger.estimate_gas({"from": self.account.address, "to": to, "data": data})
        return PendingCall(
            to=to,
            data=data,
            gas=int(gas * gas_multiplier),
            fees=self._escalator().baseline,
            nonce=nonce,
            chain_id=self.settings.chain_id,
        )

    async def _send_and_confirm(self, call: PendingCall) -> tuple[str, Receipt]:
        tx_hash, sent = await self.submitter.submit(call, self._escalator())
        self.log.info("sent %s (nonce %s)", tx_hash, sent.nonce)
        receipt = await self.receipts.wait(tx_hash)
        # Included, reverted or not, the nonce is spent.
        self.nonces.advance_past(sent.nonce)
        return tx_hash, receipt

    def _escalator(self) -> FeeEscalator:
        num, den = self.settings.bump_ratio
        return FeeEscalator.from_gwei(
            self.settings.max_fee_gwei,
            self.settings.priority_fee_gwei,
            num=num,
            den=den,
            max_bumps=self.settings.max_bumps,
        )
