from collections import deque
from pathlib import Path

import pytest

import tradeload.constants as C
from tradeload.config import Pair, Settings
from tradeload.contracts import APPROVE_SIGNATURE, CLAIM_SIGNATURE, OPEN_POSITION_SIGNATURE, selector
from tradeload.models import Account, PendingCall, Receipt

KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

TOKEN = "0x78ac5e2d8a78a8b8e6d10c7b7274b03c10c91cef"
CLAIM = "0x50576285bd33261dee1ad99bf766cd8249520a58"
ROUTER = "0xde897635870b3dd2e097c09f1cd08841dbc3976a"
SPENDER = "0x9a88d07850723267db386c681646217af7e220d7"


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested delays and returns at once."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


class FakeLedger:
    """In-memory LedgerClient.

    Scripted failures are queued per operation: an Exception instance is
    raised, anything else is returned. Confirmed calls apply their effect
    (claim credits the balance, approve sets an unlimited allowance, a trade
    debits its size).
    """

    def __init__(self, *, nonce: int = 7, balance: int = 0, decimals: int = 6, claim_amount: int = 20_000_000):
        self.nonce = nonce
        self.balance = balance
        self.decimals = decimals
        self.claim_amount = claim_amount
        self.allowance = 0
        self.gas = 100_000
        self.block = 1000

        self.nonce_script: deque = deque()
        self.send_script: deque = deque()
        self.wait_script: deque = deque()
        self.estimate_script: deque = deque()
        self.balance_script: deque = deque()
        self.allowance_script: deque = deque()
        self.receipt_script: deque = deque()

        self.sent: list[PendingCall] = []
        self.accepted: dict[str, PendingCall] = {}
        self.receipts: dict[str, Receipt] = {}
        self.transactions: dict[str, dict] = {}
        self.nonce_calls = 0
        self.wait_calls = 0
        self.receipt_lookups = 0
        self.tx_lookups = 0
        self.estimates: list[dict] = []

    @staticmethod
    def _next(script: deque, default):
        if script:
            item = script.popleft()
            if isinstance(item, BaseException):
                raise item
            return item
        return default

    async def get_nonce(self, address: str, block: str = "pending") -> int:
        self.nonce_calls += 1
        return self._next(self.nonce_script, self.nonce)

    async def estimate_gas(self, tx: dict) -> int:
        self.estimates.append(tx)
        return self._next(self.estimate_script, self.gas)

    async def send_signed_transaction(self, call: PendingCall, account: Account) -> str:
        self.sent.append(call)
        self._next(self.send_script, None)
        tx_hash = f"0x{len(self.sent):064x}"
        self.accepted[tx_hash] = call
        self.transactions[tx_hash] = {"hash": tx_hash, "nonce": call.nonce}
        # the pending count includes transactions still in the pool
        self.nonce = max(self.nonce, call.nonce + 1)
        return tx_hash

    def _apply(self, tx_hash: str) -> Receipt:
        call = self.accepted[tx_hash]
        data = bytes.fromhex(call.data[2:])
        if data[:4] == selector(CLAIM_SIGNATURE):
            self.balance += self.claim_amount
        elif data[:4] == selector(APPROVE_SIGNATURE):
            self.allowance = C.MAX_UINT256
        elif data[:4] == selector(OPEN_POSITION_SIGNATURE):
            # size is the fifth static word after the selector
            size = int.from_bytes(data[4 + 32 * 4 : 4 + 32 * 5], "big")
            self.balance -= size
        self.nonce = max(self.nonce, call.nonce + 1)
        self.block += 1
        receipt = Receipt(tx_hash=tx_hash, block_number=self.block, status=1)
        self.receipts[tx_hash] = receipt
        return receipt

    async def wait_for_inclusion(self, tx_hash: str, confirmations: int, timeout: float) -> Receipt:
        self.wait_calls += 1
        item = self._next(self.wait_script, None)
        if isinstance(item, Receipt):
            return item
        return self._apply(tx_hash)

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        self.receipt_lookups += 1
        return self._next(self.receipt_script, self.receipts.get(tx_hash))

    async def get_transaction(self, tx_hash: str) -> dict | None:
        self.tx_lookups += 1
        return self.transactions.get(tx_hash)

    async def get_block_number(self) -> int:
        return self.block

    async def token_balance(self, token: str, owner: str) -> int:
        return self._next(self.balance_script, self.balance)

    async def token_decimals(self, token: str) -> int:
        return self.decimals

    async def token_allowance(self, token: str, owner: str, spender: str) -> int:
        return self._next(self.allowance_script, self.allowance)


class FakeProofs:
    def __init__(self):
        self.script: deque = deque()
        self.calls = 0

    async def fetch(self, pair_index: int) -> bytes:
        self.calls += 1
        if self.script:
            item = self.script.popleft()
            if isinstance(item, BaseException):
                raise item
            return item
        return f"proof-{self.calls}".encode()


@pytest.fixture
def account() -> Account:
    return Account.from_key(0, KEY)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def proofs() -> FakeProofs:
    return FakeProofs()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        rpc_url="http://localhost:8545",
        chain_id=688688,
        token=TOKEN,
        claim_contract=CLAIM,
        router=ROUTER,
        spender=SPENDER,
        proof_url="http://proof.local",
        pairs=(Pair(name="AAPL_USDT", index=6004),),
        wallet_file=Path("wallet.txt"),
    )


@pytest.fixture
def pending_call() -> PendingCall:
    from tradeload.models import FeeCaps

    return PendingCall(
        to=ROUTER,
        data="0x4e71d92d",
        gas=120_000,
        fees=FeeCaps(max_fee_per_gas=5 * C.GWEI, max_priority_fee_per_gas=2 * C.GWEI),
        nonce=7,
        chain_id=688688,
    )
