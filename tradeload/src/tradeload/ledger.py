"""Ledger node access.

Everything the engine needs from the node goes through `LedgerClient`.
Node and library exceptions are translated into the tagged taxonomy in
`tradeload.errors` here and nowhere else.
"""
import asyncio
import logging
from typing import Any, Protocol

from eth_account import Account as EthAccount
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

import tradeload.constants as C
from tradeload.contracts import ERC20_ABI
from tradeload.errors import (
    ConfirmationTimeout,
    ExecutionReverted,
    LedgerError,
    ReplaySubmissionError,
    StaleSequenceError,
    TransactionDropped,
    TransientRPCError,
    UnderpricedError,
)
from tradeload.models import Account, PendingCall, Receipt

log = logging.getLogger("tradeload.ledger")

# Lower-cased fragments of node rejection messages and the class they map to.
# Order matters: the first match wins.
REJECTION_CLASSES: tuple[tuple[str, type[LedgerError]], ...] = (
    ("tx_replay_attack", ReplaySubmissionError),
    ("already known", ReplaySubmissionError),
    ("replacement transaction underpriced", UnderpricedError),
    ("replacement underpriced", UnderpricedError),
    ("nonce too low", StaleSequenceError),
    ("nonce expired", StaleSequenceError),
    ("nonce has already been used", StaleSequenceError),
)


def classify_rpc_error(exc: BaseException) -> LedgerError:
    """Map any exception raised while talking to the node onto the taxonomy."""
    if isinstance(exc, LedgerError):
        return exc
    if isinstance(exc, TimeExhausted):
        return ConfirmationTimeout(str(exc))
    if isinstance(exc, TransactionNotFound):
        return TransactionDropped(str(exc))
    if isinstance(exc, ContractLogicError):
        return ExecutionReverted(str(exc))
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return TransientRPCError(f"rpc timeout: {exc!r}")
    text = str(exc).lower()
    for fragment, cls in REJECTION_CLASSES:
        if fragment in text:
            return cls(str(exc))
    if "execution reverted" in text or "custom error" in text:
        return ExecutionReverted(str(exc))
    return TransientRPCError(f"{exc.__class__.__name__}: {exc}")


def _hex(value: Any) -> str:
    s = value.hex() if hasattr(value, "hex") else str(value)
    return s if s.startswith("0x") else f"0x{s}"


class LedgerClient(Protocol):
    async def get_nonce(self, address: str, block: str = "pending") -> int: ...
    async def estimate_gas(self, tx: dict[str, Any]) -> int: ...
    async def send_signed_transaction(self, call: PendingCall, account: Account) -> str: ...
    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None: ...
    async def wait_for_inclusion(self, tx_hash: str, confirmations: int, timeout: float) -> Receipt: ...
    async def get_transaction(self, tx_hash: str) -> dict | None: ...
    async def get_block_number(self) -> int: ...
    async def token_balance(self, token: str, owner: str) -> int: ...
    async def token_decimals(self, token: str) -> int: ...
    async def token_allowance(self, token: str, owner: str, spender: str) -> int: ...


class Web3Ledger:
    """`LedgerClient` over a JSON-RPC endpoint using web3.py.

    Stateless apart from the HTTP session, so one instance is shared by all
    account tasks.
    """

    def __init__(self, rpc_url: str, *, rpc_timeout: float = C.RPC_TIMEOUT, poll_latency: float = 2.0):
        self.rpc_url = rpc_url
        self.rpc_timeout = rpc_timeout
        self.poll_latency = poll_latency
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._decimals: dict[str, int] = {}

    async def aclose(self) -> None:
        await self.w3.provider.disconnect()

    async def _rpc(self, aw, *, t: float | None = None):
        try:
            return await asyncio.wait_for(aw, timeout=t or self.rpc_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise classify_rpc_error(e) from e

    def _token(self, token: str):
        return self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(token), abi=ERC20_ABI)

    async def get_nonce(self, address: str, block: str = "pending") -> int:
        return await self._rpc(self.w3.eth.get_transaction_count(AsyncWeb3.to_checksum_address(address), block))

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        tx = {k: AsyncWeb3.to_checksum_address(v) if k in ("from", "to") else v for k, v in tx.items()}
        return await self._rpc(self.w3.eth.estimate_gas(tx))

    async def send_signed_transaction(self, call: PendingCall, account: Account) -> str:
        tx = call.to_tx()
        tx["to"] = AsyncWeb3.to_checksum_address(tx["to"])
        signed = EthAccount.sign_transaction(tx, account.private_key)
        tx_hash = await self._rpc(self.w3.eth.send_raw_transaction(signed.raw_transaction))
        return _hex(tx_hash)

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        try:
            r = await self._rpc(self.w3.eth.get_transaction_receipt(tx_hash))
        except TransactionDropped:
            return None
        return Receipt.from_web3(r) if r else None

    async def wait_for_inclusion(self, tx_hash: str, confirmations: int, timeout: float) -> Receipt:
        try:
            async with asyncio.timeout(timeout):
                r = await self.w3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=timeout, poll_latency=self.poll_latency
                )
                receipt = Receipt.from_web3(r)
                while confirmations > 1:
                    head = await self.w3.eth.block_number
                    if head - receipt.block_number + 1 >= confirmations:
                        break
                    await asyncio.sleep(self.poll_latency)
                return receipt
        except asyncio.CancelledError:
            raise
        except TimeoutError as e:
            raise ConfirmationTimeout(f"{tx_hash} not included within {timeout:.0f}s") from e
        except Exception as e:
            raise classify_rpc_error(e) from e

    async def get_transaction(self, tx_hash: str) -> dict | None:
        try:
            return dict(await self._rpc(self.w3.eth.get_transaction(tx_hash)))
        except TransactionDropped:
            return None

    async def get_block_number(self) -> int:
        return await self._rpc(self.w3.eth.block_number)

    async def token_balance(self, token: str, owner: str) -> int:
        fn = self._token(token).functions.balanceOf(AsyncWeb3.to_checksum_address(owner))
        return await self._rpc(fn.call())

    async def token_decimals(self, token: str) -> int:
        if token not in self._decimals:
            self._decimals[token] = await self._rpc(self._token(token).functions.decimals().call())
        return self._decimals[token]

    async def token_allowance(self, token: str, owner: str, spender: str) -> int:
        fn = self._token(token).functions.allowance(
            AsyncWeb3.to_checksum_address(owner), AsyncWeb3.to_checksum_address(spender)
        )
        return await self._rpc(fn.call())
