import time
from dataclasses import dataclass, field, replace
from typing import Any

from eth_account import Account as EthAccount

from tradeload.constants import TaskState


@dataclass(slots=True)
class Account:
    """One wallet and the state owned by the task currently driving it.

    `approved_spenders` is a cache of allowances already seen as sufficient;
    it is dropped for a spender as soon as a trade finds the allowance short.
    """

    index: int
    private_key: str = field(repr=False)
    address: str
    approved_spenders: set[str] = field(default_factory=set)

    @classmethod
    def from_key(cls, index: int, private_key: str) -> "Account":
        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        return cls(index=index, private_key=key, address=EthAccount.from_key(key).address)

    @property
    def short_address(self) -> str:
        return f"{self.address[:6]}...{self.address[-6:]}"


@dataclass(frozen=True, slots=True)
class FeeCaps:
    max_fee_per_gas: int  # wei
    max_priority_fee_per_gas: int  # wei

    def scaled(self, num: int, den: int) -> "FeeCaps":
        return FeeCaps(
            max_fee_per_gas=self.max_fee_per_gas * num // den,
            max_priority_fee_per_gas=self.max_priority_fee_per_gas * num // den,
        )


@dataclass(frozen=True, slots=True)
class PendingCall:
    to: str
    data: str
    gas: int
    fees: FeeCaps
    nonce: int
    chain_id: int

    def with_nonce(self, nonce: int) -> "PendingCall":
        return replace(self, nonce=nonce)

    def with_fees(self, fees: FeeCaps) -> "PendingCall":
        return replace(self, fees=fees)

    def to_tx(self) -> dict[str, Any]:
        """EIP-1559 transaction dict ready for signing."""
        return {
            "type": 2,
            "to": self.to,
            "data": self.data,
            "gas": self.gas,
            "maxFeePerGas": self.fees.max_fee_per_gas,
            "maxPriorityFeePerGas": self.fees.max_priority_fee_per_gas,
            "nonce": self.nonce,
            "chainId": self.chain_id,
            "value": 0,
        }


@dataclass(frozen=True, slots=True)
class Receipt:
    tx_hash: str
    block_number: int
    status: int

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, r: Any) -> "Receipt":
        tx_hash = r["transactionHash"]
        if not isinstance(tx_hash, str):
            tx_hash = "0x" + bytes(tx_hash).hex()
        return cls(tx_hash=tx_hash, block_number=int(r["blockNumber"]), status=int(r["status"]))


@dataclass(slots=True)
class TaskOutcome:
    account_index: int
    address: str
    state: TaskState
    tx_hash: str | None = None
    block_number: int | None = None
    reason: str | None = None
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    @property
    def ok(self) -> bool:
        return self.state in (TaskState.DONE, TaskState.SKIPPED)

    def __str__(self):
        return f"account {self.account_index + 1} -- {self.address} -- {self.state}"
