"""Call-data encoding for the token, faucet and trade router contracts."""
from eth_abi import encode
from eth_utils import keccak, to_checksum_address

import tradeload.constants as C

ERC20_ABI = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "decimals",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "type": "function",
        "name": "approve",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "allowance",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

CLAIM_SIGNATURE = "claim()"
APPROVE_SIGNATURE = "approve(address,uint256)"
OPEN_POSITION_SIGNATURE = "openPosition(uint256,bytes,bool,uint256,uint256,uint256,uint256)"


def selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def encode_call(signature: str, types: list[str], args: list) -> str:
    return "0x" + (selector(signature) + encode(types, args)).hex()


def encode_claim() -> str:
    return "0x" + selector(CLAIM_SIGNATURE).hex()


def encode_approve(spender: str, amount: int = C.MAX_UINT256) -> str:
    return encode_call(APPROVE_SIGNATURE, ["address", "uint256"], [to_checksum_address(spender), amount])


def encode_open_position(
    pair_index: int,
    proof: bytes,
    is_long: bool,
    size: int,
    *,
    leverage: int = C.LEVERAGE,
    stop_loss: int = 0,
    take_profit: int = 0,
) -> str:
    return encode_call(
        OPEN_POSITION_SIGNATURE,
        ["uint256", "bytes", "bool", "uint256", "uint256", "uint256", "uint256"],
        [pair_index, proof, is_long, leverage, size, stop_loss, take_profit],
    )
