"""Smart-contract wallet (Gnosis Safe) helpers for relayed redemptions.

The proxy wallet that holds positions is a Safe with the configured key as
its single owner. A redemption is sent as ``execTransaction`` on the Safe,
authorized by the owner's signature over the Safe transaction hash.
"""

from __future__ import annotations

import json
from fractions import Fraction
from typing import NamedTuple

from polybracket.config import (
    MAX_FEE_MULTIPLIER,
    MIN_PRIORITY_FEE_GWEI,
    PRIORITY_FEE_MULTIPLIER,
)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = bytes(32)

# Safe operation type for a plain call (1 would be delegatecall)
OPERATION_CALL = 0

# Index sets for the two outcome slots of a binary condition
BINARY_INDEX_SETS = [1, 2]

# eth_sign signatures carry v + 4 so the Safe verifies them against the
# prefixed message hash instead of the raw transaction hash
ETH_SIGN_V_OFFSET = 4

GWEI = 10 ** 9

CTF_ABI = json.loads("""[
    {"inputs":[{"internalType":"address","name":"account","type":"address"},{"internalType":"uint256","name":"id","type":"uint256"}],"name":"balanceOf","outputs":[{"internalType":"uint256","name":"","type":"uint256"}],"stateMutability":"view","type":"function"},
    {"inputs":[{"internalType":"contract IERC20","name":"collateralToken","type":"address"},{"internalType":"bytes32","name":"collectionId","type":"bytes32"}],"name":"getPositionId","outputs":[{"internalType":"uint256","name":"","type":"uint256"}],"stateMutability":"pure","type":"function"},
    {"inputs":[{"internalType":"bytes32","name":"parentCollectionId","type":"bytes32"},{"internalType":"bytes32","name":"conditionId","type":"bytes32"},{"internalType":"uint256","name":"indexSet","type":"uint256"}],"name":"getCollectionId","outputs":[{"internalType":"bytes32","name":"","type":"bytes32"}],"stateMutability":"view","type":"function"},
    {"inputs":[{"internalType":"address","name":"collateralToken","type":"address"},{"internalType":"bytes32","name":"parentCollectionId","type":"bytes32"},{"internalType":"bytes32","name":"conditionId","type":"bytes32"},{"internalType":"uint256[]","name":"indexSets","type":"uint256[]"}],"name":"redeemPositions","outputs":[],"stateMutability":"nonpayable","type":"function"},
    {"inputs":[{"internalType":"bytes32","name":"","type":"bytes32"},{"internalType":"uint256","name":"","type":"uint256"}],"name":"payoutNumerators","outputs":[{"internalType":"uint256","name":"","type":"uint256"}],"stateMutability":"view","type":"function"}
]""")

SAFE_ABI = json.loads("""[
    {"inputs":[{"name":"to","type":"address"},{"name":"value","type":"uint256"},{"name":"data","type":"bytes"},{"name":"operation","type":"uint8"},{"name":"safeTxGas","type":"uint256"},{"name":"baseGas","type":"uint256"},{"name":"gasPrice","type":"uint256"},{"name":"gasToken","type":"address"},{"name":"refundReceiver","type":"address"},{"name":"signatures","type":"bytes"}],"name":"execTransaction","outputs":[{"name":"success","type":"bool"}],"stateMutability":"payable","type":"function"},
    {"inputs":[{"name":"to","type":"address"},{"name":"value","type":"uint256"},{"name":"data","type":"bytes"},{"name":"operation","type":"uint8"},{"name":"safeTxGas","type":"uint256"},{"name":"baseGas","type":"uint256"},{"name":"gasPrice","type":"uint256"},{"name":"gasToken","type":"address"},{"name":"refundReceiver","type":"address"},{"name":"_nonce","type":"uint256"}],"name":"getTransactionHash","outputs":[{"name":"","type":"bytes32"}],"stateMutability":"view","type":"function"},
    {"inputs":[],"name":"nonce","outputs":[{"name":"","type":"uint256"}],"stateMutability":"view","type":"function"}
]""")


class FeeParams(NamedTuple):
    """EIP-1559 fee fields for a relayed transaction (wei)."""

    max_priority_fee_per_gas: int
    max_fee_per_gas: int


def to_bytes32(hex_str: str) -> bytes:
    """Left-pad a 0x hex string to 32 bytes."""
    raw = bytes.fromhex(hex_str[2:] if hex_str.startswith("0x") else hex_str)
    if len(raw) > 32:
        raise ValueError(f"value longer than 32 bytes: {hex_str}")
    return raw.rjust(32, b"\x00")


def contract_signature(signature: bytes) -> bytes:
    """Turn a 65-byte r||s||v eth_sign signature into the Safe's contract-style form."""
    if len(signature) != 65:
        raise ValueError(f"expected 65-byte signature, got {len(signature)}")
    return bytes(signature[:64]) + bytes([signature[64] + ETH_SIGN_V_OFFSET])


def compute_fee_params(
    suggested_priority_fee: int,
    gas_price: int,
    *,
    min_priority_fee: int = MIN_PRIORITY_FEE_GWEI * GWEI,
    priority_multiplier: float = PRIORITY_FEE_MULTIPLIER,
    max_fee_multiplier: float = MAX_FEE_MULTIPLIER,
) -> FeeParams:
    """Outbid the suggested tip by 50% (never below the floor) and pad the cap by 20%."""
    priority = max(_scale(suggested_priority_fee, priority_multiplier), min_priority_fee)
    max_fee = _scale(gas_price + priority, max_fee_multiplier)
    return FeeParams(max_priority_fee_per_gas=priority, max_fee_per_gas=max_fee)


def _scale(wei: int, multiplier: float) -> int:
    # Exact integer scaling: 1.2 -> 6/5
    ratio = Fraction(str(multiplier))
    return wei * ratio.numerator // ratio.denominator
