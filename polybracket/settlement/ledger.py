"""Polygon ledger access for redemption: reads, signing and submission.

web3.py's HTTP provider is synchronous, so every RPC call runs in a worker
thread via ``asyncio.to_thread`` and the event loop is never blocked.

Errors propagate to the caller unchanged, with one exception:
``get_receipt`` reports a transaction that is not yet mined as ``None`` so
the caller can tell "not mined yet" apart from a failed query.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3
from web3.exceptions import TransactionNotFound

from polybracket.config import (
    CTF_ADDRESS,
    EXECUTION_CHAIN_ID,
    POLYGON_RPC_URL,
    REDEMPTION_GAS_LIMIT,
    RPC_TIMEOUT,
)
from polybracket.settlement.safe import (
    BINARY_INDEX_SETS,
    CTF_ABI,
    OPERATION_CALL,
    SAFE_ABI,
    ZERO_ADDRESS,
    ZERO_BYTES32,
    FeeParams,
    compute_fee_params,
    contract_signature,
    to_bytes32,
)

logger = logging.getLogger(__name__)


class Ledger:
    """Conditional-token and Safe wallet operations for a single owner key."""

    def __init__(
        self,
        private_key: str,
        rpc_url: str = POLYGON_RPC_URL,
        timeout: float = RPC_TIMEOUT,
        chain_id: int = EXECUTION_CHAIN_ID,
    ) -> None:
        self._w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self._account = Account.from_key(private_key)
        self._ctf = self._w3.eth.contract(
            address=Web3.to_checksum_address(CTF_ADDRESS), abi=CTF_ABI)
        self.chain_id = chain_id
        logger.info(
            "ledger_initialized",
            extra={"rpc_url": rpc_url, "owner": self.owner_address},
        )

    @property
    def owner_address(self) -> str:
        return self._account.address

    def _safe(self, wallet: str) -> Any:
        return self._w3.eth.contract(
            address=Web3.to_checksum_address(wallet), abi=SAFE_ABI)

    # ------------------------------------------------------------------
    # Conditional-token reads
    # ------------------------------------------------------------------

    async def payout_numerator(self, condition_id: str, index: int) -> int:
        fn = self._ctf.functions.payoutNumerators(to_bytes32(condition_id), index)
        return await asyncio.to_thread(fn.call)

    async def collection_id(self, parent_collection_id: bytes, condition_id: str, index_set: int) -> bytes:
        fn = self._ctf.functions.getCollectionId(
            parent_collection_id, to_bytes32(condition_id), index_set)
        return bytes(await asyncio.to_thread(fn.call))

    async def position_id(self, collateral: str, collection_id: bytes) -> int:
        fn = self._ctf.functions.getPositionId(
            Web3.to_checksum_address(collateral), collection_id)
        return await asyncio.to_thread(fn.call)

    async def balance_of(self, wallet: str, position_id: int) -> int:
        fn = self._ctf.functions.balanceOf(Web3.to_checksum_address(wallet), position_id)
        return await asyncio.to_thread(fn.call)

    def encode_redeem(self, collateral: str, condition_id: str) -> bytes:
        """Calldata for redeemPositions(collateral, 0x0, conditionId, [1, 2])."""
        data = self._ctf.encode_abi(
            "redeemPositions",
            args=[
                Web3.to_checksum_address(collateral),
                ZERO_BYTES32,
                to_bytes32(condition_id),
                BINARY_INDEX_SETS,
            ],
        )
        return Web3.to_bytes(hexstr=data)

    # ------------------------------------------------------------------
    # Safe wallet
    # ------------------------------------------------------------------

    async def safe_nonce(self, wallet: str) -> int:
        return await asyncio.to_thread(self._safe(wallet).functions.nonce().call)

    async def safe_transaction_hash(self, wallet: str, to: str, data: bytes, nonce: int) -> bytes:
        fn = self._safe(wallet).functions.getTransactionHash(
            Web3.to_checksum_address(to), 0, data, OPERATION_CALL,
            0, 0, 0, ZERO_ADDRESS, ZERO_ADDRESS, nonce,
        )
        return bytes(await asyncio.to_thread(fn.call))

    def sign_safe_hash(self, safe_tx_hash: bytes) -> bytes:
        """Owner's eth_sign signature over the Safe hash, in contract-style form."""
        signed = self._account.sign_message(encode_defunct(primitive=safe_tx_hash))
        return contract_signature(bytes(signed.signature))

    async def fee_params(self) -> FeeParams:
        suggested = await asyncio.to_thread(lambda: self._w3.eth.max_priority_fee)
        gas_price = await asyncio.to_thread(lambda: self._w3.eth.gas_price)
        return compute_fee_params(int(suggested), int(gas_price))

    async def exec_transaction(
        self,
        wallet: str,
        to: str,
        data: bytes,
        signature: bytes,
        fees: FeeParams,
        gas_limit: int = REDEMPTION_GAS_LIMIT,
    ) -> str:
        """Send execTransaction on the Safe from the owner account. Returns the tx hash."""
        safe = self._safe(wallet)
        owner = self.owner_address

        def _send() -> str:
            tx = safe.functions.execTransaction(
                Web3.to_checksum_address(to), 0, data, OPERATION_CALL,
                0, 0, 0, ZERO_ADDRESS, ZERO_ADDRESS, signature,
            ).build_transaction({
                "from": owner,
                "nonce": self._w3.eth.get_transaction_count(owner, "pending"),
                "gas": gas_limit,
                "maxFeePerGas": fees.max_fee_per_gas,
                "maxPriorityFeePerGas": fees.max_priority_fee_per_gas,
                "chainId": self.chain_id,
            })
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            return self._w3.to_hex(tx_hash)

        return await asyncio.to_thread(_send)

    async def get_receipt(self, tx_hash: str) -> dict | None:
        """Mined receipt as a dict, or None if the transaction is not mined yet."""
        try:
            receipt = await asyncio.to_thread(self._w3.eth.get_transaction_receipt, tx_hash)
        except TransactionNotFound:
            return None
        return dict(receipt) if receipt is not None else None
