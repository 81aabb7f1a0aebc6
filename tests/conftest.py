"""Shared fakes for the execution and settlement tests."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from polybracket.execution.engine import OrderRequest, OrderResult, OrderStatus
from polybracket.settlement.safe import FeeParams

WALLET = "0x00000000000000000000000000000000000000aa"


def condition(n: int) -> str:
    return "0x" + f"{n:064x}"


def by_condition(store) -> dict[str, Any]:
    return {entry.condition_id: entry for entry in store}


def raw_position(
    condition_id: str,
    *,
    wallet: str = WALLET,
    cash_pnl: float = 4.0,
    current_value: float = 10.0,
    initial_value: float = 6.0,
    title: Optional[str] = None,
) -> dict[str, Any]:
    """A Data API /positions entry."""
    return {
        "conditionId": condition_id,
        "proxyWallet": wallet,
        "size": 10.0,
        "currentValue": current_value,
        "initialValue": initial_value,
        "cashPnl": cash_pnl,
        "title": title or f"Market {condition_id[-4:]}",
        "outcome": "No",
        "negativeRisk": False,
    }


# ---------------------------------------------------------------------------
# Market data / venue
# ---------------------------------------------------------------------------


class FakeClob:
    def __init__(self, book: Optional[dict] = None, tick_size: Optional[float] = None) -> None:
        self.book = book
        self.tick_size = tick_size
        self.book_requests: list[str] = []

    async def fetch_orderbook(self, token_id: str) -> Optional[dict]:
        self.book_requests.append(token_id)
        return self.book

    async def fetch_tick_size(self, token_id: str) -> Optional[float]:
        return self.tick_size


class FakeEngine:
    """Fills every order unless its (price, size) is listed in `reject`
    (venue error) or `unfilled` (accepted but not matched)."""

    def __init__(
        self,
        reject: Optional[set[tuple[float, float]]] = None,
        unfilled: Optional[set[tuple[float, float]]] = None,
    ) -> None:
        self.reject = reject or set()
        self.unfilled = unfilled or set()
        self.orders: list[OrderRequest] = []

    async def submit_order(self, token_id, price, size, side="BUY", *, tick_size="0.01", neg_risk=False):
        request = OrderRequest(
            token_id=token_id, side=side, price=price, size=size,
            tick_size=tick_size, neg_risk=neg_risk,
        )
        self.orders.append(request)
        if (price, size) in self.reject:
            return OrderResult(request=request, status=OrderStatus.FAILED, error_msg="not enough balance")
        if (price, size) in self.unfilled:
            return OrderResult(request=request, status=OrderStatus.SUBMITTED, order_id=f"o{len(self.orders)}")
        return OrderResult(request=request, status=OrderStatus.MATCHED, order_id=f"o{len(self.orders)}")


# ---------------------------------------------------------------------------
# Portfolio / ledger
# ---------------------------------------------------------------------------


class FakeDataClient:
    def __init__(self, positions: Optional[list[dict]] = None) -> None:
        self.positions = positions or []
        self.calls = 0

    async def fetch_redeemable_positions(self, wallet: str) -> list[dict]:
        self.calls += 1
        return list(self.positions)


class FakeLedger:
    """In-memory stand-in for the web3 ledger.

    Collection IDs encode their index set and position IDs are
    (collateral, collection_id) tuples so balances can be keyed by
    (collateral, index_set).
    """

    def __init__(self) -> None:
        self.payouts: dict[str, tuple[int, int]] = {}
        self.slow_conditions: set[str] = set()
        self.error_conditions: set[str] = set()
        self.balances: dict[tuple[str, int], int] = {}
        self.safe_nonce_value = 7
        self.nonce_reads = 0
        self.fail_submit: set[str] = set()
        self.submissions: list[dict[str, Any]] = []
        self.attempted_nonces: list[int] = []
        self.receipts: dict[str, Any] = {}
        self.default_receipt: Any = {"status": 1}
        self._last_hashed_nonce: Optional[int] = None

    def resolve(self, condition_id: str, winner: int = 1) -> None:
        self.payouts[condition_id] = (0, 1) if winner == 1 else (1, 0)

    async def payout_numerator(self, condition_id: str, index: int) -> int:
        if condition_id in self.slow_conditions:
            await asyncio.sleep(1)
        if condition_id in self.error_conditions:
            raise ConnectionError("rpc unavailable")
        return self.payouts.get(condition_id, (0, 0))[index]

    async def collection_id(self, parent: bytes, condition_id: str, index_set: int) -> bytes:
        return f"{condition_id}:{index_set}".encode()

    async def position_id(self, collateral: str, collection_id: bytes) -> tuple[str, bytes]:
        return (collateral, collection_id)

    async def balance_of(self, wallet: str, position_id: tuple[str, bytes]) -> int:
        collateral, collection_id = position_id
        index_set = int(collection_id.decode().rsplit(":", 1)[1])
        return self.balances.get((collateral, index_set), 0)

    def encode_redeem(self, collateral: str, condition_id: str) -> bytes:
        return f"{collateral}|{condition_id}".encode()

    async def safe_nonce(self, wallet: str) -> int:
        self.nonce_reads += 1
        return self.safe_nonce_value

    async def safe_transaction_hash(self, wallet: str, to: str, data: bytes, nonce: int) -> bytes:
        self._last_hashed_nonce = nonce
        return nonce.to_bytes(32, "big")

    def sign_safe_hash(self, safe_tx_hash: bytes) -> bytes:
        return safe_tx_hash + bytes(32) + bytes([31])

    async def fee_params(self) -> FeeParams:
        return FeeParams(max_priority_fee_per_gas=45, max_fee_per_gas=174)

    async def exec_transaction(self, wallet, to, data, signature, fees, gas_limit=500_000) -> str:
        collateral, condition_id = data.decode().split("|")
        nonce = self._last_hashed_nonce
        self.attempted_nonces.append(nonce)
        if condition_id in self.fail_submit:
            raise ValueError("replacement transaction underpriced")
        tx_hash = f"0x{len(self.submissions) + 1:064x}"
        self.submissions.append({
            "tx_hash": tx_hash,
            "wallet": wallet,
            "to": to,
            "collateral": collateral,
            "condition_id": condition_id,
            "nonce": nonce,
            "gas_limit": gas_limit,
        })
        return tx_hash

    async def get_receipt(self, tx_hash: str) -> Optional[dict]:
        receipt = self.receipts.get(tx_hash, self.default_receipt)
        if isinstance(receipt, Exception):
            raise receipt
        return receipt


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()
