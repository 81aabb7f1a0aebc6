"""Venue order placement over py-clob-client.

Every order the executor sends passes through ``ExecutionEngine.submit_order``
so that signing, venue error mapping and logging live in one place.

Modes:
- DRY_RUN: orders are logged and reported as accepted, nothing is sent
- LIVE: orders are signed with the owner key and posted fill-or-kill
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from polybracket.config import (
    CLOB_API_URL,
    COLLATERAL_DECIMALS,
    EXECUTION_CHAIN_ID,
    EXECUTION_DRY_RUN,
    EXECUTION_SIGNATURE_TYPE,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class OrderStatus(str, Enum):
    """Where a single order ended up."""

    PENDING = "pending"           # Built, not sent
    SUBMITTED = "submitted"       # Accepted, fill not confirmed
    MATCHED = "matched"           # Filled in full
    REJECTED = "rejected"         # Venue said no (e.g. FOK could not fill)
    FAILED = "failed"             # Never reached the venue, or errored
    DRY_RUN = "dry_run"           # Logged only


_ACCEPTED = frozenset({OrderStatus.SUBMITTED, OrderStatus.MATCHED, OrderStatus.DRY_RUN})

# Only these count toward a fill; a delayed FOK order may still be killed
_FILLED = frozenset({OrderStatus.MATCHED, OrderStatus.DRY_RUN})

# Venue status strings. An unmatched FOK order was killed; anything
# unrecognized is treated as accepted-but-unfilled.
_VENUE_STATUS = {
    "matched": OrderStatus.MATCHED,
    "delayed": OrderStatus.SUBMITTED,
    "unmatched": OrderStatus.REJECTED,
}


class OrderRequest(BaseModel):
    """One limit order at an exact price and size."""

    token_id: str = Field(..., description="Outcome token to trade.")
    side: str = Field(default="BUY", description="BUY or SELL.")
    price: float = Field(..., gt=0, lt=1, description="Limit price per share.")
    size: float = Field(..., gt=0, description="Shares.")
    tick_size: str = Field(default="0.01", description="Price increment the venue enforces.")
    neg_risk: bool = Field(default=False, description="True for negative-risk markets.")

    @property
    def notional(self) -> float:
        return self.price * self.size


class OrderResult(BaseModel):
    request: OrderRequest
    status: OrderStatus = OrderStatus.PENDING
    order_id: str = ""
    error_msg: str = ""
    submitted_at: Optional[datetime] = None
    transaction_hashes: list[str] = Field(default_factory=list)
    latency_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status in _ACCEPTED

    @property
    def filled(self) -> bool:
        """Shares are known to have changed hands (or would have, in dry run)."""
        return self.status in _FILLED


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ExecutionEngine:
    """Sends orders for one funder wallet.

    Attributes:
        dry_run: Log orders instead of sending them.
        _client: py-clob-client ``ClobClient``, created on first live use.
        _order_log: Every OrderResult produced by this engine, in order.
    """

    def __init__(
        self,
        private_key: str = "",
        funder_address: str = "",
        dry_run: bool = EXECUTION_DRY_RUN,
    ) -> None:
        self.dry_run = dry_run
        self._private_key = private_key
        self._funder_address = funder_address
        self._client: Any = None
        self._order_log: list[OrderResult] = []
        self._initialized = False

    async def initialize(self) -> None:
        """Create the venue client and derive L2 API credentials.

        Deferred until the first order so the engine can be built at startup
        with no network access, and with no key at all in dry-run mode.
        """
        if self._initialized:
            return

        if self.dry_run:
            logger.info("execution_engine_init", extra={"mode": "DRY_RUN"})
            self._initialized = True
            return

        try:
            from py_clob_client.client import ClobClient

            client = ClobClient(
                host=CLOB_API_URL,
                key=self._private_key,
                chain_id=EXECUTION_CHAIN_ID,
                signature_type=EXECUTION_SIGNATURE_TYPE,
                funder=self._funder_address or None,
            )
            creds = await asyncio.to_thread(client.create_or_derive_api_creds)
            client.set_api_creds(creds)
        except ImportError:
            logger.error("py_clob_client_missing", extra={"hint": "pip install py-clob-client"})
            raise
        except Exception:
            logger.error("execution_engine_init_failed", exc_info=True)
            raise

        self._client = client
        self._initialized = True
        logger.info("execution_engine_init", extra={"mode": "LIVE"})

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def submit_order(
        self,
        token_id: str,
        price: float,
        size: float,
        side: str = "BUY",
        *,
        tick_size: str = "0.01",
        neg_risk: bool = False,
    ) -> OrderResult:
        """Place a fill-or-kill limit order at exactly (price, size).

        Venue and network errors do not raise; they come back as a FAILED or
        REJECTED result carrying the error message.
        """
        request = OrderRequest(
            token_id=token_id,
            side=side,
            price=price,
            size=size,
            tick_size=tick_size,
            neg_risk=neg_risk,
        )
        result = OrderResult(request=request, submitted_at=datetime.now(timezone.utc))
        self._order_log.append(result)

        try:
            await self.initialize()
        except Exception as e:
            result.status = OrderStatus.FAILED
            result.error_msg = str(e)
            return result

        if self.dry_run:
            result.status = OrderStatus.DRY_RUN
            result.order_id = f"dry_{int(time.time() * 1000)}"
            logger.info(
                "order_dry_run",
                extra={"token_id": token_id, "side": side, "price": price, "size": size},
            )
            return result

        try:
            from py_clob_client.clob_types import OrderArgs, OrderType, PartialCreateOrderOptions

            start = time.monotonic()
            signed = await asyncio.to_thread(
                self._client.create_order,
                OrderArgs(token_id=token_id, price=price, size=size, side=side),
                PartialCreateOrderOptions(tick_size=tick_size, neg_risk=neg_risk),
            )
            resp = await asyncio.to_thread(self._client.post_order, signed, OrderType.FOK)
            result.latency_ms = (time.monotonic() - start) * 1000
            self._apply_response(result, resp)
        except Exception as e:
            result.status = OrderStatus.FAILED
            result.error_msg = str(e)
            logger.error(
                "order_failed",
                extra={"token_id": token_id, "price": price, "size": size, "error": str(e)},
                exc_info=True,
            )
            return result

        logger.info(
            "order_placed",
            extra={
                "order_id": result.order_id,
                "status": result.status.value,
                "token_id": token_id,
                "side": side,
                "price": price,
                "size": size,
                "latency_ms": round(result.latency_ms, 1),
            },
        )
        return result

    async def get_collateral_balance(self) -> float:
        """USDC the venue sees for this wallet. 0.0 in dry-run mode or on error."""
        if self.dry_run:
            return 0.0

        try:
            await self.initialize()

            from py_clob_client.clob_types import AssetType, BalanceAllowanceParams

            resp = await asyncio.to_thread(
                self._client.get_balance_allowance,
                BalanceAllowanceParams(asset_type=AssetType.COLLATERAL),
            )
            raw = resp.get("balance", "0") if isinstance(resp, dict) else "0"
            return float(raw or 0) / 10 ** COLLATERAL_DECIMALS
        except Exception:
            logger.error("get_balance_failed", exc_info=True)
            return 0.0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_response(result: OrderResult, resp: Any) -> None:
        if not isinstance(resp, dict):
            result.status = OrderStatus.FAILED
            result.error_msg = f"unexpected post_order response: {type(resp).__name__}"
            return
        result.order_id = resp.get("orderID", "")
        result.error_msg = resp.get("errorMsg", "")
        result.transaction_hashes = resp.get("transactionsHashes") or []
        if resp.get("success"):
            result.status = ExecutionEngine._map_status(resp.get("status", ""))
        else:
            result.status = OrderStatus.REJECTED

    @staticmethod
    def _map_status(status_str: str) -> OrderStatus:
        return _VENUE_STATUS.get(status_str, OrderStatus.SUBMITTED)

    @property
    def order_log(self) -> list[OrderResult]:
        return list(self._order_log)

    @property
    def is_live(self) -> bool:
        return not self.dry_run and self._initialized

    async def close(self) -> None:
        logger.info("execution_engine_closed", extra={"orders": len(self._order_log)})
