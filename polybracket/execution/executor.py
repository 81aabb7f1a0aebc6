"""Budget- and price-capped buying against an ask ladder.

Two entry points share the same ladder walk:

- ``simulate`` is a pure preview over a snapshot the caller already holds.
  Fractional shares are allowed, and nothing is submitted. The service's
  preview endpoint reaches it through ``preview``.
- ``execute`` fetches a fresh snapshot and submits one fill-or-kill order per
  affordable rung, in ascending price order, one at a time. It is a library
  entry point for an already-authenticated caller: the HTTP server does not
  expose it.

``execute`` does not re-validate against an earlier preview. The book may
have moved between the two calls, so the realized fill can differ from what
``simulate`` showed; the price cap and budget still bound it.

``shares_filled`` counts only rungs the venue reported as matched. A rung the
venue accepted without confirming the match (``delayed``) is kept in
``orders`` and excluded from the totals, but its notional is still reserved
from the budget because it may fill later.
"""

from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from polybracket.config import EXECUTION_DEFAULT_TICK_SIZE, EXECUTION_MIN_ORDER_VALUE
from polybracket.execution.engine import OrderResult
from polybracket.execution.orderbook import OrderBookSnapshot

logger = logging.getLogger(__name__)

# Absorbs float error when flooring budget / price (e.g. 4.2 / 0.42)
_FLOOR_EPSILON = 1e-9


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ExecutionRequest(BaseModel):
    """Caller's instruction to buy one token up to a price and budget."""

    token_id: str = Field(..., min_length=1, description="Token to buy.")
    max_price: float = Field(..., gt=0, lt=1, description="Highest price to pay per share.")
    max_budget: Optional[float] = Field(default=None, ge=0, description="USDC cap; None = unlimited.")
    days_to_expiry: float = Field(default=0.0, description="Used only for the apy figure.")


class ExecutionResult(BaseModel):
    """Outcome of a simulated or realized ladder walk."""

    shares_filled: float = 0.0
    total_cost: float = 0.0
    avg_price: float = 0.0
    apy: float = 0.0
    profit: float = 0.0
    success: bool = False
    orders: list[OrderResult] = Field(default_factory=list)
    error: str = ""


def summarize(
    shares: float,
    total_cost: float,
    days_to_expiry: float,
    **kwargs: Any,
) -> ExecutionResult:
    """Derive avg price, profit and apy for a fill of `shares` costing `total_cost`.

    Each share pays out 1.0 at resolution, so the yield per share is
    ``1 - avg_price``. apy is annualized simple yield in percent.
    """
    avg_price = total_cost / shares if shares > 0 else 0.0
    yield_per_share = 1.0 - avg_price
    profit = yield_per_share * shares
    if avg_price > 0 and days_to_expiry > 0:
        apy = (yield_per_share / avg_price) * (365.0 / days_to_expiry) * 100.0
    else:
        apy = 0.0
    return ExecutionResult(
        shares_filled=shares,
        total_cost=total_cost,
        avg_price=avg_price,
        apy=apy,
        profit=profit,
        success=shares > 0,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class OrderBookExecutor:
    """Walks ask ladders for previews and real purchases.

    Args:
        clob: Market data client exposing ``fetch_orderbook`` / ``fetch_tick_size``.
        engine: Order venue exposing ``submit_order``.
        min_order_value: Venue minimum notional per order (USDC).
        default_tick_size: Used when neither the book nor the API reports one.
    """

    def __init__(
        self,
        clob: Any,
        engine: Any,
        min_order_value: float = EXECUTION_MIN_ORDER_VALUE,
        default_tick_size: float = EXECUTION_DEFAULT_TICK_SIZE,
    ) -> None:
        self._clob = clob
        self._engine = engine
        self.min_order_value = min_order_value
        self.default_tick_size = default_tick_size

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    @staticmethod
    def simulate(
        snapshot: OrderBookSnapshot,
        max_price: float,
        max_budget: Optional[float] = None,
        days_to_expiry: float = 0.0,
    ) -> ExecutionResult:
        """Preview buying up to max_price, spending at most max_budget.

        Whole rungs are consumed while they fit the budget; the first rung
        that does not fit is bought fractionally with what remains, and the
        walk stops there.
        """
        shares = 0.0
        total_cost = 0.0

        for level in snapshot.asks_up_to(max_price):
            level_cost = level.notional
            if max_budget is not None and total_cost + level_cost > max_budget:
                remaining = max_budget - total_cost
                affordable = remaining / level.price
                if affordable > 0:
                    shares += affordable
                    total_cost += level.price * affordable
                break
            shares += level.size
            total_cost += level_cost

        return summarize(shares, total_cost, days_to_expiry)

    async def preview(
        self,
        token_id: str,
        max_price: float,
        max_budget: Optional[float] = None,
        days_to_expiry: float = 0.0,
    ) -> tuple[Optional[OrderBookSnapshot], ExecutionResult]:
        """Fetch a snapshot and simulate against it."""
        snapshot = await self.fetch_snapshot(token_id)
        if snapshot is None:
            return None, ExecutionResult(error="orderbook_unavailable")
        return snapshot, self.simulate(snapshot, max_price, max_budget, days_to_expiry)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        token_id: str,
        max_price: float,
        max_budget: Optional[float] = None,
        days_to_expiry: float = 0.0,
    ) -> ExecutionResult:
        """Buy up to max_price within max_budget, one order per ask rung.

        Per rung: price is rounded to the tick, size floored to whole shares
        and capped by the floored remaining budget. Rungs whose notional is
        below the venue minimum are skipped. A rung whose order fails is
        logged and skipped; the totals cover only matched orders.
        """
        request = ExecutionRequest(
            token_id=token_id,
            max_price=max_price,
            max_budget=max_budget,
            days_to_expiry=days_to_expiry,
        )

        snapshot = await self.fetch_snapshot(request.token_id)
        if snapshot is None:
            logger.warning("execute_no_orderbook", extra={"token_id": token_id})
            return ExecutionResult(error="orderbook_unavailable")

        best = snapshot.best_ask
        if best is None or best.price > request.max_price:
            logger.info(
                "execute_no_asks_under_cap",
                extra={
                    "token_id": token_id,
                    "best_ask": best.price if best else None,
                    "max_price": request.max_price,
                },
            )
            return ExecutionResult()

        tick = await self._resolve_tick_size(snapshot, request.token_id)
        tick_str = _format_tick(tick)
        remaining = request.max_budget

        shares = 0.0
        total_cost = 0.0
        orders: list[OrderResult] = []

        for level in snapshot.asks_up_to(request.max_price):
            if remaining is not None and remaining <= 0:
                break

            price = round_to_tick(level.price, tick)
            if price <= 0 or price > request.max_price:
                continue
            size = math.floor(level.size + _FLOOR_EPSILON)
            if remaining is not None:
                size = min(size, math.floor(remaining / price + _FLOOR_EPSILON))

            notional = price * size
            if size <= 0 or notional < self.min_order_value:
                logger.debug(
                    "level_skipped_below_minimum",
                    extra={"token_id": token_id, "price": price, "size": size},
                )
                continue
            if snapshot.min_order_size is not None and size < snapshot.min_order_size:
                logger.debug(
                    "level_skipped_below_min_size",
                    extra={"token_id": token_id, "price": price, "size": size},
                )
                continue

            result = await self._engine.submit_order(
                request.token_id,
                price,
                size,
                "BUY",
                tick_size=tick_str,
                neg_risk=snapshot.neg_risk,
            )
            orders.append(result)

            if not result.success:
                logger.warning(
                    "level_order_failed",
                    extra={
                        "token_id": token_id,
                        "price": price,
                        "size": size,
                        "status": result.status.value,
                        "error": result.error_msg,
                    },
                )
                continue
            if not result.filled:
                logger.warning(
                    "level_order_unconfirmed",
                    extra={
                        "token_id": token_id,
                        "price": price,
                        "size": size,
                        "order_id": result.order_id,
                        "status": result.status.value,
                    },
                )
                if remaining is not None:
                    remaining -= notional
                continue

            shares += size
            total_cost += notional
            if remaining is not None:
                remaining -= notional

        outcome = summarize(shares, total_cost, request.days_to_expiry, orders=orders)
        logger.info(
            "execution_complete",
            extra={
                "token_id": token_id,
                "shares_filled": outcome.shares_filled,
                "total_cost": outcome.total_cost,
                "avg_price": outcome.avg_price,
                "orders": len(orders),
                "success": outcome.success,
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def fetch_snapshot(self, token_id: str) -> Optional[OrderBookSnapshot]:
        raw = await self._clob.fetch_orderbook(token_id)
        if not raw:
            return None
        return OrderBookSnapshot.from_api(raw, token_id=token_id)

    async def _resolve_tick_size(self, snapshot: OrderBookSnapshot, token_id: str) -> float:
        if snapshot.tick_size:
            return snapshot.tick_size
        tick = await self._clob.fetch_tick_size(token_id)
        return tick or self.default_tick_size


def _tick_decimals(tick: float) -> int:
    exponent = Decimal(str(tick)).normalize().as_tuple().exponent
    return max(0, -int(exponent))


def _format_tick(tick: float) -> str:
    return f"{tick:.{_tick_decimals(tick)}f}"


def round_to_tick(price: float, tick: float) -> float:
    """Round price to the nearest multiple of tick."""
    steps = round(price / tick)
    return round(steps * tick, _tick_decimals(tick))
