"""Order book value types.

A snapshot is an immutable view of one token's book at fetch time. Asks are
always held in ascending price order so that walking them front to back
consumes the cheapest liquidity first.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class PriceLevel(BaseModel):
    """A single (price, size) rung of the ladder."""

    model_config = ConfigDict(frozen=True)

    price: float = Field(..., gt=0, description="Price per share (0-1).")
    size: float = Field(..., ge=0, description="Shares available at this price.")

    @property
    def notional(self) -> float:
        return self.price * self.size


class OrderBookSnapshot(BaseModel):
    """Asks (ascending) and bids (descending) for one token."""

    model_config = ConfigDict(frozen=True)

    token_id: str = Field(default="", description="Token the book belongs to.")
    asks: tuple[PriceLevel, ...] = Field(default_factory=tuple)
    bids: tuple[PriceLevel, ...] = Field(default_factory=tuple)
    tick_size: Optional[float] = Field(default=None, description="Minimum price increment.")
    min_order_size: Optional[float] = Field(default=None, description="Venue minimum shares per order.")
    neg_risk: bool = Field(default=False, description="True for negative-risk markets.")

    @classmethod
    def from_levels(
        cls,
        asks: list[tuple[float, float]],
        bids: list[tuple[float, float]] | None = None,
        **kwargs: Any,
    ) -> OrderBookSnapshot:
        """Build a snapshot from (price, size) pairs in any order."""
        return cls(
            asks=tuple(sorted(
                (PriceLevel(price=p, size=s) for p, s in asks),
                key=lambda lvl: lvl.price,
            )),
            bids=tuple(sorted(
                (PriceLevel(price=p, size=s) for p, s in bids or []),
                key=lambda lvl: lvl.price,
                reverse=True,
            )),
            **kwargs,
        )

    @classmethod
    def from_api(cls, raw: dict[str, Any], token_id: str = "") -> OrderBookSnapshot:
        """Parse a CLOB /book response.

        Prices and sizes arrive as strings in no guaranteed order. Rungs with
        unparseable or non-positive prices, or negative sizes, are dropped.
        """
        return cls.from_levels(
            _parse_side(raw.get("asks") or []),
            _parse_side(raw.get("bids") or []),
            token_id=token_id or str(raw.get("asset_id") or ""),
            tick_size=_optional_float(raw.get("tick_size")),
            min_order_size=_optional_float(raw.get("min_order_size")),
            neg_risk=bool(raw.get("neg_risk", False)),
        )

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        return self.asks[0] if self.asks else None

    def asks_up_to(self, max_price: float) -> list[PriceLevel]:
        """Ask rungs priced at or below max_price, cheapest first."""
        return [lvl for lvl in self.asks if lvl.price <= max_price]


def _parse_side(entries: list[dict[str, Any]]) -> list[tuple[float, float]]:
    levels: list[tuple[float, float]] = []
    for entry in entries:
        try:
            price = float(entry["price"])
            size = float(entry["size"])
        except (KeyError, TypeError, ValueError):
            logger.debug("orderbook_level_skipped", extra={"entry": str(entry)})
            continue
        if price <= 0 or size < 0:
            continue
        levels.append((price, size))
    return levels


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
