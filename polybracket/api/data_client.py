"""Client for the Polymarket Data API (wallet positions)."""

from __future__ import annotations

import logging

import httpx

from polybracket.config import DATA_API_URL, HTTP_TIMEOUT, POSITIONS_FETCH_LIMIT

logger = logging.getLogger(__name__)


class DataClient:
    """Fetch public position data from the Data API."""

    def __init__(self, base_url: str = DATA_API_URL, timeout: float = HTTP_TIMEOUT) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_positions(
        self,
        wallet: str,
        *,
        redeemable: bool | None = None,
        limit: int = POSITIONS_FETCH_LIMIT,
        offset: int = 0,
        size_threshold: float | None = None,
        sort_by: str = "CURRENT",
    ) -> list[dict]:
        """GET /positions: current positions for a wallet.

        Returns list of position objects with conditionId, size, avgPrice,
        currentValue, initialValue, cashPnl, title, outcome, proxyWallet,
        negativeRisk, etc.  Returns [] on any failure.
        """
        params: dict = {
            "user": wallet,
            "limit": limit,
            "offset": offset,
            "sortBy": sort_by,
            "sortDirection": "DESC",
        }
        if redeemable is not None:
            params["redeemable"] = "true" if redeemable else "false"
        if size_threshold is not None:
            params["sizeThreshold"] = size_threshold

        try:
            resp = await self._client.get("/positions", params=params)
            resp.raise_for_status()
            data = resp.json()
            return data if isinstance(data, list) else []
        except Exception:
            logger.warning(
                "fetch_positions_error",
                extra={"wallet": wallet},
                exc_info=True,
            )
            return []

    async def fetch_redeemable_positions(self, wallet: str) -> list[dict]:
        """Redeemable positions for a wallet, largest cash P&L first."""
        return await self.fetch_positions(wallet, redeemable=True, sort_by="CASHPNL")
