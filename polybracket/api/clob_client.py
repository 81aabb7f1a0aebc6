"""Client for the public Polymarket CLOB API (orderbook, tick size)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from polybracket.config import CLOB_API_URL, HTTP_TIMEOUT

logger = logging.getLogger(__name__)


class ClobClient:
    """Async client for CLOB market data endpoints (L0 / public)."""

    def __init__(self, base_url: str = CLOB_API_URL, timeout: float = HTTP_TIMEOUT) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Orderbook
    # ------------------------------------------------------------------

    async def fetch_orderbook(self, token_id: str) -> dict[str, Any] | None:
        """GET /book for a single token.

        Returns the raw book ({"asks": [{"price": "0.4", "size": "10"}, ...],
        "bids": [...], "tick_size": "0.01", ...}) or None when unavailable.
        """
        try:
            resp = await self._client.get("/book", params={"token_id": token_id})
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return None
            logger.warning("fetch_orderbook_error", extra={"token_id": token_id}, exc_info=True)
            return None
        except Exception:
            logger.warning("fetch_orderbook_error", extra={"token_id": token_id}, exc_info=True)
            return None

    async def fetch_tick_size(self, token_id: str) -> float | None:
        """GET /tick-size.  Returns the minimum price increment or None."""
        try:
            resp = await self._client.get("/tick-size", params={"token_id": token_id})
            resp.raise_for_status()
            value = resp.json().get("minimum_tick_size")
            return float(value) if value is not None else None
        except Exception:
            logger.warning("fetch_tick_size_error", extra={"token_id": token_id}, exc_info=True)
            return None
