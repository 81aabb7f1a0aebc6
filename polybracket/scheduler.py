"""APScheduler-based job scheduler with a small aiohttp status server."""

from __future__ import annotations

import asyncio
import logging
import signal

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from polybracket.config import HEALTH_CHECK_PORT, REDEMPTION_JOB_INTERVAL
from polybracket.context import AppContext

logger = logging.getLogger(__name__)

# Defaults for the preview endpoint when query parameters are omitted
_PREVIEW_DEFAULT_MAX_PRICE = 1.0
_PREVIEW_DEFAULT_DAYS = 30.0


class ServiceScheduler:
    """Runs the redemption job on an interval and serves /health and previews."""

    def __init__(
        self,
        context: AppContext,
        redemption_interval: int = REDEMPTION_JOB_INTERVAL,
        health_port: int = HEALTH_CHECK_PORT,
    ) -> None:
        self._ctx = context
        self._scheduler = AsyncIOScheduler()
        self._redemption_interval = redemption_interval
        self._health_port = health_port
        self._shutdown_event = asyncio.Event()
        self._health_runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Register jobs, start the scheduler, and block until shutdown."""
        if self._ctx.redeemer is not None:
            # The redeemer throttles itself; this tick only needs to be frequent enough
            self._scheduler.add_job(
                self._job_redemption_check,
                "interval",
                seconds=self._redemption_interval,
                id="redemption_check",
                name="Redemption Check",
                max_instances=1,
                coalesce=True,
            )
            # Run once immediately on start
            await self._job_redemption_check()

        self._scheduler.start()
        logger.info(
            "scheduler_started",
            extra={"redemption_enabled": self._ctx.redeemer is not None},
        )

        await self._start_health_server()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

        # Block until shutdown
        await self._shutdown_event.wait()
        await self._stop()

    async def _stop(self) -> None:
        logger.info("scheduler_stopping")
        self._scheduler.shutdown(wait=False)

        if self._health_runner:
            await self._health_runner.cleanup()

        await self._ctx.close()
        logger.info("scheduler_stopped")

    def _signal_handler(self) -> None:
        logger.info("shutdown_signal_received")
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Job wrappers (catch exceptions so scheduler keeps running)
    # ------------------------------------------------------------------

    async def _job_redemption_check(self) -> None:
        try:
            await self._ctx.redeemer.check_and_redeem_positions()
        except Exception:
            logger.error("redemption_check_error", exc_info=True)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/orderbook/{token_id}/preview", self._preview_handler)
        return app

    async def _start_health_server(self) -> None:
        self._health_runner = web.AppRunner(self.build_app())
        await self._health_runner.setup()
        site = web.TCPSite(self._health_runner, "0.0.0.0", self._health_port)
        await site.start()
        logger.info("health_server_started", extra={"port": self._health_port})

    async def _health_handler(self, request: web.Request) -> web.Response:
        redeemer = self._ctx.redeemer
        return web.json_response({
            "status": "ok",
            "scheduler_running": self._scheduler.running,
            "execution_mode": "dry_run" if self._ctx.engine.dry_run else "live",
            "redemption": redeemer.status() if redeemer else {"enabled": False},
        })

    async def _preview_handler(self, request: web.Request) -> web.Response:
        token_id = request.match_info["token_id"]
        try:
            max_price = float(request.query.get("maxPrice", _PREVIEW_DEFAULT_MAX_PRICE))
            days = float(request.query.get("daysToExpiry", _PREVIEW_DEFAULT_DAYS))
            raw_budget = request.query.get("maxAmount")
            max_budget = float(raw_budget) if raw_budget else None
        except ValueError:
            return web.json_response({"error": "invalid query parameter"}, status=400)

        snapshot, preview = await self._ctx.executor.preview(token_id, max_price, max_budget, days)
        if snapshot is None:
            return web.json_response({"error": "Failed to fetch orderbook"}, status=500)

        return web.json_response({
            "orderbook": snapshot.model_dump(mode="json"),
            "preview": preview.model_dump(mode="json", exclude={"orders", "error", "success"}),
        })
