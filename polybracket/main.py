"""Entry point for the trading and settlement service."""

from __future__ import annotations

import asyncio
import logging

from polybracket.config import setup_logging
from polybracket.context import build_context
from polybracket.scheduler import ServiceScheduler

logger = logging.getLogger(__name__)


async def _main() -> None:
    setup_logging()
    logger.info("service_starting")

    context = build_context()
    scheduler = ServiceScheduler(context)
    await scheduler.start()


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
