"""Application context: the clients and components shared by every job.

Built once at startup and passed by reference; torn down at process exit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from polybracket.api.clob_client import ClobClient
from polybracket.api.data_client import DataClient
from polybracket.config import (
    EXECUTION_DRY_RUN,
    FUNDER_ADDRESS,
    PENDING_REDEMPTIONS_PATH,
    PRIVATE_KEY,
)
from polybracket.execution.engine import ExecutionEngine
from polybracket.execution.executor import OrderBookExecutor
from polybracket.settlement.ledger import Ledger
from polybracket.settlement.redeemer import RedemptionManager
from polybracket.settlement.store import PendingRedemptionStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    clob: ClobClient
    data: DataClient
    engine: ExecutionEngine
    executor: OrderBookExecutor
    redeemer: Optional[RedemptionManager] = None

    async def close(self) -> None:
        await self.engine.close()
        await self.clob.close()
        await self.data.close()


def build_context(
    private_key: str = PRIVATE_KEY,
    funder_address: str = FUNDER_ADDRESS,
    dry_run: bool = EXECUTION_DRY_RUN,
    pending_path: str = PENDING_REDEMPTIONS_PATH,
) -> AppContext:
    """Construct every component once. Redemption is disabled without a key and funder."""
    clob = ClobClient()
    data = DataClient()
    engine = ExecutionEngine(
        private_key=private_key,
        funder_address=funder_address,
        dry_run=dry_run,
    )
    executor = OrderBookExecutor(clob, engine)

    redeemer: Optional[RedemptionManager] = None
    if private_key and funder_address:
        redeemer = RedemptionManager(
            Ledger(private_key),
            data,
            PendingRedemptionStore(pending_path),
            funder_address,
        )
    else:
        logger.warning(
            "redemption_disabled",
            extra={"reason": "POLYGON_PRIVATE_KEY or POLYMARKET_FUNDER_ADDRESS not set"},
        )

    return AppContext(clob=clob, data=data, engine=engine, executor=executor, redeemer=redeemer)
