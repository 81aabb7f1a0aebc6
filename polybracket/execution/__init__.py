"""Trade execution against the Polymarket CLOB.

Turns a priced opportunity into a fill: previews walk a snapshot of the ask
ladder without side effects; real executions re-fetch the book and submit one
fill-or-kill order per affordable rung, tolerating per-rung failures.

Modules:
    orderbook -- PriceLevel / OrderBookSnapshot value types
    engine    -- Order submission wrapping py-clob-client (DRY_RUN / LIVE)
    executor  -- Ladder walk for simulate() and execute()
"""

from polybracket.execution.engine import ExecutionEngine, OrderRequest, OrderResult, OrderStatus
from polybracket.execution.executor import ExecutionRequest, ExecutionResult, OrderBookExecutor
from polybracket.execution.orderbook import OrderBookSnapshot, PriceLevel

__all__ = [
    "ExecutionEngine",
    "ExecutionRequest",
    "ExecutionResult",
    "OrderBookExecutor",
    "OrderBookSnapshot",
    "OrderRequest",
    "OrderResult",
    "OrderStatus",
    "PriceLevel",
]
