"""Service configuration loaded from environment variables."""

import logging
import os
import sys

from pythonjsonlogger import jsonlogger

# ---------------------------------------------------------------------------
# Polymarket API base URLs
# ---------------------------------------------------------------------------
CLOB_API_URL = os.environ.get("CLOB_API_URL", "https://clob.polymarket.com")
DATA_API_URL = os.environ.get("DATA_API_URL", "https://data-api.polymarket.com")
HTTP_TIMEOUT = 10.0              # httpx timeout in seconds

# ---------------------------------------------------------------------------
# Polygon / wallet
# ---------------------------------------------------------------------------
POLYGON_RPC_URL = os.environ.get("POLYGON_RPC_URL", "https://polygon-rpc.com")
RPC_TIMEOUT = float(os.environ.get("RPC_TIMEOUT", "15"))
PRIVATE_KEY = os.environ.get("POLYGON_PRIVATE_KEY", "")
FUNDER_ADDRESS = os.environ.get("POLYMARKET_FUNDER_ADDRESS", "")

# ---------------------------------------------------------------------------
# Contract addresses (Polygon mainnet)
# ---------------------------------------------------------------------------
CTF_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
NEG_RISK_ADAPTER_ADDRESS = "0xd91E80cF2E7be2e162c6513ceD06f1dD0dA35296"
USDC_BRIDGED_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
USDC_NATIVE_ADDRESS = "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"
WRAPPED_COLLATERAL_ADDRESS = "0x3A3BD7bb9528E159577F7C2e685CC81A765002E2"

# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------
EXECUTION_CHAIN_ID = 137
EXECUTION_SIGNATURE_TYPE = 2     # Browser-wallet proxy (funder holds the funds)
EXECUTION_DRY_RUN = os.environ.get("EXECUTION_DRY_RUN", "true").lower() == "true"
EXECUTION_MIN_ORDER_VALUE = float(os.environ.get("EXECUTION_MIN_ORDER_VALUE", "1.0"))
EXECUTION_DEFAULT_TICK_SIZE = 0.01
COLLATERAL_DECIMALS = 6

# ---------------------------------------------------------------------------
# Redemption
# ---------------------------------------------------------------------------
REDEMPTION_CHECK_INTERVAL = 300          # 5 minutes between full scans
REDEMPTION_JOB_INTERVAL = int(os.environ.get("REDEMPTION_JOB_INTERVAL", "60"))
RESOLUTION_QUERY_TIMEOUT = 5.0           # Seconds per payout numerator read
SETTLEMENT_WAIT_SECONDS = 10.0           # Sleep after a batch before checking receipts
REDEMPTION_GAS_LIMIT = 500_000
MIN_PRIORITY_FEE_GWEI = 42
PRIORITY_FEE_MULTIPLIER = 1.5
MAX_FEE_MULTIPLIER = 1.2
POSITIONS_FETCH_LIMIT = 100
PENDING_REDEMPTIONS_PATH = os.environ.get(
    "PENDING_REDEMPTIONS_PATH", os.path.join("data", "pending-redemptions.json")
)

# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------
HEALTH_CHECK_PORT = int(os.environ.get("HEALTH_CHECK_PORT", "8080"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def setup_logging() -> None:
    """Configure structured JSON logging."""
    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(LOG_LEVEL)

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
