"""Settlement of resolved positions through the funder's Safe wallet.

Modules:
    models   -- Position, PendingRedemption and outcome enums
    safe     -- Safe ABIs, contract-style signatures, gas policy
    ledger   -- web3.py access to the conditional-token contract and Safe
    store    -- Durable pending-redemption set (atomic JSON file)
    redeemer -- RedemptionManager: discover, submit, reconcile
"""

from polybracket.settlement.models import (
    Collateral,
    PendingRedemption,
    Position,
    RedemptionFailure,
    RedemptionOutcome,
)
from polybracket.settlement.redeemer import RedemptionManager
from polybracket.settlement.store import PendingRedemptionStore

__all__ = [
    "Collateral",
    "PendingRedemption",
    "PendingRedemptionStore",
    "Position",
    "RedemptionFailure",
    "RedemptionManager",
    "RedemptionOutcome",
]
