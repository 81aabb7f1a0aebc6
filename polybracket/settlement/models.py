"""Settlement data model.

Field names are snake_case in Python and camelCase on disk, matching the
persisted pending-redemption schema. Files written by the earlier service
used ``txHash`` / ``timestamp`` and the Data API's ``proxyWallet`` /
``negativeRisk``; those keys are still read.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

_LEGACY_POSITION_KEYS = {
    "proxyWallet": "proxyWalletAddress",
    "negativeRisk": "isNegativeRisk",
}
_LEGACY_PENDING_KEYS = {
    "txHash": "transactionHash",
    "timestamp": "submittedAtEpochMs",
}


def _rename_legacy(data: Any, renames: dict[str, str]) -> Any:
    if not isinstance(data, dict):
        return data
    data = dict(data)
    for old, new in renames.items():
        if old in data and new not in data:
            data[new] = data.pop(old)
    return data


class Position(BaseModel):
    """A redeemable holding reported by the Data API. Never mutated locally."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    condition_id: str = Field(..., description="Market condition ID (0x-prefixed bytes32).")
    proxy_wallet_address: str = Field(..., description="Smart-contract wallet holding the tokens.")
    size: float = Field(default=0.0)
    current_value: float = Field(default=0.0)
    initial_value: float = Field(default=0.0)
    cash_pnl: float = Field(default=0.0)
    title: str = Field(default="")
    outcome: str = Field(default="")
    is_negative_risk: bool = Field(default=False)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        return _rename_legacy(data, _LEGACY_POSITION_KEYS)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Position:
        """Build from a Data API /positions entry."""
        return cls(
            condition_id=raw.get("conditionId") or "",
            proxy_wallet_address=raw.get("proxyWallet") or "",
            size=float(raw.get("size") or 0),
            current_value=float(raw.get("currentValue") or 0),
            initial_value=float(raw.get("initialValue") or 0),
            cash_pnl=float(raw.get("cashPnl") or 0),
            title=raw.get("title") or "",
            outcome=raw.get("outcome") or "",
            is_negative_risk=bool(raw.get("negativeRisk", False)),
        )

    @property
    def has_gain(self) -> bool:
        """Positive realized gain and worth more than was paid."""
        return self.cash_pnl > 0 and self.current_value > self.initial_value


class PendingRedemption(BaseModel):
    """A submitted redemption transaction whose receipt has not been seen."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    transaction_hash: str
    position: Position
    submitted_at_epoch_ms: int

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        return _rename_legacy(data, _LEGACY_PENDING_KEYS)

    @property
    def condition_id(self) -> str:
        return self.position.condition_id

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RedemptionOutcome(str, Enum):
    """Result of one receipt check."""

    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    STILL_PENDING = "still_pending"
    QUERY_FAILED = "query_failed"


class RedemptionFailure(str, Enum):
    """Why a candidate did not produce a confirmed redemption this cycle."""

    TRANSIENT_NETWORK = "transient_network"
    RESOLUTION_TIMEOUT = "resolution_timeout"
    SUBMISSION_FAILED = "submission_failed"
    REVERTED = "reverted"


class Collateral(NamedTuple):
    """A collateral token and the contract that redeems positions backed by it."""

    name: str
    address: str
    redeem_target: str
