"""Automatic redemption of resolved winning positions.

Each cycle (at most once per REDEMPTION_CHECK_INTERVAL):

1. Reconcile pending transactions: drop those with a receipt (confirmed or
   reverted), keep those not yet mined or whose receipt query failed.
2. If anything is still pending, stop. Only one batch of settlement
   transactions is in flight per wallet at a time.
3. Discover gaining positions from the Data API, skipping conditions that
   already have a pending transaction.
4. Keep those whose condition has a nonzero payout numerator on-chain.
5. Detect the collateral backing each one, build redeemPositions calldata,
   sign the Safe transaction hash with the owner key and relay it through
   the Safe with execTransaction.
6. Wait briefly, check each receipt once and persist the unmined ones.

Failures never escape a cycle. Anything not redeemed is rediscovered and
retried on a later cycle; reverted transactions are logged and not resubmitted.

Safe nonces are read once per wallet per batch and advanced locally after
each successful submission. This assumes no other process submits through
the same Safe concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from polybracket.config import (
    CTF_ADDRESS,
    NEG_RISK_ADAPTER_ADDRESS,
    REDEMPTION_CHECK_INTERVAL,
    REDEMPTION_GAS_LIMIT,
    RESOLUTION_QUERY_TIMEOUT,
    SETTLEMENT_WAIT_SECONDS,
    USDC_BRIDGED_ADDRESS,
    USDC_NATIVE_ADDRESS,
    WRAPPED_COLLATERAL_ADDRESS,
)
from polybracket.settlement.models import (
    Collateral,
    PendingRedemption,
    Position,
    RedemptionFailure,
    RedemptionOutcome,
)
from polybracket.settlement.safe import ZERO_BYTES32
from polybracket.settlement.store import PendingRedemptionStore

logger = logging.getLogger(__name__)

# Checked in this order; the first with a nonzero balance on either outcome wins
COLLATERAL_PREFERENCE = (
    Collateral("bridged_usdc", USDC_BRIDGED_ADDRESS, CTF_ADDRESS),
    Collateral("wrapped_collateral", WRAPPED_COLLATERAL_ADDRESS, NEG_RISK_ADAPTER_ADDRESS),
)
DEFAULT_COLLATERAL = Collateral("native_usdc", USDC_NATIVE_ADDRESS, CTF_ADDRESS)

_OUTCOME_INDEX_SETS = (1, 2)
_PAYOUT_INDICES = (0, 1)


class RedemptionManager:
    """Discovers, submits and tracks redemptions for one funder wallet.

    Args:
        ledger: On-chain access (see ``polybracket.settlement.ledger.Ledger``).
        data_client: Portfolio source exposing ``fetch_redeemable_positions``.
        store: Durable pending set. Loaded in full on construction.
        funder_address: Wallet whose positions are redeemed.
    """

    def __init__(
        self,
        ledger: Any,
        data_client: Any,
        store: PendingRedemptionStore,
        funder_address: str,
        *,
        check_interval: float = REDEMPTION_CHECK_INTERVAL,
        resolution_timeout: float = RESOLUTION_QUERY_TIMEOUT,
        settlement_wait: float = SETTLEMENT_WAIT_SECONDS,
        gas_limit: int = REDEMPTION_GAS_LIMIT,
    ) -> None:
        self._ledger = ledger
        self._data = data_client
        self._store = store
        self.funder_address = funder_address
        self.check_interval = check_interval
        self.resolution_timeout = resolution_timeout
        self.settlement_wait = settlement_wait
        self.gas_limit = gas_limit

        self._last_check: Optional[float] = None
        self.last_cycle_at: Optional[datetime] = None
        self.confirmed_count = 0
        self.reverted_count = 0

        self._store.load()

    @property
    def pending(self) -> list[PendingRedemption]:
        return list(self._store)

    def should_check(self) -> bool:
        """True (and starts a new throttle window) if the interval has elapsed."""
        now = time.monotonic()
        if self._last_check is not None and now - self._last_check < self.check_interval:
            return False
        self._last_check = now
        return True

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def check_and_redeem_positions(self) -> None:
        """Run one redemption cycle. A no-op inside the throttle window."""
        if not self.should_check():
            logger.debug("redemption_check_throttled")
            return

        self.last_cycle_at = datetime.now(timezone.utc)
        try:
            await self._reconcile_pending()

            if len(self._store) > 0:
                logger.info(
                    "redemption_skipped_pending",
                    extra={"pending": len(self._store)},
                )
                return

            candidates = await self._discover_candidates()
            if not candidates:
                logger.debug("redemption_no_candidates")
                return

            submitted = await self._submit_batch(candidates)
            if not submitted:
                return

            await asyncio.sleep(self.settlement_wait)
            await self._settle(submitted)

        except Exception:
            logger.error("redemption_cycle_error", exc_info=True)

    async def check_receipt(self, tx_hash: str) -> RedemptionOutcome:
        """Classify a transaction by its receipt."""
        try:
            receipt = await self._ledger.get_receipt(tx_hash)
        except Exception:
            logger.warning(
                "receipt_query_failed",
                extra={"tx_hash": tx_hash, "failure": RedemptionFailure.TRANSIENT_NETWORK.value},
                exc_info=True,
            )
            return RedemptionOutcome.QUERY_FAILED

        if receipt is None:
            return RedemptionOutcome.STILL_PENDING
        if receipt.get("status") == 1:
            return RedemptionOutcome.CONFIRMED
        return RedemptionOutcome.REVERTED

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _reconcile_pending(self) -> None:
        if len(self._store) == 0:
            return

        finished: list[str] = []
        for pending in self._store:
            outcome = await self.check_receipt(pending.transaction_hash)
            if outcome is RedemptionOutcome.CONFIRMED:
                self._record_confirmed(pending.transaction_hash, pending.position)
                finished.append(pending.condition_id)
            elif outcome is RedemptionOutcome.REVERTED:
                self._record_reverted(pending.transaction_hash, pending.position)
                finished.append(pending.condition_id)
            else:
                logger.info(
                    "pending_redemption_unsettled",
                    extra={"tx_hash": pending.transaction_hash, "outcome": outcome.value},
                )

        self._store.remove(finished)

    async def _discover_candidates(self) -> list[Position]:
        raw_positions = await self._data.fetch_redeemable_positions(self.funder_address)

        candidates: list[Position] = []
        seen: set[str] = set()
        for raw in raw_positions:
            try:
                position = Position.from_api(raw)
            except (ValidationError, TypeError, ValueError):
                logger.debug("position_parse_failed", extra={"raw": str(raw)[:200]})
                continue
            if not position.condition_id or not position.proxy_wallet_address:
                continue
            if not position.has_gain:
                continue
            if position.condition_id in self._store or position.condition_id in seen:
                continue
            seen.add(position.condition_id)
            candidates.append(position)

        logger.info("redemption_candidates", extra={"count": len(candidates)})
        return candidates

    async def is_resolved(self, condition_id: str) -> bool:
        """True if either payout numerator is nonzero. Timeouts and errors count as unresolved."""
        numerators: list[int] = []
        try:
            for index in _PAYOUT_INDICES:
                numerators.append(await asyncio.wait_for(
                    self._ledger.payout_numerator(condition_id, index),
                    timeout=self.resolution_timeout,
                ))
        except asyncio.TimeoutError:
            logger.debug(
                "resolution_check_failed",
                extra={"condition_id": condition_id, "failure": RedemptionFailure.RESOLUTION_TIMEOUT.value},
            )
            return False
        except Exception:
            logger.debug(
                "resolution_check_failed",
                extra={"condition_id": condition_id, "failure": RedemptionFailure.TRANSIENT_NETWORK.value},
                exc_info=True,
            )
            return False
        return any(n > 0 for n in numerators)

    async def detect_collateral(self, position: Position) -> Collateral:
        """Pick the collateral whose position tokens the wallet actually holds."""
        collection_ids = [
            await self._ledger.collection_id(ZERO_BYTES32, position.condition_id, index_set)
            for index_set in _OUTCOME_INDEX_SETS
        ]
        for collateral in COLLATERAL_PREFERENCE:
            for collection_id in collection_ids:
                position_id = await self._ledger.position_id(collateral.address, collection_id)
                balance = await self._ledger.balance_of(position.proxy_wallet_address, position_id)
                if balance > 0:
                    return collateral
        return DEFAULT_COLLATERAL

    async def _submit_batch(self, candidates: list[Position]) -> list[tuple[str, Position]]:
        nonces: dict[str, int] = {}
        submitted: list[tuple[str, Position]] = []

        for position in candidates:
            if not await self.is_resolved(position.condition_id):
                logger.debug("position_not_resolved", extra={"condition_id": position.condition_id})
                continue

            wallet_key = position.proxy_wallet_address.lower()
            if wallet_key not in nonces:
                try:
                    nonces[wallet_key] = await self._ledger.safe_nonce(position.proxy_wallet_address)
                except Exception:
                    logger.warning(
                        "safe_nonce_failed",
                        extra={
                            "wallet": position.proxy_wallet_address,
                            "failure": RedemptionFailure.TRANSIENT_NETWORK.value,
                        },
                        exc_info=True,
                    )
                    continue

            tx_hash = await self._redeem_position(position, nonces[wallet_key])
            if tx_hash is None:
                continue
            nonces[wallet_key] += 1
            submitted.append((tx_hash, position))

        return submitted

    async def _redeem_position(self, position: Position, nonce: int) -> Optional[str]:
        """Build, sign and relay one redemption. Returns the tx hash or None."""
        wallet = position.proxy_wallet_address
        try:
            collateral = await self.detect_collateral(position)
            calldata = self._ledger.encode_redeem(collateral.address, position.condition_id)
            safe_hash = await self._ledger.safe_transaction_hash(
                wallet, collateral.redeem_target, calldata, nonce)
            signature = self._ledger.sign_safe_hash(safe_hash)
            fees = await self._ledger.fee_params()
            tx_hash = await self._ledger.exec_transaction(
                wallet, collateral.redeem_target, calldata, signature, fees, self.gas_limit)
        except Exception:
            logger.error(
                "redemption_submit_failed",
                extra={
                    "condition_id": position.condition_id,
                    "title": position.title,
                    "nonce": nonce,
                    "failure": RedemptionFailure.SUBMISSION_FAILED.value,
                },
                exc_info=True,
            )
            return None

        logger.info(
            "redemption_submitted",
            extra={
                "tx_hash": tx_hash,
                "condition_id": position.condition_id,
                "title": position.title,
                "collateral": collateral.name,
                "nonce": nonce,
                "max_fee_per_gas": fees.max_fee_per_gas,
                "max_priority_fee_per_gas": fees.max_priority_fee_per_gas,
            },
        )
        return tx_hash

    async def _settle(self, submitted: list[tuple[str, Position]]) -> None:
        for tx_hash, position in submitted:
            outcome = await self.check_receipt(tx_hash)
            if outcome is RedemptionOutcome.CONFIRMED:
                self._record_confirmed(tx_hash, position)
            elif outcome is RedemptionOutcome.REVERTED:
                self._record_reverted(tx_hash, position)
            else:
                logger.info(
                    "redemption_pending",
                    extra={"tx_hash": tx_hash, "outcome": outcome.value},
                )
                self._store.add(PendingRedemption(
                    transaction_hash=tx_hash,
                    position=position,
                    submitted_at_epoch_ms=int(time.time() * 1000),
                ))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record_confirmed(self, tx_hash: str, position: Position) -> None:
        self.confirmed_count += 1
        logger.info(
            "redemption_confirmed",
            extra={
                "tx_hash": tx_hash,
                "condition_id": position.condition_id,
                "title": position.title,
                "value": position.current_value,
            },
        )

    def _record_reverted(self, tx_hash: str, position: Position) -> None:
        self.reverted_count += 1
        logger.warning(
            "redemption_reverted",
            extra={
                "tx_hash": tx_hash,
                "condition_id": position.condition_id,
                "title": position.title,
                "failure": RedemptionFailure.REVERTED.value,
            },
        )

    def status(self) -> dict[str, Any]:
        """Summary for the health endpoint."""
        return {
            "pending": len(self._store),
            "pending_tx_hashes": [p.transaction_hash for p in self._store],
            "pending_conditions": sorted(self._store.condition_ids),
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            "confirmed": self.confirmed_count,
            "reverted": self.reverted_count,
        }
