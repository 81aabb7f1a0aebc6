"""Durable set of in-flight redemption transactions.

Entries are keyed by condition ID: at most one pending redemption per market
condition. The whole set is rewritten after every mutation via a temporary
file in the same directory followed by an atomic rename, so a crash mid-write
leaves either the old file or the new one, never a torn one.

The file is assumed to have a single owner (one process at a time).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path

from pydantic import ValidationError

from polybracket.config import PENDING_REDEMPTIONS_PATH
from polybracket.settlement.models import PendingRedemption

logger = logging.getLogger(__name__)


class PendingRedemptionStore:
    """Pending redemptions persisted as a JSON array."""

    def __init__(self, path: str | os.PathLike = PENDING_REDEMPTIONS_PATH) -> None:
        self.path = Path(path)
        self._entries: dict[str, PendingRedemption] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PendingRedemption]:
        return iter(list(self._entries.values()))

    def __contains__(self, condition_id: object) -> bool:
        return condition_id in self._entries

    @property
    def condition_ids(self) -> set[str]:
        return set(self._entries)

    # ------------------------------------------------------------------
    # Mutations (each one persists)
    # ------------------------------------------------------------------

    def add(self, pending: PendingRedemption) -> bool:
        """Track a submitted transaction. Returns False if its condition is already pending."""
        if pending.condition_id in self._entries:
            logger.warning(
                "pending_redemption_duplicate",
                extra={
                    "condition_id": pending.condition_id,
                    "tx_hash": pending.transaction_hash,
                    "existing_tx_hash": self._entries[pending.condition_id].transaction_hash,
                },
            )
            return False
        self._entries[pending.condition_id] = pending
        self.save()
        return True

    def remove(self, condition_ids: Iterable[str]) -> int:
        """Drop entries by condition ID. Returns how many were removed."""
        removed = 0
        for condition_id in condition_ids:
            if self._entries.pop(condition_id, None) is not None:
                removed += 1
        if removed:
            self.save()
        return removed

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Replace in-memory state with the file's contents. Returns the entry count.

        A missing file means no pending redemptions. An unreadable file is
        logged and treated as empty. The older ``{"pending": [...]}`` layout
        is accepted.
        """
        self._entries = {}
        if not self.path.exists():
            return 0

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("pending_redemptions_load_failed", extra={"path": str(self.path)}, exc_info=True)
            return 0

        if isinstance(data, dict):
            data = data.get("pending") or []
        if not isinstance(data, list):
            logger.warning("pending_redemptions_bad_format", extra={"path": str(self.path)})
            return 0

        for raw in data:
            try:
                entry = PendingRedemption.model_validate(raw)
            except ValidationError:
                logger.warning("pending_redemption_invalid", extra={"entry": str(raw)[:200]})
                continue
            if entry.condition_id in self._entries:
                logger.warning("pending_redemption_duplicate", extra={"condition_id": entry.condition_id})
                continue
            self._entries[entry.condition_id] = entry

        logger.info(
            "pending_redemptions_loaded",
            extra={"count": len(self._entries), "path": str(self.path)},
        )
        return len(self._entries)

    def save(self) -> None:
        """Atomically rewrite the file with the current entries."""
        payload = json.dumps([entry.to_json() for entry in self._entries.values()], indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError:
            logger.error("pending_redemptions_save_failed", extra={"path": str(self.path)}, exc_info=True)
