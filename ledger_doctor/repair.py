"""Re-parse stored balance amounts that an earlier import left as locale text."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ledger_doctor.models import BALANCES_TABLE
from ledger_doctor.normalization import normalise_number
from ledger_doctor.store.base import LedgerStore

logger = logging.getLogger(__name__)

AMOUNT_FIELDS = ("past_due_balance", "not_due_balance", "total_balance")


def _naive_float(value: Any) -> float:
    """What a plain float() read of the stored value gives; 0 when it cannot."""
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def repair_balances(store: LedgerStore, dry_run: bool = False) -> dict[str, Any]:
    """
    Fix every balance whose stored amounts are not already canonical numbers.

    A value counts as fixed when the stored form differs from its normalised
    float (text such as ``"16.612,48"``, or a different number). Running it a
    second time changes nothing.
    """
    rows = store.select(BALANCES_TABLE)
    corrected = {name: 0.0 for name in AMOUNT_FIELDS}
    details: list[dict[str, Any]] = []
    updates: list[dict[str, Any]] = []
    stamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat()

    for row in rows:
        changes: dict[str, dict[str, Any]] = {}
        fixed_row: dict[str, Any] = {"id": row["id"], "customer_id": row.get("customer_id")}
        for name in AMOUNT_FIELDS:
            raw = row.get(name)
            value, defaulted, reason = normalise_number(raw)
            fixed_row[name] = float(value)
            if defaulted:
                logger.warning("Balance %s, %s: %s", row["id"], name, reason)
            if isinstance(raw, (int, float)) and not isinstance(raw, bool) and float(raw) == float(value):
                continue
            if raw is None and value == 0:
                continue
            changes[name] = {"from": raw, "to": float(value)}
            corrected[name] += abs(float(value) - _naive_float(raw))

        if not changes:
            continue
        fixed_row["updated_at"] = stamp
        updates.append(fixed_row)
        details.append({"id": row["id"], "customer_id": row.get("customer_id"), "changes": changes})

    if updates and not dry_run:
        store.upsert(BALANCES_TABLE, updates, "id")

    logger.info("Checked %d balances, fixed %d", len(rows), len(updates))
    return {
        "checked": len(rows),
        "fixed": len(updates),
        "dry_run": dry_run,
        "amount_corrected": corrected,
        "details": details,
    }
