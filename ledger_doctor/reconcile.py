"""Batch reconciliation of import candidates against a ledger store.

Customers are upserted on ``code`` and balances on ``customer_id``, so running
the same import twice leaves the store unchanged apart from ``updated_at``.
Batches are not transactional: a failed batch stops the run and keeps whatever
earlier batches wrote.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence

from ledger_doctor.exceptions import ReconcileError, StoreError
from ledger_doctor.models import BALANCES_TABLE, CUSTOMERS_TABLE, ImportCandidate
from ledger_doctor.store.base import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    customers_created: int = 0
    customers_updated: int = 0
    balances_created: int = 0
    balances_updated: int = 0
    records_processed: int = 0
    batches_completed: int = 0
    batches_total: int = 0
    unresolved_customers: int = 0
    failed: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "customers_created": self.customers_created,
            "customers_updated": self.customers_updated,
            "balances_created": self.balances_created,
            "balances_updated": self.balances_updated,
            "records_processed": self.records_processed,
            "batches_completed": self.batches_completed,
            "batches_total": self.batches_total,
            "unresolved_customers": self.unresolved_customers,
            "failed": self.failed,
            "error": self.error,
        }


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class Reconciler:
    def __init__(
        self,
        store: LedgerStore,
        batch_size: int = 100,
        pause_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.store = store
        self.batch_size = batch_size
        self.pause_seconds = pause_seconds
        self.sleep = sleep
        self.clock = clock

    def reconcile(
        self,
        candidates: Mapping[str, ImportCandidate] | Iterable[ImportCandidate],
    ) -> ReconcileResult:
        """Write every candidate; raises ``ReconcileError`` carrying partial counts."""
        if isinstance(candidates, Mapping):
            items = list(candidates.values())
        else:
            items = list(candidates)

        result = ReconcileResult()
        batches = list(chunked(items, self.batch_size))
        result.batches_total = len(batches)

        for number, batch in enumerate(batches, start=1):
            try:
                self._reconcile_batch(batch, result)
            except StoreError as exc:
                result.failed = True
                result.error = f"Batch {number}/{len(batches)} failed: {exc}"
                logger.error(result.error)
                raise ReconcileError(result.error, result) from exc

            result.batches_completed += 1
            logger.info(
                "Batch %d/%d done: %d records processed so far",
                number,
                len(batches),
                result.records_processed,
            )
            if number < len(batches) and self.pause_seconds > 0:
                self.sleep(self.pause_seconds)

        return result

    def _reconcile_batch(self, batch: Sequence[ImportCandidate], result: ReconcileResult) -> None:
        codes = [candidate.customer.code for candidate in batch]
        stamp = self.clock()

        existing = self.store.select(CUSTOMERS_TABLE, {"code": codes}, columns="id,code")
        existing_codes = {str(row["code"]) for row in existing}

        customer_rows = []
        for candidate in batch:
            row = candidate.customer.to_row()
            row.pop("id", None)
            row["updated_at"] = stamp
            customer_rows.append(row)
        returned = self.store.upsert(CUSTOMERS_TABLE, customer_rows, "code")

        created = sum(1 for code in codes if code not in existing_codes)
        result.customers_created += created
        result.customers_updated += len(codes) - created

        id_map = {str(row["code"]): row["id"] for row in returned if row.get("id") is not None}
        if any(code not in id_map for code in codes):
            refetched = self.store.select(CUSTOMERS_TABLE, {"code": codes}, columns="id,code")
            id_map.update({str(row["code"]): row["id"] for row in refetched})

        balance_rows = []
        for candidate in batch:
            customer_id = id_map.get(candidate.customer.code)
            if customer_id is None:
                logger.warning(
                    "No customer id for code %r (row %d); balance skipped",
                    candidate.customer.code,
                    candidate.row_number,
                )
                result.unresolved_customers += 1
                continue
            candidate.customer.id = customer_id
            candidate.balance.customer_id = customer_id
            row = candidate.balance.to_row()
            row.pop("id", None)
            row["updated_at"] = stamp
            balance_rows.append(row)

        if not balance_rows:
            return

        ids = [row["customer_id"] for row in balance_rows]
        existing_balances = self.store.select(BALANCES_TABLE, {"customer_id": ids}, columns="customer_id")
        existing_ids = {row["customer_id"] for row in existing_balances}

        self.store.upsert(BALANCES_TABLE, balance_rows, "customer_id")

        created = sum(1 for cid in ids if cid not in existing_ids)
        result.balances_created += created
        result.balances_updated += len(ids) - created
        result.records_processed += len(ids)
