"""Ledger import pipeline: load → resolve columns → process rows → reconcile."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from ledger_doctor.columns import ColumnMap, resolve_columns
from ledger_doctor.config import ImportConfig
from ledger_doctor.contracts import build_payload, build_run_summary
from ledger_doctor.exceptions import ConfigurationError, ReconcileError
from ledger_doctor.loader import load_ledger
from ledger_doctor.reconcile import ReconcileResult, Reconciler
from ledger_doctor.rows import RowProcessingResult, process_rows
from ledger_doctor.store.base import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class PreparedImport:
    path: Path
    loaded: dict
    columns: ColumnMap
    processed: RowProcessingResult

    @property
    def warnings(self) -> list[str]:
        return list(self.loaded["warnings"]) + list(self.processed.warnings)


def prepare_import(path: "str | Path", config: Optional[ImportConfig] = None) -> PreparedImport:
    """Parse the whole file without touching any store.

    Loader and schema errors propagate unchanged.
    """
    config = config or ImportConfig()
    path = Path(path)
    loaded = load_ledger(path, sheet_name=config.sheet_name)
    columns = resolve_columns(loaded["header"])
    unresolved = columns.missing
    if unresolved:
        logger.info("Optional columns not found: %s", ", ".join(unresolved))
    processed = process_rows(loaded["rows"], columns, decimal_separator=config.decimal_separator)
    return PreparedImport(path=path, loaded=loaded, columns=columns, processed=processed)


def build_import_summary(
    prepared: PreparedImport,
    reconcile_result: ReconcileResult,
    *,
    status: str,
    dry_run: bool,
    warnings: list[str],
) -> dict[str, Any]:
    loaded = prepared.loaded
    rows = prepared.processed.to_dict()
    counters = reconcile_result.to_dict()
    return build_payload(
        "ledger_doctor.import_summary",
        input_file=str(prepared.path),
        dry_run=dry_run,
        source={
            "detected_format": loaded["detected_format"],
            "detected_encoding": loaded["detected_encoding"],
            "delimiter": loaded["delimiter"],
            "sheet_name": loaded["sheet_name"],
            "sheet_names": loaded["sheet_names"],
            "original_rows": loaded["original_rows"],
            "original_columns": loaded["original_columns"],
        },
        columns=prepared.columns.to_dict(),
        rows=rows,
        reconcile=counters,
        run_summary=build_run_summary(
            tool="ledger-doctor",
            command="import",
            input_path=prepared.path,
            status=status,
            metrics={
                "candidates": rows["candidates"],
                "duplicate_codes": len(rows["duplicate_codes"]),
                "defaulted_values": rows["defaulted_values"],
                "records_processed": counters["records_processed"],
                "customers_created": counters["customers_created"],
                "customers_updated": counters["customers_updated"],
            },
            warnings=warnings,
        ),
    )


def reconcile_import(
    prepared: PreparedImport,
    store: LedgerStore,
    config: Optional[ImportConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, Any]:
    """Write a prepared import to ``store`` and return its ``import_summary`` payload.

    A reconcile failure does not raise: the summary gets ``status="failed"``
    and the counters of the batches that did land.
    """
    config = config or ImportConfig()
    warnings = prepared.warnings
    status = "ok"
    reconciler = Reconciler(
        store,
        batch_size=config.batch_size,
        pause_seconds=config.batch_pause_seconds,
        sleep=sleep,
    )
    try:
        result = reconciler.reconcile(prepared.processed.candidates)
    except ReconcileError as exc:
        result = exc.result
        status = "failed"
        warnings.append(str(exc))
    return build_import_summary(prepared, result, status=status, dry_run=False, warnings=warnings)


def import_ledger(
    path: "str | Path",
    store: Optional[LedgerStore],
    config: Optional[ImportConfig] = None,
    dry_run: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, Any]:
    """Import one ledger export and return an ``import_summary`` payload."""
    config = config or ImportConfig()
    prepared = prepare_import(path, config)

    if dry_run:
        logger.info("Dry run: %d candidates parsed, nothing written", len(prepared.processed.candidates))
        return build_import_summary(
            prepared, ReconcileResult(), status="dry_run", dry_run=True, warnings=prepared.warnings
        )
    if store is None:
        raise ConfigurationError("A store is required unless dry_run=True")
    return reconcile_import(prepared, store, config, sleep=sleep)
