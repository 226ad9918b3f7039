"""Turn raw ledger rows into one import candidate per customer code."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from ledger_doctor.columns import ColumnMap
from ledger_doctor.models import BalanceRecord, Customer, ImportCandidate
from ledger_doctor.normalization import normalise_date, normalise_number, normalise_text

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("name", "sector_code", "group_code", "region_code", "payment_term")
AMOUNT_FIELDS = ("past_due_balance", "not_due_balance")
DATE_FIELDS = ("past_due_date", "not_due_date", "reference_date")

# Header is spreadsheet row 1, so data row 0 is row 2.
FIRST_DATA_ROW = 2


@dataclass
class RowProcessingResult:
    candidates: dict[str, ImportCandidate] = field(default_factory=dict)
    total_rows: int = 0
    blank_code_rows: int = 0
    duplicate_codes: list[str] = field(default_factory=list)
    defaulted_values: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "candidates": len(self.candidates),
            "blank_code_rows": self.blank_code_rows,
            "duplicate_codes": list(self.duplicate_codes),
            "defaulted_values": self.defaulted_values,
        }


def _cell(row: Sequence[Any], idx: int | None) -> Any:
    if idx is None or idx >= len(row):
        return None
    return row[idx]


class _RowReader:
    def __init__(self, row: Sequence[Any], row_number: int, columns: ColumnMap,
                 decimal_separator: str | None, result: RowProcessingResult) -> None:
        self.row = row
        self.row_number = row_number
        self.columns = columns
        self.decimal_separator = decimal_separator
        self.result = result

    def raw(self, name: str) -> Any:
        return _cell(self.row, self.columns.get(name))

    def _defaulted(self, name: str, reason: str) -> None:
        message = f"Row {self.row_number}, {name}: {reason}"
        logger.warning(message)
        self.result.defaulted_values += 1
        self.result.warnings.append(message)

    def text(self, name: str) -> str | None:
        return normalise_text(self.raw(name))

    def number(self, name: str) -> float:
        value, defaulted, reason = normalise_number(self.raw(name), self.decimal_separator)
        if defaulted:
            self._defaulted(name, reason)
        return value

    def date(self, name: str):
        value, defaulted, reason = normalise_date(self.raw(name))
        if defaulted:
            self._defaulted(name, reason)
        return value


def process_rows(
    rows: Sequence[Sequence[Any]],
    columns: ColumnMap,
    decimal_separator: str | None = None,
) -> RowProcessingResult:
    """Parse every data row (header excluded) before anything is written."""
    result = RowProcessingResult(total_rows=len(rows))

    for offset, row in enumerate(rows):
        row_number = offset + FIRST_DATA_ROW
        reader = _RowReader(row, row_number, columns, decimal_separator, result)

        code = reader.text("code")
        if code is None:
            result.blank_code_rows += 1
            continue

        if code in result.candidates:
            first = result.candidates[code].row_number
            message = (
                f"Row {row_number}: customer code {code!r} already seen on row {first}; "
                "keeping the first occurrence"
            )
            logger.warning(message)
            result.duplicate_codes.append(code)
            result.warnings.append(message)
            continue

        customer = Customer(code=code, **{name: reader.text(name) for name in TEXT_FIELDS})

        amounts = {name: reader.number(name) for name in AMOUNT_FIELDS}
        dates = {name: reader.date(name) for name in DATE_FIELDS}
        valor = int(reader.number("valor"))

        if reader.text("total_balance") is None:
            total = amounts["past_due_balance"] + amounts["not_due_balance"]
        else:
            total = reader.number("total_balance")

        balance = BalanceRecord(valor=valor, total_balance=total, **amounts, **dates)
        result.candidates[code] = ImportCandidate(customer=customer, balance=balance, row_number=row_number)

    logger.info(
        "Processed %d rows: %d candidates, %d blank codes, %d duplicates, %d defaulted values",
        result.total_rows,
        len(result.candidates),
        result.blank_code_rows,
        len(result.duplicate_codes),
        result.defaulted_values,
    )
    return result
