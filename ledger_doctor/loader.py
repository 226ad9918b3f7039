"""
loader.py: raw row loader for ledger exports

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods

Public API:
    result = load_ledger("path/to/export.xlsx")
    header = result["header"]
    rows   = result["rows"]

Result dict keys:
    header             first row, as a list of cell values
    rows               data rows (header excluded), lists of cell values
    detected_format    "csv", "xlsx", "ods", etc.
    detected_encoding  encoding name for text files; None for workbooks
    delimiter          delimiter char for text files; None otherwise
    sheet_name         sheet that was read for workbooks; None otherwise
    sheet_names        all sheets in the workbook; None otherwise
    original_rows      row count including header row
    original_columns   header width
    warnings           list of warning strings

Cells are never interpreted here: empty cells become None, numeric cells stay
numeric and date cells arrive as datetime objects.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from collections import Counter
from pathlib import Path
from typing import Any, Optional

import chardet
import pandas as pd

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS  = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm", ".xls"}
ODS_FORMATS   = {".ods"}
ALL_FORMATS   = TEXT_FORMATS | EXCEL_FORMATS | ODS_FORMATS


# ══════════════════════════════════════════════════════════════════════════════
# TEXT DECODING
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    return result.get("encoding") or "utf-8"


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Per line: UTF-8, then the detected encoding, then cp1254 (Turkish Windows
    exports), then latin-1. Null bytes are stripped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "cp1254", "latin-1"):
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    text = "\n".join(decoded_lines)
    return text.lstrip("\ufeff")


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    Each candidate is scored by column width and column-count consistency.
    ``csv.Sniffer`` is only consulted when no candidate splits the sample.
    Width wins over sniffing because Turkish exports use ';' with ',' inside
    every amount.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]

    best_delim: str | None = None
    best_score = float("-inf")
    for delim in (";", ",", "\t", "|"):
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if not rows:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        if mode_width == 1:
            continue
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if len(rows[0]) == mode_width:
            score += 1.0
        if score > best_score:
            best_score = score
            best_delim = delim

    if best_delim is not None:
        return best_delim

    sample = "\n".join(sample_lines[:25])
    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass
    return ","


# ══════════════════════════════════════════════════════════════════════════════
# CELL CLEANUP
# ══════════════════════════════════════════════════════════════════════════════

def _clean_cell(value: Any) -> Any:
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _is_blank_row(row: list[Any]) -> bool:
    return all(cell is None for cell in row)


def _build_result(
    raw_rows: list[list[Any]],
    detected_format: str,
    *,
    encoding: Optional[str] = None,
    delimiter: Optional[str] = None,
    sheet_name: Optional[str] = None,
    sheet_names: Optional[list[str]] = None,
    warnings: Optional[list[str]] = None,
) -> dict:
    rows = [[_clean_cell(cell) for cell in row] for row in raw_rows]
    while rows and _is_blank_row(rows[-1]):
        rows.pop()
    if not rows:
        raise ValueError("File has no header row")

    header = rows[0]
    while header and header[-1] is None:
        header.pop()
    if not header:
        raise ValueError("Header row is empty")

    return {
        "header":            header,
        "rows":              rows[1:],
        "detected_format":   detected_format,
        "detected_encoding": encoding,
        "delimiter":         delimiter,
        "sheet_name":        sheet_name,
        "sheet_names":       sheet_names,
        "original_rows":     len(rows),
        "original_columns":  len(header),
        "warnings":          list(warnings or []),
    }


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(path: Path, suffix: str) -> dict:
    raw = path.read_bytes()
    enc = _detect_encoding(raw)
    text = _read_text_safely(raw, enc)

    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    try:
        raw_rows = [list(row) for row in csv.reader(io.StringIO(text), delimiter=delimiter)]
    except csv.Error as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc

    return _build_result(raw_rows, suffix.lstrip("."), encoding=enc, delimiter=delimiter)


def _load_workbook(path: Path, suffix: str, sheet_name: Optional[str]) -> dict:
    """
    Load the first sheet of a workbook, or ``sheet_name`` when given.

    Other sheets are ignored with a warning.
    """
    engine = None
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd; run: pip install xlrd")
    elif suffix == ".ods":
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy; run: pip install odfpy")
        engine = "odf"

    try:
        with pd.ExcelFile(path, engine=engine) as xf:
            all_sheets = [str(name) for name in xf.sheet_names]
            if not all_sheets:
                raise ValueError("Workbook has no sheets")
            if sheet_name is not None and sheet_name not in all_sheets:
                raise ValueError(f"Sheet '{sheet_name}' not found. Available: {all_sheets}")
            chosen = sheet_name if sheet_name is not None else all_sheets[0]
            df = pd.read_excel(xf, sheet_name=chosen, header=None, dtype=object)
    except (ValueError, ImportError):
        raise
    except Exception as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc

    warnings: list[str] = []
    if len(all_sheets) > 1:
        others = [s for s in all_sheets if s != chosen]
        message = f"Multiple sheets found ({len(all_sheets)} total); used '{chosen}'. Ignored: {others}"
        logger.warning(message)
        warnings.append(message)

    raw_rows = df.astype(object).values.tolist()
    return _build_result(
        raw_rows,
        suffix.lstrip("."),
        sheet_name=chosen,
        sheet_names=all_sheets,
        warnings=warnings,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_ledger(path: "str | Path", sheet_name: Optional[str] = None) -> dict:
    """
    Read the raw rows of a ledger export.

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the format is unsupported, unreadable or empty.
        ImportError        if a required optional reader is missing.
    """
    path   = Path(path)
    suffix = path.suffix.lower()

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

    if suffix in TEXT_FORMATS:
        result = _load_text(path, suffix)
    else:
        result = _load_workbook(path, suffix, sheet_name)

    logger.info(
        "Loaded %s: %d data rows, %d columns",
        path.name,
        len(result["rows"]),
        result["original_columns"],
    )
    return result
