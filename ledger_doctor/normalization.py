"""Cell value normalisation for ledger exports.

Every normaliser returns ``(value, defaulted, reason)``. ``defaulted`` is True
when the input could not be read and the value fell back to 0/None, so callers
can count and log those cells. The ``parse_*`` wrappers return only the value
and never raise.
"""

from __future__ import annotations

import math
import numbers
import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

import pandas as pd

# Dot thousands, comma decimal: 16.612,48
TR_NUMBER_RE = re.compile(r"-?\d{1,3}(\.\d{3})*(,\d+)?")
# Comma thousands, dot decimal: 16,612.48
EN_NUMBER_RE = re.compile(r"-?\d{1,3}(,\d{3})*(\.\d+)?")
# Bare comma decimal without grouping: 1234,56
COMMA_DECIMAL_RE = re.compile(r"-?\d+,\d+")

CURRENCY_DECORATION_RE = re.compile(r"(₺|€|£|\$|(?<![A-Za-z])(?:YTL|TRY|TL)(?![A-Za-z]))", re.IGNORECASE)
ACCOUNTING_NEGATIVE_RE = re.compile(r"^\((.+)\)$")
NUMBER_NULLS = {"", "-", "--", "n/a", "na", "none", "null", "nan"}

EXCEL_EPOCH = date(1899, 12, 31)
EXCEL_LEAP_BUG_SERIAL = 59
MAX_EXCEL_SERIAL = 2_958_465  # 9999-12-31

DOTTED_DATE_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
DIGITS_RE = re.compile(r"^\d+$")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _strip_decorations(text: str) -> str:
    text = text.replace("\u00a0", " ").replace("\u202f", " ")
    text = CURRENCY_DECORATION_RE.sub("", text)
    text = "".join(text.split())
    m = ACCOUNTING_NEGATIVE_RE.match(text)
    if m:
        text = "-" + m.group(1).lstrip("-")
    if text.endswith("-") and text[:-1] and text[0] != "-":
        # trailing minus as written by some ERP exports: 1.200,00-
        text = "-" + text[:-1]
    return text


def _float_or_none(text: str) -> float | None:
    try:
        result = float(text)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def _parse_declared(text: str, decimal_separator: str) -> float | None:
    grouping = "." if decimal_separator == "," else ","
    return _float_or_none(text.replace(grouping, "").replace(decimal_separator, "."))


def _parse_inferred(text: str) -> tuple[float | None, str]:
    if TR_NUMBER_RE.fullmatch(text):
        return _float_or_none(text.replace(".", "").replace(",", ".")), "dot-grouped / comma-decimal"
    if EN_NUMBER_RE.fullmatch(text):
        return _float_or_none(text.replace(",", "")), "comma-grouped / dot-decimal"
    if COMMA_DECIMAL_RE.fullmatch(text):
        return _float_or_none(text.replace(",", ".")), "comma-decimal"
    return _float_or_none(text), "plain"


def normalise_number(value: Any, decimal_separator: str | None = None) -> tuple[float, bool, str]:
    if isinstance(value, Decimal):
        value = float(value)
    if _is_number(value):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return 0, False, "Empty numeric cell read as 0"
        return value, False, ""
    if _is_missing(value):
        return 0, False, "Empty cell read as 0"

    raw = str(value).strip()
    if raw.lower() in NUMBER_NULLS:
        return 0, False, "Empty cell read as 0"

    text = _strip_decorations(raw)
    if decimal_separator in {",", "."}:
        result = _parse_declared(text, decimal_separator)
        shape = f"declared decimal separator {decimal_separator!r}"
    else:
        result, shape = _parse_inferred(text)

    if result is None:
        return 0, True, f"Unreadable number {raw!r} defaulted to 0"
    return result, False, f"Parsed as {shape}"


def parse_number(value: Any, decimal_separator: str | None = None) -> float:
    """Best-effort number parse; unreadable input yields 0."""
    return normalise_number(value, decimal_separator)[0]


def _serial_to_date(serial: float) -> date | None:
    if math.isnan(serial) or serial < 1 or serial > MAX_EXCEL_SERIAL:
        return None
    days = int(math.floor(serial))
    # Serial 60 is the phantom 1900-02-29 of the 1900 date system.
    if days > EXCEL_LEAP_BUG_SERIAL:
        days -= 1
    return EXCEL_EPOCH + timedelta(days=days)


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalise_date(value: Any) -> tuple[date | None, bool, str]:
    if _is_missing(value):
        return None, False, ""
    if isinstance(value, pd.Timestamp):
        return value.date(), False, ""
    if isinstance(value, datetime):
        return value.date(), False, ""
    if isinstance(value, date):
        return value, False, ""
    if _is_number(value):
        result = _serial_to_date(float(value))
        if result is None:
            return None, True, f"Serial {value!r} outside the spreadsheet date range"
        return result, False, "Spreadsheet serial date (1900 system)"

    v = str(value).strip()
    if not v:
        return None, False, ""

    m = DOTTED_DATE_RE.match(v)
    if m:
        result = _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        if result is None:
            return None, True, f"Impossible DD.MM.YYYY date {v!r}"
        return result, False, "DD.MM.YYYY"

    m = ISO_DATE_RE.match(v)
    if m:
        result = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if result is None:
            return None, True, f"Impossible ISO date {v!r}"
        return result, False, "YYYY-MM-DD"

    if DIGITS_RE.match(v):
        result = _serial_to_date(float(v))
        if result is None:
            return None, True, f"Serial {v!r} outside the spreadsheet date range"
        return result, False, "Spreadsheet serial date (1900 system) given as text"

    try:
        parsed = pd.to_datetime(v, dayfirst=True, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        parsed = pd.NaT
    if parsed is pd.NaT or pd.isna(parsed):
        return None, True, f"Unreadable date {v!r} left empty"
    return parsed.date(), False, "Free-form date (day-first)"


def parse_date(value: Any) -> date | None:
    """Best-effort calendar date parse; unreadable input yields None."""
    return normalise_date(value)[0]


def normalise_text(value: Any) -> str | None:
    """Trim a string cell; blanks become None and integral floats lose their ``.0``."""
    if _is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).replace("\x00", "").strip()
    return text or None
