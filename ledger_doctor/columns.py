"""Header → semantic field resolution for ledger exports.

Matching is first-match substring containment on folded headers: for each
needle of a field, in order, the first header column containing it wins.
Turkish export labels are tried before English ones.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from ledger_doctor.exceptions import SchemaResolutionError

REQUIRED_FIELDS = ("code", "name")

DEFAULT_FIELDS: dict[str, tuple[str, ...]] = {
    "code": ("cari hesap kodu", "customer code", "account code"),
    "name": ("cari hesap adı", "customer name", "account name"),
    "sector_code": ("sektör kodu", "sector code"),
    "group_code": ("grup kodu", "group code"),
    "region_code": ("bölge kodu", "region code"),
    "payment_term": ("cari ödeme vadesi", "payment term"),
    "past_due_balance": ("vadesi geçen bakiye", "past due balance", "overdue balance"),
    "past_due_date": ("vadesi geçen bakiye vadesi", "past due date", "overdue date"),
    "valor": ("valör", "valor"),
    "not_due_balance": ("vadesi geçmemiş bakiye", "not due balance"),
    "not_due_date": ("vadesi geçmemiş bakiye vadesi", "not due date"),
    "total_balance": ("toplam bakiye", "total balance"),
    "reference_date": ("bakiyeye konu ilk evrak", "reference date"),
}

_WHITESPACE_RE = re.compile(r"\s+")
# Dotted capital İ and dotless ı both fold to plain i.
_TURKISH_I = str.maketrans({"İ": "i", "I": "i", "ı": "i"})


def fold_header(value: Any) -> str:
    """Lower-case, collapse whitespace and fold Turkish i variants."""
    if value is None:
        return ""
    text = str(value).translate(_TURKISH_I).casefold()
    # decomposed input: I + combining dot above
    text = text.replace("\u0307", "")
    return _WHITESPACE_RE.sub(" ", text).strip()


@dataclass
class ColumnMap:
    """Resolved column index (or None) per semantic field."""

    indexes: dict[str, int | None]
    matched_headers: dict[str, str] = field(default_factory=dict)

    def __getitem__(self, name: str) -> int | None:
        return self.indexes.get(name)

    def get(self, name: str) -> int | None:
        return self.indexes.get(name)

    @property
    def missing(self) -> list[str]:
        return [name for name, idx in self.indexes.items() if idx is None]

    def to_dict(self) -> dict[str, Any]:
        return {
            name: {"index": idx, "header": self.matched_headers.get(name)}
            for name, idx in self.indexes.items()
        }


def _find_column(folded: Sequence[str], needles: Iterable[str]) -> int | None:
    for needle in needles:
        target = fold_header(needle)
        if not target:
            continue
        for idx, header in enumerate(folded):
            if target in header:
                return idx
    return None


def resolve_columns(
    header: Sequence[Any],
    fields: Mapping[str, Sequence[str]] = DEFAULT_FIELDS,
) -> ColumnMap:
    """Map each semantic field to a header column.

    Raises:
        SchemaResolutionError  if ``code`` or ``name`` cannot be resolved.
    """
    folded = [fold_header(cell) for cell in header]
    indexes: dict[str, int | None] = {}
    matched: dict[str, str] = {}
    for name, needles in fields.items():
        idx = _find_column(folded, needles)
        indexes[name] = idx
        if idx is not None:
            matched[name] = str(header[idx])

    missing = [name for name in REQUIRED_FIELDS if indexes.get(name) is None]
    if missing:
        seen = [str(cell) for cell in header if cell not in (None, "")]
        raise SchemaResolutionError(
            f"Required columns not found: {', '.join(missing)}. Headers seen: {seen}",
            missing=missing,
            headers=seen,
        )
    return ColumnMap(indexes=indexes, matched_headers=matched)
