"""Ledger domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from ledger_doctor.normalization import normalise_text, parse_date, parse_number

CUSTOMERS_TABLE = "customers"
BALANCES_TABLE = "customer_balances"
NOTES_TABLE = "customer_notes"
CLASSIFICATIONS_TABLE = "customer_classifications"


class ClassificationBucket(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    BLACK = "black"
    SPECIAL = "special"
    CUSTOM = "custom"


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class Customer:
    """Business entity keyed by its ledger code."""

    code: str
    name: str | None = None
    sector_code: str | None = None
    group_code: str | None = None
    region_code: str | None = None
    payment_term: str | None = None
    id: int | None = None

    def to_row(self) -> dict[str, Any]:
        row = {
            "code": self.code,
            "name": self.name,
            "sector_code": self.sector_code,
            "group_code": self.group_code,
            "region_code": self.region_code,
            "payment_term": self.payment_term,
        }
        if self.id is not None:
            row["id"] = self.id
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Customer":
        return cls(
            code=normalise_text(row.get("code")) or "",
            name=normalise_text(row.get("name")),
            sector_code=normalise_text(row.get("sector_code")),
            group_code=normalise_text(row.get("group_code")),
            region_code=normalise_text(row.get("region_code")),
            payment_term=normalise_text(row.get("payment_term")),
            id=_optional_int(row.get("id")),
        )


@dataclass
class BalanceRecord:
    """Balance snapshot for one customer; each import overwrites it."""

    customer_id: int | None = None
    past_due_balance: float = 0.0
    past_due_date: date | None = None
    not_due_balance: float = 0.0
    not_due_date: date | None = None
    valor: int = 0
    total_balance: float = 0.0
    reference_date: date | None = None
    id: int | None = None

    def to_row(self) -> dict[str, Any]:
        row = {
            "customer_id": self.customer_id,
            "past_due_balance": self.past_due_balance,
            "past_due_date": _iso(self.past_due_date),
            "not_due_balance": self.not_due_balance,
            "not_due_date": _iso(self.not_due_date),
            "valor": self.valor,
            "total_balance": self.total_balance,
            "reference_date": _iso(self.reference_date),
        }
        if self.id is not None:
            row["id"] = self.id
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "BalanceRecord":
        return cls(
            customer_id=_optional_int(row.get("customer_id")),
            past_due_balance=parse_number(row.get("past_due_balance")),
            past_due_date=parse_date(row.get("past_due_date")),
            not_due_balance=parse_number(row.get("not_due_balance")),
            not_due_date=parse_date(row.get("not_due_date")),
            valor=int(parse_number(row.get("valor"))),
            total_balance=parse_number(row.get("total_balance")),
            reference_date=parse_date(row.get("reference_date")),
            id=_optional_int(row.get("id")),
        )


@dataclass
class Note:
    """Communication note; written elsewhere, read here for risk scoring."""

    customer_id: int | None
    content: str = ""
    created_at: datetime | None = None
    promise_date: date | None = None
    reminder_date: date | None = None
    reminder_completed: bool = False
    balance_at_time: float | None = None
    id: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Note":
        created_at = row.get("created_at")
        if isinstance(created_at, str):
            try:
                created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
            except ValueError:
                created_at = None
        balance_at_time = row.get("balance_at_time")
        return cls(
            customer_id=_optional_int(row.get("customer_id")),
            content=row.get("content") or "",
            created_at=created_at,
            promise_date=parse_date(row.get("promise_date")),
            reminder_date=parse_date(row.get("reminder_date")),
            reminder_completed=bool(row.get("reminder_completed")),
            balance_at_time=None if balance_at_time is None else parse_number(balance_at_time),
            id=_optional_int(row.get("id")),
        )


@dataclass
class ClassificationOverride:
    """Classification set by a person; the engine only reads it."""

    customer_id: int
    classification: ClassificationBucket
    custom_classification: str | None = None
    risk_score: int | None = None

    @property
    def label(self) -> str:
        if self.classification == ClassificationBucket.CUSTOM and self.custom_classification:
            return self.custom_classification
        return self.classification.value

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ClassificationOverride":
        return cls(
            customer_id=int(row["customer_id"]),
            classification=ClassificationBucket(row["classification"]),
            custom_classification=row.get("custom_classification") or None,
            risk_score=_optional_int(row.get("risk_score")),
        )


@dataclass
class ImportCandidate:
    """Parsed ledger row waiting to be reconciled."""

    customer: Customer
    balance: BalanceRecord
    row_number: int


@dataclass
class BalanceClassification:
    is_past_due: bool
    is_upcoming: bool
    due_date: date | None
    past_due_balance: float
    not_due_balance: float
    total_balance: float
    is_customer: bool
    is_supplier: bool


@dataclass
class RiskAssessment:
    score: int
    components: dict[str, float] = field(default_factory=dict)
    suggested: ClassificationBucket = ClassificationBucket.GREEN
