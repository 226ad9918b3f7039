"""Read-only reports over stored balances: payment list, due timeline, dashboard."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Optional, Sequence

from ledger_doctor.exceptions import EntityNotFoundError
from ledger_doctor.models import (
    BALANCES_TABLE,
    CLASSIFICATIONS_TABLE,
    CUSTOMERS_TABLE,
    NOTES_TABLE,
    BalanceClassification,
    BalanceRecord,
    ClassificationOverride,
    Customer,
    Note,
    RiskAssessment,
)
from ledger_doctor.reconcile import chunked
from ledger_doctor.risk import (
    DEFAULT_DAYS_AHEAD,
    MIN_BALANCE,
    classify_balance,
    effective_classification,
    risk_score,
)
from ledger_doctor.store.base import LedgerStore

logger = logging.getLogger(__name__)

FILTER_TYPES = ("all", "upcoming", "overdue")
VIEWS = ("all", "customers", "suppliers")
TOTAL_KEYS = ("sector_code", "region_code")
# ids per customer lookup; keeps the in.(...) filter within URL limits
CUSTOMER_ID_CHUNK = 200


@dataclass
class BalanceView:
    """A stored balance joined with its customer."""

    customer: Customer
    balance: BalanceRecord


def _today(today: Optional[date]) -> date:
    return today if today is not None else date.today()


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def load_balance_views(store: LedgerStore) -> list[BalanceView]:
    balances = [BalanceRecord.from_row(row) for row in store.select(BALANCES_TABLE)]
    ids = sorted({b.customer_id for b in balances if b.customer_id is not None})
    customers: dict[int, Customer] = {}
    for chunk in chunked(ids, CUSTOMER_ID_CHUNK):
        for row in store.select(CUSTOMERS_TABLE, {"id": list(chunk)}):
            customer = Customer.from_row(row)
            customers[customer.id] = customer

    views = []
    for balance in balances:
        customer = customers.get(balance.customer_id)
        if customer is None:
            logger.warning("Balance %s references unknown customer %s", balance.id, balance.customer_id)
            continue
        views.append(BalanceView(customer=customer, balance=balance))
    return views


def _view_matches(classification: BalanceClassification, view: str) -> bool:
    if view == "customers":
        return classification.is_customer
    if view == "suppliers":
        return classification.is_supplier
    return True


def _filter_matches(classification: BalanceClassification, filter_type: str) -> bool:
    if filter_type == "upcoming":
        return classification.is_upcoming
    if filter_type == "overdue":
        return classification.is_past_due
    return True


def payment_list(
    views: Iterable[BalanceView],
    filter_type: str = "all",
    days_ahead: int = DEFAULT_DAYS_AHEAD,
    view: str = "all",
    today: Optional[date] = None,
    min_balance: float = MIN_BALANCE,
) -> list[dict[str, Any]]:
    """Classified balances, earliest due date first and undated rows last."""
    if filter_type not in FILTER_TYPES:
        raise ValueError(f"filter_type must be one of {FILTER_TYPES}, got {filter_type!r}")
    if view not in VIEWS:
        raise ValueError(f"view must be one of {VIEWS}, got {view!r}")

    current = _today(today)
    rows = []
    for item in views:
        classification = classify_balance(item.balance, days_ahead, current, min_balance)
        if not _view_matches(classification, view) or not _filter_matches(classification, filter_type):
            continue
        rows.append(
            {
                "code": item.customer.code,
                "name": item.customer.name,
                "sector_code": item.customer.sector_code,
                "region_code": item.customer.region_code,
                "past_due_balance": classification.past_due_balance,
                "not_due_balance": classification.not_due_balance,
                "total_balance": classification.total_balance,
                "due_date": classification.due_date,
                "is_past_due": classification.is_past_due,
                "is_upcoming": classification.is_upcoming,
                "is_customer": classification.is_customer,
                "is_supplier": classification.is_supplier,
            }
        )

    rows.sort(key=lambda row: (row["due_date"] is None, row["due_date"] or date.max, row["code"]))
    for row in rows:
        row["due_date"] = _iso(row["due_date"])
    return rows


def due_timeline(
    views: Iterable[BalanceView],
    days: int = 30,
    today: Optional[date] = None,
) -> list[dict[str, Any]]:
    """
    Amount falling due per day for the next ``days`` days.

    Day 0 also carries every positive past-due amount, since that money is
    owed now.
    """
    current = _today(today)
    buckets = [0.0] * days
    for item in views:
        balance = item.balance
        if balance.past_due_balance > 0 and days:
            buckets[0] += balance.past_due_balance
        if balance.not_due_balance > 0 and balance.not_due_date is not None:
            offset = (balance.not_due_date - current).days
            if 0 <= offset < days:
                buckets[offset] += balance.not_due_balance
    return [
        {"date": (current + timedelta(days=offset)).isoformat(), "amount": amount}
        for offset, amount in enumerate(buckets)
    ]


def past_due_totals(views: Iterable[BalanceView], key: str = "sector_code") -> list[dict[str, Any]]:
    if key not in TOTAL_KEYS:
        raise ValueError(f"key must be one of {TOTAL_KEYS}, got {key!r}")
    totals: dict[str, float] = defaultdict(float)
    for item in views:
        group = getattr(item.customer, key)
        if not group or item.balance.past_due_balance <= 0:
            continue
        totals[group] += item.balance.past_due_balance
    ordered = sorted(totals.items(), key=lambda pair: (-pair[1], pair[0]))
    return [{key: group, "past_due_balance": amount} for group, amount in ordered]


def dashboard_summary(
    views: Sequence[BalanceView],
    days_ahead: int = DEFAULT_DAYS_AHEAD,
    today: Optional[date] = None,
    min_balance: float = MIN_BALANCE,
) -> dict[str, Any]:
    current = _today(today)
    summary = {
        "balances": 0,
        "customers": 0,
        "suppliers": 0,
        "past_due_count": 0,
        "past_due_amount": 0.0,
        "upcoming_count": 0,
        "upcoming_amount": 0.0,
        "total_receivable": 0.0,
        "total_payable": 0.0,
    }
    for item in views:
        classification = classify_balance(item.balance, days_ahead, current, min_balance)
        summary["balances"] += 1
        if classification.is_customer:
            summary["customers"] += 1
            summary["total_receivable"] += classification.total_balance
        else:
            summary["suppliers"] += 1
            summary["total_payable"] += -classification.total_balance
        if classification.is_past_due:
            summary["past_due_count"] += 1
            summary["past_due_amount"] += classification.past_due_balance
        if classification.is_upcoming:
            summary["upcoming_count"] += 1
            summary["upcoming_amount"] += classification.not_due_balance
    return summary


def due_reminders(notes: Iterable[Note], today: Optional[date] = None) -> list[Note]:
    """Open reminders dated today or earlier, oldest first."""
    current = _today(today)
    due = [
        note
        for note in notes
        if note.reminder_date is not None and note.reminder_date <= current and not note.reminder_completed
    ]
    return sorted(due, key=lambda note: note.reminder_date)


@dataclass
class CustomerAssessment:
    customer: Customer
    balance: Optional[BalanceRecord]
    classification: Optional[BalanceClassification]
    risk: RiskAssessment
    override: Optional[ClassificationOverride]
    effective: str
    reminders: list[Note]

    def to_dict(self) -> dict[str, Any]:
        classification = asdict(self.classification) if self.classification else None
        if classification:
            classification["due_date"] = _iso(classification["due_date"])
        return {
            "customer": self.customer.to_row(),
            "balance": self.balance.to_row() if self.balance else None,
            "classification": classification,
            "risk": {
                "score": self.risk.score,
                "components": dict(self.risk.components),
                "suggested": self.risk.suggested.value,
            },
            "override": self.override.label if self.override else None,
            "effective": self.effective,
            "reminders": [
                {"content": note.content, "reminder_date": _iso(note.reminder_date)}
                for note in self.reminders
            ],
        }


def assess_customer(
    store: LedgerStore,
    code: str,
    today: Optional[date] = None,
    days_ahead: int = DEFAULT_DAYS_AHEAD,
    min_balance: float = MIN_BALANCE,
) -> CustomerAssessment:
    """Everything the engine can say about one customer code."""
    rows = store.select(CUSTOMERS_TABLE, {"code": code})
    if not rows:
        raise EntityNotFoundError(f"No customer with code {code!r}")
    customer = Customer.from_row(rows[0])

    balance_rows = store.select(BALANCES_TABLE, {"customer_id": customer.id})
    balance = BalanceRecord.from_row(balance_rows[0]) if balance_rows else None
    notes = [Note.from_row(row) for row in store.select(NOTES_TABLE, {"customer_id": customer.id})]
    override_rows = store.select(CLASSIFICATIONS_TABLE, {"customer_id": customer.id})
    override = None
    if override_rows:
        try:
            override = ClassificationOverride.from_row(override_rows[0])
        except (KeyError, ValueError) as exc:
            logger.warning("Ignoring classification override for %s: %s", customer.code, exc)

    current = _today(today)
    assessment = risk_score(balance, notes, current)
    bucket = effective_classification(override, assessment)
    label = override.label if override is not None else bucket.value
    return CustomerAssessment(
        customer=customer,
        balance=balance,
        classification=classify_balance(balance, days_ahead, current, min_balance),
        risk=assessment,
        override=override,
        effective=label,
        reminders=due_reminders(notes, current),
    )
