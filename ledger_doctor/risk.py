"""Due-date classification and risk scoring.

Everything here is pure: no store access, and ``today`` can be injected so
results do not depend on the wall clock.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Any, Mapping, Optional, Sequence, Union

from ledger_doctor.models import (
    BalanceClassification,
    BalanceRecord,
    ClassificationBucket,
    ClassificationOverride,
    Note,
    RiskAssessment,
)

MIN_BALANCE = 100
DEFAULT_DAYS_AHEAD = 15

# Component caps; they add up to 100.
PAST_DUE_RATIO_MAX = 45
OVERDUE_AGE_MAX = 35
NOTE_VOLUME_MAX = 10
BROKEN_PROMISE_MAX = 10

OVERDUE_AGE_FULL_DAYS = 90
NOTE_VOLUME_FREE = 5
NOTE_VOLUME_SPAN = 10
BROKEN_PROMISES_FULL = 3

BalanceLike = Union[BalanceRecord, Mapping[str, Any]]
NoteLike = Union[Note, Mapping[str, Any]]


def _as_balance(balance: BalanceLike) -> BalanceRecord:
    if isinstance(balance, BalanceRecord):
        return balance
    return BalanceRecord.from_row(dict(balance))


def _as_note(note: NoteLike) -> Note:
    if isinstance(note, Note):
        return note
    return Note.from_row(dict(note))


def _today(today: Optional[date]) -> date:
    return today if today is not None else date.today()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_total(balance: BalanceLike) -> float:
    """Stored total, or past + not-due when the total is zero or missing."""
    record = _as_balance(balance)
    return record.total_balance or (record.past_due_balance + record.not_due_balance)


def is_past_due(balance: BalanceLike, min_balance: float = MIN_BALANCE) -> bool:
    # Amount only: a row in the past-due column is overdue whatever its date says.
    return _as_balance(balance).past_due_balance > min_balance


def is_upcoming(
    balance: BalanceLike,
    days_ahead: int = DEFAULT_DAYS_AHEAD,
    today: Optional[date] = None,
    min_balance: float = MIN_BALANCE,
) -> bool:
    record = _as_balance(balance)
    if record.not_due_balance <= min_balance or record.not_due_date is None:
        return False
    start = _today(today)
    return start <= record.not_due_date <= start + timedelta(days=days_ahead)


def classify_balance(
    balance: Optional[BalanceLike],
    days_ahead: int = DEFAULT_DAYS_AHEAD,
    today: Optional[date] = None,
    min_balance: float = MIN_BALANCE,
) -> Optional[BalanceClassification]:
    if balance is None:
        return None
    record = _as_balance(balance)
    past_due = is_past_due(record, min_balance)
    upcoming = is_upcoming(record, days_ahead, today, min_balance)
    total = calculate_total(record)

    due_date = None
    if past_due and record.past_due_date is not None:
        due_date = record.past_due_date
    elif upcoming:
        due_date = record.not_due_date

    return BalanceClassification(
        is_past_due=past_due,
        is_upcoming=upcoming,
        due_date=due_date,
        past_due_balance=record.past_due_balance,
        not_due_balance=record.not_due_balance,
        total_balance=total,
        is_customer=total >= 0,
        is_supplier=total < 0,
    )


def suggest_classification(score: float) -> ClassificationBucket:
    if score < 30:
        return ClassificationBucket.GREEN
    if score < 60:
        return ClassificationBucket.YELLOW
    if score < 80:
        return ClassificationBucket.RED
    return ClassificationBucket.BLACK


def risk_score(
    balance: Optional[BalanceLike],
    notes: Sequence[NoteLike] = (),
    today: Optional[date] = None,
) -> RiskAssessment:
    """
    Score a customer from 0 to 100.

    Components:
        past_due_ratio   share of the total that is overdue, x90, capped at 45
        overdue_age      days since past_due_date over 90 days, up to 35
        note_volume      notes beyond the first 5, up to 10 at 15 notes
        broken_promises  notes whose promise_date has passed, up to 10 at 3
    """
    current = _today(today)
    components = {
        "past_due_ratio": 0.0,
        "overdue_age": 0.0,
        "note_volume": 0.0,
        "broken_promises": 0.0,
    }

    if balance is not None:
        record = _as_balance(balance)
        past = record.past_due_balance
        total = calculate_total(record)
        if past > 0 and total > 0:
            ratio = min(past / total, 1.0)
            components["past_due_ratio"] = min(ratio * 90, PAST_DUE_RATIO_MAX)

        if record.past_due_date is not None:
            days_overdue = (current - record.past_due_date).days
            if days_overdue > 0:
                components["overdue_age"] = min(days_overdue / OVERDUE_AGE_FULL_DAYS, 1.0) * OVERDUE_AGE_MAX

    parsed_notes = [_as_note(note) for note in notes]
    if len(parsed_notes) > NOTE_VOLUME_FREE:
        extra = (len(parsed_notes) - NOTE_VOLUME_FREE) / NOTE_VOLUME_SPAN
        components["note_volume"] = min(extra, 1.0) * NOTE_VOLUME_MAX

    missed = sum(1 for note in parsed_notes if note.promise_date is not None and note.promise_date < current)
    if missed:
        components["broken_promises"] = min(missed / BROKEN_PROMISES_FULL, 1.0) * BROKEN_PROMISE_MAX

    score = round_half_up(sum(components.values()))
    return RiskAssessment(score=score, components=components, suggested=suggest_classification(score))


def effective_classification(
    override: Optional[ClassificationOverride],
    assessment: RiskAssessment,
) -> ClassificationBucket:
    """A stored human classification wins over the suggested bucket."""
    if override is not None:
        return override.classification
    return assessment.suggested
