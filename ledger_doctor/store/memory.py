"""In-process store with integer ids, used for dry runs and tests."""

from __future__ import annotations

import copy
from typing import Any, Sequence

from ledger_doctor.exceptions import StoreError
from ledger_doctor.store.base import IN_FILTER_TYPES, Filters, LedgerStore, Row


def _matches(row: Row, filters: Filters) -> bool:
    for column, expected in filters.items():
        actual = row.get(column)
        if isinstance(expected, IN_FILTER_TYPES):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def _project(row: Row, columns: str) -> Row:
    if columns.strip() == "*":
        return copy.deepcopy(row)
    wanted = [name.strip() for name in columns.split(",") if name.strip()]
    return {name: copy.deepcopy(row.get(name)) for name in wanted}


class MemoryStore(LedgerStore):
    """
    Dict-of-lists store.

    ``return_rows=False`` makes ``upsert`` return ``[]`` like PostgREST without
    ``return=representation``. Every call is appended to ``calls`` as
    ``(operation, table, size)``.
    """

    def __init__(self, return_rows: bool = True) -> None:
        self.return_rows = return_rows
        self.tables: dict[str, list[Row]] = {}
        self.calls: list[tuple[str, str, int]] = []
        self._next_id: dict[str, int] = {}

    def _table(self, table: str) -> list[Row]:
        return self.tables.setdefault(table, [])

    def _assign_id(self, table: str) -> int:
        next_id = self._next_id.get(table, 1)
        self._next_id[table] = next_id + 1
        return next_id

    def insert(self, table: str, rows: Sequence[Row]) -> list[Row]:
        """Append rows without conflict handling; ids are assigned when absent."""
        stored = []
        for row in rows:
            record = copy.deepcopy(dict(row))
            if record.get("id") is None:
                record["id"] = self._assign_id(table)
            else:
                self._next_id[table] = max(self._next_id.get(table, 1), int(record["id"]) + 1)
            self._table(table).append(record)
            stored.append(copy.deepcopy(record))
        self.calls.append(("insert", table, len(rows)))
        return stored

    def upsert(self, table: str, rows: Sequence[Row], conflict_key: str) -> list[Row]:
        existing_rows = self._table(table)
        index: dict[Any, Row] = {row.get(conflict_key): row for row in existing_rows}
        stored: list[Row] = []
        for row in rows:
            key = row.get(conflict_key)
            if key is None and conflict_key != "id":
                raise StoreError(f"{table}.{conflict_key} cannot be null")
            current = index.get(key) if key is not None else None
            if current is not None:
                current.update(copy.deepcopy(dict(row)))
                stored.append(copy.deepcopy(current))
                continue
            record = copy.deepcopy(dict(row))
            if record.get("id") is None:
                record["id"] = self._assign_id(table)
            else:
                self._next_id[table] = max(self._next_id.get(table, 1), int(record["id"]) + 1)
            existing_rows.append(record)
            index[record.get(conflict_key)] = record
            stored.append(copy.deepcopy(record))
        self.calls.append(("upsert", table, len(rows)))
        return stored if self.return_rows else []

    def select(self, table: str, filters: Filters | None = None, columns: str = "*") -> list[Row]:
        self.calls.append(("select", table, 0))
        return [_project(row, columns) for row in self._table(table) if _matches(row, filters or {})]

    def count(self, table: str) -> int:
        self.calls.append(("count", table, 0))
        return len(self._table(table))
