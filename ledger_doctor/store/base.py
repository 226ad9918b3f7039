"""Persistent store contract used by the reconciler, reports and repair."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

Row = dict[str, Any]
Filters = Mapping[str, Any]

# Filter values of these types mean "column IN (...)"
IN_FILTER_TYPES = (list, tuple, set, frozenset)


class LedgerStore(ABC):
    """Keyed upsert / filtered select / count over named tables."""

    @abstractmethod
    def upsert(self, table: str, rows: Sequence[Row], conflict_key: str) -> list[Row]:
        """Insert or merge ``rows`` on ``conflict_key``.

        Returns the stored rows. Backends that cannot return them return ``[]``
        and callers must re-query.
        """

    @abstractmethod
    def select(self, table: str, filters: Filters | None = None, columns: str = "*") -> list[Row]:
        """Rows matching every filter; a collection value means IN."""

    @abstractmethod
    def count(self, table: str) -> int:
        """Number of rows in ``table``."""
