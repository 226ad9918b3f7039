"""Supabase / PostgREST store over ``requests``."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import requests

from ledger_doctor.config import StoreConfig
from ledger_doctor.exceptions import ConfigurationError, StoreError
from ledger_doctor.store.base import IN_FILTER_TYPES, Filters, LedgerStore, Row

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000

# PostgREST reserves these inside in.(...) lists
_RESERVED = set(',()"\\ ')


def quote_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if any(ch in _RESERVED for ch in text) or not text:
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def filter_param(value: Any) -> str:
    """Render one filter value as a PostgREST operator expression."""
    if value is None:
        return "is.null"
    if isinstance(value, IN_FILTER_TYPES):
        return "in.(" + ",".join(quote_value(item) for item in value) + ")"
    return f"eq.{quote_value(value)}"


def parse_content_range(header: Optional[str]) -> int:
    """Total from a ``Content-Range`` header such as ``0-24/3573`` or ``*/0``."""
    if not header or "/" not in header:
        raise StoreError(f"Missing or malformed Content-Range header: {header!r}")
    total = header.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        raise StoreError(f"Count not available in Content-Range header: {header!r}")
    return int(total)


class SupabaseStore(LedgerStore):
    """
    PostgREST backend.

    Upserts POST to ``/rest/v1/{table}?on_conflict=key`` with
    ``Prefer: resolution=merge-duplicates,return=representation``; counts use a
    HEAD request with ``Prefer: count=exact``. Selects page through results with
    ``limit``/``offset`` ordered by ``id`` until a short page comes back, since the
    server caps each response (1000 rows by default). Every HTTP or network
    failure is raised as ``StoreError``; nothing is retried.
    """

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise ConfigurationError(f"page_size must be positive, got {page_size}")
        self.rest_url = url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.page_size = page_size
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    @classmethod
    def from_config(cls, config: StoreConfig, session: Optional[requests.Session] = None) -> "SupabaseStore":
        if not config.url:
            raise ConfigurationError("SUPABASE_URL is not set")
        if not config.key:
            raise ConfigurationError("SUPABASE_KEY is not set")
        return cls(config.url, config.key, timeout=config.timeout, session=session)

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> requests.Response:
        url = f"{self.rest_url}/{table}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise StoreError(f"{method} {table} failed: {exc}") from exc

        if response.status_code >= 400:
            detail = (response.text or "").strip()[:300]
            raise StoreError(f"{method} {table} returned HTTP {response.status_code}: {detail}")
        logger.debug("%s %s -> %s", method, table, response.status_code)
        return response

    @staticmethod
    def _json_rows(response: requests.Response) -> list[Row]:
        if not response.content:
            return []
        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreError(f"Store returned invalid JSON: {exc}") from exc
        if isinstance(payload, dict):
            return [payload]
        return list(payload or [])

    def upsert(self, table: str, rows: Sequence[Row], conflict_key: str) -> list[Row]:
        if not rows:
            return []
        response = self._request(
            "POST",
            table,
            params={"on_conflict": conflict_key},
            json=list(rows),
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return self._json_rows(response)

    def select(self, table: str, filters: Filters | None = None, columns: str = "*") -> list[Row]:
        params = {"select": "".join(columns.split()), "order": "id.asc"}
        for column, value in (filters or {}).items():
            params[column] = filter_param(value)

        rows: list[Row] = []
        offset = 0
        while True:
            page_params = {**params, "limit": str(self.page_size), "offset": str(offset)}
            page = self._json_rows(self._request("GET", table, params=page_params))
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            offset += self.page_size

    def count(self, table: str) -> int:
        response = self._request(
            "HEAD",
            table,
            params={"select": "*"},
            headers={"Prefer": "count=exact"},
        )
        return parse_content_range(response.headers.get("Content-Range"))
