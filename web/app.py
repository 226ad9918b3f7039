#!/usr/bin/env python3
from __future__ import annotations

import sys
import tempfile
from pathlib import Path
from typing import Optional

import pandas as pd
import streamlit as st


ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ledger_doctor.config import ImportConfig, LedgerConfig
from ledger_doctor.exceptions import ConfigurationError, LedgerError
from ledger_doctor.importer import prepare_import, reconcile_import
from ledger_doctor.loader import ALL_FORMATS
from ledger_doctor.reports import dashboard_summary, due_timeline, load_balance_views, payment_list
from ledger_doctor.store import SupabaseStore

PREVIEW_ROWS = 50


def ensure_state() -> None:
    st.session_state.setdefault("summary", None)
    st.session_state.setdefault("upload_name", None)


@st.cache_resource(show_spinner=False)
def load_config() -> LedgerConfig:
    return LedgerConfig.from_env()


def connect_store(config: LedgerConfig) -> Optional[SupabaseStore]:
    try:
        return SupabaseStore.from_config(config.store)
    except ConfigurationError as exc:
        st.info(f"Store not configured: {exc}")
        return None


def save_upload(upload, folder: Path) -> Path:
    path = folder / Path(upload.name).name
    path.write_bytes(upload.getvalue())
    return path


def candidates_frame(prepared) -> pd.DataFrame:
    records = []
    for code, item in list(prepared.processed.candidates.items())[:PREVIEW_ROWS]:
        balance = item.balance
        records.append(
            {
                "row": item.row_number,
                "code": code,
                "name": item.customer.name,
                "past_due_balance": balance.past_due_balance,
                "past_due_date": balance.past_due_date,
                "not_due_balance": balance.not_due_balance,
                "not_due_date": balance.not_due_date,
                "total_balance": balance.total_balance,
            }
        )
    return pd.DataFrame(records)


def render_preview(prepared) -> None:
    loaded = prepared.loaded
    rows = prepared.processed.to_dict()
    cols = st.columns(4)
    cols[0].metric("Data rows", rows["total_rows"])
    cols[1].metric("Candidates", rows["candidates"])
    cols[2].metric("Duplicates dropped", len(rows["duplicate_codes"]))
    cols[3].metric("Values defaulted", rows["defaulted_values"])
    st.caption(
        f"Format: {loaded['detected_format']}"
        + (f"  •  Sheet: {loaded['sheet_name']}" if loaded.get("sheet_name") else "")
    )

    mapping = prepared.columns.to_dict()
    st.markdown("**Resolved columns**")
    st.dataframe(
        pd.DataFrame(
            [{"field": name, "header": info["header"] or "-", "index": info["index"]} for name, info in mapping.items()]
        ),
        width="stretch",
        hide_index=True,
    )
    if prepared.warnings:
        st.warning("Import warnings:\n- " + "\n- ".join(prepared.warnings[:20]))
    st.markdown("**Candidates**")
    st.dataframe(candidates_frame(prepared), width="stretch", hide_index=True)


def run_import(prepared, store: SupabaseStore, config: ImportConfig) -> dict:
    progress = st.progress(0.0, text="Importing…")
    summary = reconcile_import(prepared, store, config)
    progress.progress(1.0, text="Import finished")
    return summary


def render_summary(summary: dict) -> None:
    reconcile = summary["reconcile"]
    if summary["run_summary"]["status"] == "failed":
        st.error(reconcile["error"])
    else:
        st.success("Import complete")
    cols = st.columns(4)
    cols[0].metric("Customers created", reconcile["customers_created"])
    cols[1].metric("Customers updated", reconcile["customers_updated"])
    cols[2].metric("Balances created", reconcile["balances_created"])
    cols[3].metric("Balances updated", reconcile["balances_updated"])
    with st.expander("Import summary JSON"):
        st.json(summary)


def render_import_tab(config: LedgerConfig) -> None:
    upload = st.file_uploader(
        "Ledger export",
        type=[ext.lstrip(".") for ext in sorted(ALL_FORMATS)],
        key="upload_input",
    )
    sheet = st.text_input("Sheet name (blank = first sheet)", key="sheet_input")
    separator = st.radio("Decimal separator", options=["auto", ",", "."], horizontal=True, key="separator_input")

    if upload is None:
        st.session_state["summary"] = None
        st.info("Supported: " + " ".join(sorted(ALL_FORMATS)))
        return

    import_config = ImportConfig(
        batch_size=config.imports.batch_size,
        batch_pause_seconds=config.imports.batch_pause_seconds,
        decimal_separator=None if separator == "auto" else separator,
        sheet_name=sheet.strip() or None,
    )

    with tempfile.TemporaryDirectory() as tmpdir:
        path = save_upload(upload, Path(tmpdir))
        try:
            prepared = prepare_import(path, import_config)
        except (LedgerError, ValueError, ImportError) as exc:
            st.error(str(exc))
            return
    if st.session_state["upload_name"] != upload.name:
        st.session_state["summary"] = None
        st.session_state["upload_name"] = upload.name
    render_preview(prepared)

    store = connect_store(config)
    if st.button("Import into store", type="primary", width="stretch", disabled=store is None):
        st.session_state["summary"] = run_import(prepared, store, import_config)
    if st.session_state.get("summary"):
        render_summary(st.session_state["summary"])


def render_dashboard_tab(config: LedgerConfig) -> None:
    store = connect_store(config)
    if store is None:
        return
    days = st.slider("Upcoming window (days)", min_value=1, max_value=90, value=config.risk.upcoming_days)
    try:
        views = load_balance_views(store)
    except LedgerError as exc:
        st.error(str(exc))
        return

    summary = dashboard_summary(views, days_ahead=days, min_balance=config.risk.min_balance)
    cols = st.columns(4)
    cols[0].metric("Customers", summary["customers"])
    cols[1].metric("Suppliers", summary["suppliers"])
    cols[2].metric("Past due", f"{summary['past_due_amount']:,.2f}", f"{summary['past_due_count']} balances")
    cols[3].metric("Upcoming", f"{summary['upcoming_amount']:,.2f}", f"{summary['upcoming_count']} balances")

    timeline = pd.DataFrame(due_timeline(views))
    if not timeline.empty:
        st.bar_chart(timeline.set_index("date")["amount"])

    filter_type = st.radio("Show", options=["overdue", "upcoming", "all"], horizontal=True, key="filter_input")
    rows = payment_list(views, filter_type=filter_type, days_ahead=days, min_balance=config.risk.min_balance)
    st.dataframe(pd.DataFrame(rows), width="stretch", hide_index=True)


def main() -> None:
    st.set_page_config(page_title="ledger-doctor", layout="wide", initial_sidebar_state="collapsed")
    ensure_state()

    st.title("ledger-doctor")
    st.caption("Upload a receivables ledger export, check how it was read, then reconcile it into the store.")

    config = load_config()
    import_tab, dashboard_tab = st.tabs(["Import", "Dashboard"])
    with import_tab:
        render_import_tab(config)
    with dashboard_tab:
        render_dashboard_tab(config)


if __name__ == "__main__":
    main()
