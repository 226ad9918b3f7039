"""Shared versioned contracts for ledger-doctor outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ledger_doctor import __version__ as TOOL_VERSION

CONTRACT_VERSIONS = {
    "ledger_doctor.import_summary": "1.0.0",
    "ledger_doctor.payment_list": "1.0.0",
    "ledger_doctor.risk_assessment": "1.0.0",
    "ledger_doctor.dashboard": "1.0.0",
    "ledger_doctor.repair_summary": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_payload(name: str, **body: Any) -> dict[str, Any]:
    """Contract header plus ``body``."""
    contract = build_contract(name)
    payload: dict[str, Any] = {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "generated_at": utc_now_iso(),
    }
    payload.update(body)
    return payload


def build_run_summary(
    *,
    tool: str,
    command: str,
    input_path: Path | None = None,
    status: str = "ok",
    output_path: Path | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": tool,
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path) if input_path else None,
        "output_file": str(output_path) if output_path else None,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
