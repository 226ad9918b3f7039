from __future__ import annotations

import io
import json
import os
import subprocess
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

from ledger_doctor import __version__
from ledger_doctor.cli import EXIT_COMMAND_ERROR, EXIT_PARSE_FAILED, EXIT_PARTIAL, EXIT_SUCCESS, main
from ledger_doctor.exceptions import StoreError
from ledger_doctor.store import MemoryStore

from ledger_fixtures import ledger_row, write_workbook


ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "ledger_doctor.cli"]
FIXED_STAMP = "20260301T010203Z"
BASE_ENV = {
    "LEDGER_OUTPUT_STAMP": FIXED_STAMP,
    "LEDGER_BATCH_PAUSE": "0",
    "SUPABASE_URL": "",
    "SUPABASE_KEY": "",
}


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env.update(BASE_ENV)
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
    )


def run_main(*args: str, store=None) -> tuple[int, str, str]:
    """Run ``main`` in-process with ``build_store`` returning ``store``."""
    stdout, stderr = io.StringIO(), io.StringIO()
    with mock.patch.dict(os.environ, BASE_ENV), mock.patch("ledger_doctor.cli.build_store", return_value=store):
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(list(args))
    return code, stdout.getvalue(), stderr.getvalue()


class BrokenBalanceStore(MemoryStore):
    def upsert(self, table, rows, conflict_key):
        if table == "customer_balances":
            raise StoreError("HTTP 503: unavailable")
        return super().upsert(table, rows, conflict_key)


def seeded_store() -> MemoryStore:
    store = MemoryStore()
    store.insert(
        "customers",
        [
            {"code": "C1", "name": "Acme", "sector_code": "S1", "region_code": "R1"},
            {"code": "C2", "name": "Beta", "sector_code": "S2", "region_code": "R2"},
        ],
    )
    store.insert(
        "customer_balances",
        [
            {"customer_id": 1, "past_due_balance": 900, "total_balance": 1200, "not_due_balance": 300},
            {"customer_id": 2, "past_due_balance": 20, "total_balance": -400},
        ],
    )
    return store


class SubprocessCliTests(unittest.TestCase):
    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(proc.stdout.strip(), __version__)

    def test_dry_run_json_stdout_contains_only_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(Path(tmpdir) / "ledger.xlsx", [ledger_row("C1", past="1.500,00")])
            proc = run_cli("import", str(path), "--dry-run", "--json", "-q")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["contract"]["name"], "ledger_doctor.import_summary")
            self.assertEqual(payload["run_summary"]["status"], "dry_run")
            self.assertEqual(payload["rows"]["candidates"], 1)

    def test_missing_input_returns_exit_1(self):
        proc = run_cli("import", "does-not-exist.xlsx", "--dry-run")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_unrecognised_header_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "other.csv"
            path.write_text("foo,bar\n1,2\n", encoding="utf-8")
            proc = run_cli("import", str(path), "--dry-run")
            self.assertEqual(proc.returncode, 2)
            self.assertIn("code", proc.stderr)

    def test_store_commands_need_credentials(self):
        proc = run_cli("dashboard")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("SUPABASE_URL", proc.stderr)

    def test_bad_arguments_return_exit_1(self):
        proc = run_cli("payments", "--filter", "someday")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("invalid choice", proc.stderr)


class ImportCommandTests(unittest.TestCase):
    def test_import_writes_store_and_reports_counts(self):
        store = MemoryStore()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(Path(tmpdir) / "ledger.xlsx", [ledger_row("C1"), ledger_row("C2")])
            code, stdout, stderr = run_main("import", str(path), "-q", store=store)

        self.assertEqual(code, EXIT_SUCCESS, stderr)
        self.assertEqual(stdout, "")
        self.assertEqual(store.count("customers"), 2)

    def test_import_human_summary_goes_to_stderr(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(Path(tmpdir) / "ledger.xlsx", [ledger_row("C1")])
            code, stdout, stderr = run_main("import", str(path), store=MemoryStore())

        self.assertEqual(code, EXIT_SUCCESS, stderr)
        self.assertIn("Customers created: 1", stderr)
        self.assertIn("Batches: 1/1", stderr)
        self.assertEqual(stdout, "")

    def test_output_directory_gets_stamped_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(Path(tmpdir) / "ledger.xlsx", [ledger_row("C1")])
            out_dir = Path(tmpdir) / "out"
            out_dir.mkdir()
            code, _, stderr = run_main("import", str(path), "-o", str(out_dir), store=MemoryStore())

            expected = out_dir / f"ledger-import-{FIXED_STAMP}.json"
            self.assertEqual(code, EXIT_SUCCESS, stderr)
            self.assertTrue(expected.exists())
            payload = json.loads(expected.read_text(encoding="utf-8"))
            self.assertEqual(payload["run_summary"]["output_file"], str(expected))

            code, _, stderr = run_main("import", str(path), "-o", str(expected), store=MemoryStore())
            self.assertEqual(code, EXIT_COMMAND_ERROR)
            self.assertIn("Refusing to overwrite", stderr)

    def test_failed_batch_returns_exit_6(self):
        store = BrokenBalanceStore()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(Path(tmpdir) / "ledger.xlsx", [ledger_row("C1")])
            code, stdout, stderr = run_main("import", str(path), "--json", store=store)

        self.assertEqual(code, EXIT_PARTIAL)
        payload = json.loads(stdout)
        self.assertEqual(payload["run_summary"]["status"], "failed")
        self.assertEqual(payload["reconcile"]["customers_created"], 1)

    def test_corrupt_workbook_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "broken.xlsx"
            path.write_bytes(b"not a zip archive")
            code, _, _ = run_main("import", str(path), "--dry-run")
        self.assertEqual(code, EXIT_PARSE_FAILED)


class ReportCommandTests(unittest.TestCase):
    def test_payments_overdue_json(self):
        code, stdout, stderr = run_main("payments", "--filter", "overdue", "--json", store=seeded_store())
        self.assertEqual(code, EXIT_SUCCESS, stderr)
        payload = json.loads(stdout)
        self.assertEqual(payload["contract"]["name"], "ledger_doctor.payment_list")
        self.assertEqual([row["code"] for row in payload["rows"]], ["C1"])

    def test_payments_text(self):
        code, _, stderr = run_main("payments", "--view", "suppliers", store=seeded_store())
        self.assertEqual(code, EXIT_SUCCESS, stderr)
        self.assertIn("(all, suppliers): 1 rows", stderr)
        self.assertIn("C2", stderr)

    def test_risk_json(self):
        code, stdout, stderr = run_main("risk", "C1", "--json", store=seeded_store())
        self.assertEqual(code, EXIT_SUCCESS, stderr)
        payload = json.loads(stdout)
        # 900 of 1200 overdue: 0.75 * 90 is capped at 45.
        self.assertEqual(payload["risk"]["score"], 45)
        self.assertEqual(payload["effective"], "yellow")

    def test_risk_unknown_code_returns_exit_1(self):
        code, _, stderr = run_main("risk", "NOPE", store=seeded_store())
        self.assertEqual(code, EXIT_COMMAND_ERROR)
        self.assertIn("NOPE", stderr)

    def test_dashboard_json(self):
        code, stdout, stderr = run_main("dashboard", "--json", store=seeded_store())
        self.assertEqual(code, EXIT_SUCCESS, stderr)
        payload = json.loads(stdout)
        self.assertEqual(payload["summary"]["customers"], 1)
        self.assertEqual(payload["summary"]["suppliers"], 1)
        self.assertEqual(payload["past_due_by_sector"][0], {"sector_code": "S1", "past_due_balance": 900.0})
        self.assertEqual(len(payload["timeline"]), 30)

    def test_repair_dry_run(self):
        store = MemoryStore()
        store.insert("customer_balances", [{"customer_id": 1, "past_due_balance": "1.234,50", "total_balance": 0}])
        code, stdout, stderr = run_main("repair", "--dry-run", "--json", store=store)
        self.assertEqual(code, EXIT_SUCCESS, stderr)
        payload = json.loads(stdout)
        self.assertEqual(payload["fixed"], 1)
        self.assertTrue(payload["dry_run"])
        self.assertEqual(store.select("customer_balances")[0]["past_due_balance"], "1.234,50")

    def test_missing_command_returns_exit_1(self):
        code, _, _ = run_main()
        self.assertEqual(code, EXIT_COMMAND_ERROR)


if __name__ == "__main__":
    unittest.main()
