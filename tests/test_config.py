from __future__ import annotations

import io
import json
import logging
import os
import unittest
from contextlib import redirect_stderr
from unittest import mock

from ledger_doctor.config import ImportConfig, LedgerConfig
from ledger_doctor.exceptions import ConfigurationError
from ledger_doctor.logging import JsonFormatter, setup_logging


class ImportConfigTests(unittest.TestCase):
    def test_defaults(self):
        config = ImportConfig()
        self.assertEqual(config.batch_size, 100)
        self.assertEqual(config.batch_pause_seconds, 0.5)
        self.assertIsNone(config.decimal_separator)

    def test_invalid_values_are_rejected(self):
        with self.assertRaises(ConfigurationError):
            ImportConfig(batch_size=0)
        with self.assertRaises(ConfigurationError):
            ImportConfig(batch_pause_seconds=-1)
        with self.assertRaises(ConfigurationError):
            ImportConfig(decimal_separator=";")


class LedgerConfigTests(unittest.TestCase):
    def test_from_env(self):
        env = {
            "LEDGER_BATCH_SIZE": "25",
            "LEDGER_BATCH_PAUSE": "0",
            "LEDGER_DECIMAL_SEPARATOR": ",",
            "LEDGER_MIN_BALANCE": "250",
            "LEDGER_UPCOMING_DAYS": "30",
            "SUPABASE_URL": "https://demo.supabase.co",
            "SUPABASE_KEY": "secret",
        }
        with mock.patch.dict(os.environ, env):
            config = LedgerConfig.from_env()

        self.assertEqual(config.imports.batch_size, 25)
        self.assertEqual(config.imports.batch_pause_seconds, 0.0)
        self.assertEqual(config.imports.decimal_separator, ",")
        self.assertEqual(config.risk.min_balance, 250.0)
        self.assertEqual(config.risk.upcoming_days, 30)
        self.assertEqual(config.store.url, "https://demo.supabase.co")
        self.assertEqual(config.store.key, "secret")

    def test_blank_values_fall_back_to_defaults(self):
        with mock.patch.dict(os.environ, {"LEDGER_BATCH_SIZE": " ", "SUPABASE_URL": ""}):
            config = LedgerConfig.from_env()
        self.assertEqual(config.imports.batch_size, 100)
        self.assertIsNone(config.store.url)

    def test_non_numeric_value_raises(self):
        with mock.patch.dict(os.environ, {"LEDGER_BATCH_SIZE": "many"}):
            with self.assertRaisesRegex(ConfigurationError, "LEDGER_BATCH_SIZE"):
                LedgerConfig.from_env()


class LoggingTests(unittest.TestCase):
    def tearDown(self):
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        root.setLevel(logging.WARNING)
        logging.getLogger("ledger_doctor").setLevel(logging.NOTSET)

    def test_setup_logging_writes_to_stderr(self):
        stream = io.StringIO()
        with redirect_stderr(stream):
            setup_logging("WARNING")
            logging.getLogger("ledger_doctor.test").warning("checked %d rows", 3)
            logging.getLogger("ledger_doctor.test").info("hidden")
        output = stream.getvalue()
        self.assertIn("checked 3 rows", output)
        self.assertNotIn("hidden", output)
        self.assertEqual(len(logging.getLogger().handlers), 1)

    def test_json_formatter(self):
        record = logging.LogRecord("ledger_doctor.rows", logging.WARNING, __file__, 1, "Row %d skipped", (4,), None)
        data = json.loads(JsonFormatter().format(record))
        self.assertEqual(data["level"], "WARNING")
        self.assertEqual(data["logger"], "ledger_doctor.rows")
        self.assertEqual(data["message"], "Row 4 skipped")


if __name__ == "__main__":
    unittest.main()
