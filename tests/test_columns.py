import unittest

from ledger_doctor.columns import fold_header, resolve_columns
from ledger_doctor.exceptions import SchemaResolutionError

from ledger_fixtures import TR_HEADER


class FoldHeaderTests(unittest.TestCase):
    def test_turkish_i_variants_fold_together(self):
        self.assertEqual(fold_header("CARİ HESAP ADI"), "cari hesap adi")
        self.assertEqual(fold_header("Cari Hesap Adı"), "cari hesap adi")

    def test_whitespace_collapses(self):
        self.assertEqual(fold_header("  Cari   Hesap\nKodu "), "cari hesap kodu")

    def test_none_is_empty(self):
        self.assertEqual(fold_header(None), "")


class ResolveColumnsTests(unittest.TestCase):
    def test_turkish_export_header_resolves_every_field(self):
        columns = resolve_columns(TR_HEADER)
        self.assertEqual(columns["code"], 0)
        self.assertEqual(columns["name"], 1)
        self.assertEqual(columns["sector_code"], 2)
        self.assertEqual(columns["payment_term"], 5)
        self.assertEqual(columns["past_due_balance"], 6)
        self.assertEqual(columns["past_due_date"], 7)
        self.assertEqual(columns["valor"], 8)
        self.assertEqual(columns["not_due_balance"], 9)
        self.assertEqual(columns["not_due_date"], 10)
        self.assertEqual(columns["total_balance"], 11)
        self.assertEqual(columns["reference_date"], 12)
        self.assertEqual(columns.missing, [])

    def test_upper_case_turkish_headers(self):
        columns = resolve_columns(["CARİ HESAP KODU", "CARİ HESAP ADI", "TOPLAM BAKİYE"])
        self.assertEqual(columns["code"], 0)
        self.assertEqual(columns["name"], 1)
        self.assertEqual(columns["total_balance"], 2)

    def test_english_headers(self):
        columns = resolve_columns(["Customer Code", "Customer Name", "Past Due Balance", "Total Balance"])
        self.assertEqual(columns["code"], 0)
        self.assertEqual(columns["name"], 1)
        self.assertEqual(columns["past_due_balance"], 2)
        self.assertEqual(columns["total_balance"], 3)
        self.assertIsNone(columns["sector_code"])
        self.assertIn("sector_code", columns.missing)

    def test_first_containing_header_wins(self):
        columns = resolve_columns(["Cari Hesap Kodu (eski)", "Cari Hesap Kodu", "Cari Hesap Adı"])
        self.assertEqual(columns["code"], 0)
        self.assertEqual(columns.matched_headers["code"], "Cari Hesap Kodu (eski)")

    def test_turkish_needle_is_tried_before_english(self):
        columns = resolve_columns(["Customer Code", "Cari Hesap Kodu", "Cari Hesap Adı"])
        self.assertEqual(columns["code"], 1)

    def test_missing_name_raises_with_details(self):
        with self.assertRaises(SchemaResolutionError) as ctx:
            resolve_columns(["Cari Hesap Kodu", "Toplam Bakiye", None])
        self.assertEqual(ctx.exception.missing, ["name"])
        self.assertEqual(ctx.exception.headers, ["Cari Hesap Kodu", "Toplam Bakiye"])
        self.assertIsInstance(ctx.exception, ValueError)

    def test_non_string_headers_are_tolerated(self):
        columns = resolve_columns([2024, "Cari Hesap Kodu", "Cari Hesap Adı", None])
        self.assertEqual(columns["code"], 1)

    def test_to_dict_reports_index_and_header(self):
        payload = resolve_columns(["Cari Hesap Kodu", "Cari Hesap Adı"]).to_dict()
        self.assertEqual(payload["code"], {"index": 0, "header": "Cari Hesap Kodu"})
        self.assertEqual(payload["valor"], {"index": None, "header": None})


if __name__ == "__main__":
    unittest.main()
