import unittest
from unittest import mock

import requests

from ledger_doctor.config import StoreConfig
from ledger_doctor.exceptions import ConfigurationError, StoreError
from ledger_doctor.store import MemoryStore, SupabaseStore
from ledger_doctor.store.supabase import filter_param, parse_content_range


class MemoryStoreTests(unittest.TestCase):
    def test_upsert_inserts_then_merges_on_conflict_key(self):
        store = MemoryStore()
        first = store.upsert("customers", [{"code": "C1", "name": "A"}, {"code": "C2", "name": "B"}], "code")
        self.assertEqual([row["id"] for row in first], [1, 2])

        second = store.upsert("customers", [{"code": "C1", "name": "A2"}], "code")
        self.assertEqual(second, [{"id": 1, "code": "C1", "name": "A2"}])
        self.assertEqual(store.count("customers"), 2)

    def test_return_rows_false_returns_nothing(self):
        store = MemoryStore(return_rows=False)
        self.assertEqual(store.upsert("customers", [{"code": "C1"}], "code"), [])
        self.assertEqual(store.count("customers"), 1)

    def test_select_equality_in_and_projection(self):
        store = MemoryStore()
        store.upsert("customers", [{"code": c, "name": c.lower()} for c in ("A", "B", "C")], "code")
        self.assertEqual([row["code"] for row in store.select("customers", {"code": ["A", "C"]})], ["A", "C"])
        self.assertEqual(store.select("customers", {"code": "B"}, columns="id, code"), [{"id": 2, "code": "B"}])
        self.assertEqual(store.select("customers", {"code": []}), [])

    def test_null_conflict_key_is_rejected(self):
        store = MemoryStore()
        with self.assertRaises(StoreError):
            store.upsert("customer_balances", [{"customer_id": None}], "customer_id")

    def test_returned_rows_are_copies(self):
        store = MemoryStore()
        row = store.upsert("customers", [{"code": "C1", "name": "A"}], "code")[0]
        row["name"] = "changed"
        self.assertEqual(store.select("customers")[0]["name"], "A")

    def test_insert_assigns_ids_after_explicit_ones(self):
        store = MemoryStore()
        store.insert("customer_notes", [{"id": 10, "content": "x"}])
        stored = store.insert("customer_notes", [{"content": "y"}])
        self.assertEqual(stored[0]["id"], 11)


def fake_response(status=200, payload=None, headers=None, text=""):
    response = mock.Mock()
    response.status_code = status
    response.headers = headers or {}
    response.text = text
    response.content = b"[]" if payload is None else b"x"
    response.json.return_value = [] if payload is None else payload
    return response


class SupabaseStoreTests(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.session.headers = {}
        self.store = SupabaseStore("https://demo.supabase.co/", "secret", timeout=5, session=self.session)

    def test_auth_headers_are_set_on_session(self):
        self.assertEqual(self.session.headers["apikey"], "secret")
        self.assertEqual(self.session.headers["Authorization"], "Bearer secret")

    def test_upsert_posts_with_merge_preference(self):
        self.session.request.return_value = fake_response(201, [{"id": 7, "code": "C1"}])
        rows = self.store.upsert("customers", [{"code": "C1"}], "code")

        self.assertEqual(rows, [{"id": 7, "code": "C1"}])
        self.session.request.assert_called_once_with(
            "POST",
            "https://demo.supabase.co/rest/v1/customers",
            params={"on_conflict": "code"},
            json=[{"code": "C1"}],
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
            timeout=5,
        )

    def test_empty_upsert_makes_no_request(self):
        self.assertEqual(self.store.upsert("customers", [], "code"), [])
        self.session.request.assert_not_called()

    def test_upsert_with_empty_body_returns_empty_list(self):
        response = fake_response(201)
        response.content = b""
        self.session.request.return_value = response
        self.assertEqual(self.store.upsert("customers", [{"code": "C1"}], "code"), [])

    def test_select_renders_filters(self):
        self.session.request.return_value = fake_response(200, [{"id": 1, "code": "C1"}])
        self.store.select("customers", {"code": ["C1", "A,B"], "id": 5}, columns="id, code")

        _, kwargs = self.session.request.call_args
        self.assertEqual(
            kwargs["params"],
            {
                "select": "id,code",
                "order": "id.asc",
                "code": 'in.(C1,"A,B")',
                "id": "eq.5",
                "limit": "1000",
                "offset": "0",
            },
        )

    def test_select_reads_every_page(self):
        store = SupabaseStore("https://demo.supabase.co", "secret", session=self.session, page_size=2)
        self.session.request.side_effect = [
            fake_response(200, [{"id": 1}, {"id": 2}]),
            fake_response(200, [{"id": 3}]),
        ]

        rows = store.select("customer_balances")

        self.assertEqual([row["id"] for row in rows], [1, 2, 3])
        offsets = [call.kwargs["params"]["offset"] for call in self.session.request.call_args_list]
        self.assertEqual(offsets, ["0", "2"])

    def test_select_stops_after_empty_page(self):
        store = SupabaseStore("https://demo.supabase.co", "secret", session=self.session, page_size=2)
        self.session.request.side_effect = [
            fake_response(200, [{"id": 1}, {"id": 2}]),
            fake_response(200),
        ]
        self.assertEqual(len(store.select("customers")), 2)
        self.assertEqual(self.session.request.call_count, 2)

    def test_page_size_must_be_positive(self):
        with self.assertRaises(ConfigurationError):
            SupabaseStore("https://demo.supabase.co", "secret", session=self.session, page_size=0)

    def test_count_reads_content_range(self):
        self.session.request.return_value = fake_response(200, headers={"Content-Range": "0-24/42"})
        self.assertEqual(self.store.count("customers"), 42)
        args, kwargs = self.session.request.call_args
        self.assertEqual(args[0], "HEAD")
        self.assertEqual(kwargs["headers"], {"Prefer": "count=exact"})

    def test_http_error_becomes_store_error(self):
        self.session.request.return_value = fake_response(409, text='{"message":"duplicate key"}')
        with self.assertRaisesRegex(StoreError, "409"):
            self.store.upsert("customers", [{"code": "C1"}], "code")

    def test_network_error_becomes_store_error(self):
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaisesRegex(StoreError, "refused"):
            self.store.select("customers")

    def test_from_config_requires_url_and_key(self):
        with self.assertRaises(ConfigurationError):
            SupabaseStore.from_config(StoreConfig(url=None, key="k"))
        with self.assertRaises(ConfigurationError):
            SupabaseStore.from_config(StoreConfig(url="https://demo.supabase.co", key=None))
        store = SupabaseStore.from_config(StoreConfig(url="https://demo.supabase.co", key="k", timeout=3), session=self.session)
        self.assertEqual(store.rest_url, "https://demo.supabase.co/rest/v1")
        self.assertEqual(store.timeout, 3)


class PostgrestHelperTests(unittest.TestCase):
    def test_filter_param(self):
        self.assertEqual(filter_param(None), "is.null")
        self.assertEqual(filter_param(True), "eq.true")
        self.assertEqual(filter_param(("a b", 'q"x')), 'in.("a b","q\\"x")')

    def test_parse_content_range(self):
        self.assertEqual(parse_content_range("*/0"), 0)
        with self.assertRaises(StoreError):
            parse_content_range(None)
        with self.assertRaises(StoreError):
            parse_content_range("0-9/*")


if __name__ == "__main__":
    unittest.main()
