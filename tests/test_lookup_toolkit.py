# tests/test_lookup_toolkit.py
"""Unit tests for the local gift lookup toolkit."""
import importlib
import importlib.util
import json
import os
from unittest.mock import patch

import pytest

_reference_dir = os.path.join(os.path.dirname(__file__), "..", "reference")

spec = importlib.util.spec_from_file_location("lookup_toolkit", os.path.join(_reference_dir, "lookup_toolkit.py"))
toolkit = importlib.util.module_from_spec(spec)
spec.loader.exec_module(toolkit)


RECORDS = [
    {"gift_name": "Coffee Voucher", "gift_code": "ABC1", "stock": 3},
    {"gift_name": "Book", "gift_code": 42, "stock": 1},
]


@pytest.fixture
def client():
    app = toolkit.create_table_app(RECORDS, api_key="dev-key")
    return app.test_client()


class TestLoadRecords:
    def test_yaml_list(self, tmp_path):
        path = tmp_path / "gifts.yaml"
        path.write_text("- gift_name: Coffee Voucher\n  gift_code: ABC1\n", encoding="utf-8")
        assert toolkit.load_records(str(path)) == [{"gift_name": "Coffee Voucher", "gift_code": "ABC1"}]

    def test_json_keyed_by_table(self, tmp_path):
        path = tmp_path / "gifts.json"
        path.write_text(json.dumps({"Gifts": RECORDS}), encoding="utf-8")
        assert toolkit.load_records(str(path)) == RECORDS

    def test_rejects_scalar(self, tmp_path):
        path = tmp_path / "gifts.json"
        path.write_text("7", encoding="utf-8")
        with pytest.raises(ValueError, match="list of records"):
            toolkit.load_records(str(path))


class TestTableApp:
    def test_rejects_missing_apikey(self, client):
        resp = client.get("/rest/v1/Gifts")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid API key"

    def test_unknown_table(self, client):
        resp = client.get("/rest/v1/Vouchers", headers={"apikey": "dev-key"})
        assert resp.status_code == 404

    def test_select_projects_columns(self, client):
        resp = client.get("/rest/v1/Gifts?select=gift_name,gift_code", headers={"apikey": "dev-key"})
        assert resp.status_code == 200
        assert resp.get_json() == [
            {"gift_name": "Coffee Voucher", "gift_code": "ABC1"},
            {"gift_name": "Book", "gift_code": 42},
        ]

    def test_eq_filter(self, client):
        resp = client.get("/rest/v1/Gifts?select=gift_name&gift_code=eq.42", headers={"apikey": "dev-key"})
        assert resp.get_json() == [{"gift_name": "Book"}]

    def test_unsupported_filter(self, client):
        resp = client.get("/rest/v1/Gifts?stock=gt.1", headers={"apikey": "dev-key"})
        assert resp.status_code == 400


class TestCli:
    def test_invoke_prints_gift_name(self, capsys):
        handler = toolkit.load_handler()
        with patch.object(toolkit, "load_handler", return_value=handler), \
                patch.object(handler, "resolve_api_key", return_value="dev-key"), \
                patch.object(handler, "fetch_gifts", return_value=RECORDS):
            code = toolkit.cli(["invoke", "ABC1"])

        assert code == 0
        assert capsys.readouterr().out.strip() == "Coffee Voucher"

    def test_invoke_fails_without_key(self, capsys):
        handler = toolkit.load_handler()
        with patch.object(toolkit, "load_handler", return_value=handler), \
                patch.object(handler, "resolve_api_key", return_value=None):
            code = toolkit.cli(["invoke", "ABC1"])

        assert code == 1
        assert "API Key is not set" in capsys.readouterr().out
