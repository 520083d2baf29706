"""
Gift Lookup Toolkit
===================
Local developer tooling for the gift lookup Lambda:
  1. A mock of the Supabase REST endpoint for the Gifts table, served from a
     YAML/JSON fixture
  2. A CLI that runs the lookup against any endpoint (mock or real)

Dependencies (install via pip):
  flask>=3.0.0
  pyyaml>=6.0.0
  urllib3>=2.0.0
  boto3>=1.34.0

Example usage:
  # Serve gifts.yaml as the Gifts table on localhost:8080
  python lookup_toolkit.py serve gifts.yaml --apikey dev-key

  # In another terminal, look a code up against the mock
  SUPABASE_API_KEY=dev-key python lookup_toolkit.py invoke ABC1 \
       --rest-url http://localhost:8080/rest/v1

Fixture format (YAML or JSON):
  - gift_name: Coffee Voucher
    gift_code: ABC1
"""
from __future__ import annotations

import argparse
import importlib.util
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List

import yaml

HANDLER_PATH = Path(__file__).resolve().parent.parent / "app" / "lambdas" / "gift_lookup" / "handler.py"


# ---------------------------
# Fixture Helpers
# ---------------------------

def load_records(path: str, table: str = "Gifts") -> List[Dict[str, Any]]:
    """Read gift records from a YAML or JSON fixture."""
    with open(path, "r", encoding="utf-8") as f:
        if path.endswith((".yaml", ".yml")):
            raw = yaml.safe_load(f)
        else:
            raw = json.load(f)

    if isinstance(raw, dict):
        raw = raw.get(table, [])
    if not isinstance(raw, list):
        raise ValueError(f"Fixture {path} must hold a list of records")
    return raw


def load_handler():
    spec = importlib.util.spec_from_file_location("gift_lookup_handler", HANDLER_PATH)
    handler = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(handler)
    return handler


# ---------------------------
# Mock Table Endpoint
# ---------------------------

def _project(record: Dict[str, Any], columns: List[str]) -> Dict[str, Any]:
    if not columns:
        return dict(record)
    return {col: record.get(col) for col in columns}


def create_table_app(records: List[Dict[str, Any]], api_key: str, table: str = "Gifts"):
    from flask import Flask, jsonify, request

    app = Flask(__name__)

    @app.route("/rest/v1/<name>", methods=["GET"])
    def read_table(name):
        if request.headers.get("apikey") != api_key:
            return jsonify({
                "message": "Invalid API key",
                "hint": "Double check your Supabase `anon` or `service_role` API key.",
            }), 401

        if name != table:
            return jsonify({
                "code": "42P01",
                "message": f'relation "public.{name}" does not exist',
            }), 404

        select = request.args.get("select", "*")
        columns = [] if select.strip() == "*" else [c.strip() for c in select.split(",") if c.strip()]

        rows = records
        for column, condition in request.args.items():
            if column == "select":
                continue
            if not condition.startswith("eq."):
                return jsonify({"message": f"Unsupported filter: {column}={condition}"}), 400
            value = condition[len("eq."):]
            rows = [r for r in rows if str(r.get(column)) == value]

        return jsonify([_project(r, columns) for r in rows])

    return app


def run_table(fixture: str, host: str, port: int, api_key: str, table: str):
    records = load_records(fixture, table)
    app = create_table_app(records, api_key, table)
    print(f"[*] Mock {table} table ({len(records)} records) on http://{host}:{port}/rest/v1/{table}")
    app.run(host=host, port=port, threaded=True)


# ---------------------------
# CLI Interface
# ---------------------------

def cli(argv=None):
    parser = argparse.ArgumentParser(description="Gift Lookup Toolkit CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    # serve
    s = sub.add_parser("serve", help="Serve a fixture as a mock Gifts table")
    s.add_argument("fixture", help="Path to gifts YAML/JSON file")
    s.add_argument("--host", default="127.0.0.1", help="Bind address (default 127.0.0.1)")
    s.add_argument("--port", default=8080, type=int, help="Port (default 8080)")
    s.add_argument("--apikey", default=os.environ.get("SUPABASE_API_KEY", "dev-key"),
                   help="API key the mock accepts (default $SUPABASE_API_KEY or dev-key)")
    s.add_argument("--table", default="Gifts", help="Table name (default Gifts)")

    # invoke
    i = sub.add_parser("invoke", help="Look a gift code up and print the result")
    i.add_argument("code", help="Gift code to resolve")
    i.add_argument("--rest-url", default=None, help="REST endpoint root (default $SUPABASE_REST_URL)")
    i.add_argument("--table", default=None, help="Table name (default $GIFTS_TABLE)")
    i.add_argument("--server-side-filter", action="store_true", help="Filter by code in the query")

    args = parser.parse_args(argv)

    if args.command == "serve":
        run_table(args.fixture, args.host, args.port, args.apikey, args.table)
        return 0

    handler = load_handler()
    try:
        result = handler.lookup_gift(
            args.code,
            handler.resolve_api_key(),
            rest_url=args.rest_url,
            table=args.table,
            server_side_filter=args.server_side_filter or None,
        )
    except RuntimeError as e:
        print(f"[✗] Lookup failed: {e}")
        return 1
    print(result.decode("utf-8"))
    return 0


if __name__ == "__main__":
    sys.exit(cli())
