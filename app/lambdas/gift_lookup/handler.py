# app/lambdas/gift_lookup/handler.py
import json
import logging
import math
import os

import boto3
import urllib3

logger = logging.getLogger()
logger.setLevel(logging.INFO)

SUPABASE_REST_URL = os.environ.get("SUPABASE_REST_URL", "https://project-placeholder.supabase.co/rest/v1")
GIFTS_TABLE = os.environ.get("GIFTS_TABLE", "Gifts")
API_KEY_SECRET_ID = os.environ.get("SUPABASE_API_KEY_SECRET_ID")
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "3.0"))
SERVER_SIDE_FILTER = os.environ.get("SERVER_SIDE_FILTER", "false").lower() in ("1", "true", "yes")

SELECT_FIELDS = "gift_name,gift_code"
NOT_FOUND = "not found"

http = urllib3.PoolManager()


class MissingApiKeyError(RuntimeError):
    """Raised when no Supabase API key is configured."""


class UpstreamRequestError(RuntimeError):
    """Raised when the table API reports an error."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


def resolve_api_key(secrets=None):
    """
    Find the Supabase API key.

    Looks at the invocation secrets first, then SUPABASE_API_KEY, then the
    Secrets Manager secret named by SUPABASE_API_KEY_SECRET_ID. Returns None
    when nothing is configured.
    """
    if secrets and secrets.get("apikey"):
        return secrets["apikey"]

    env_key = os.environ.get("SUPABASE_API_KEY")
    if env_key:
        return env_key

    if not API_KEY_SECRET_ID:
        return None

    client = boto3.client("secretsmanager")
    raw = client.get_secret_value(SecretId=API_KEY_SECRET_ID).get("SecretString")
    if not raw:
        return None
    # The secret is either the bare key or a JSON object holding it.
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(parsed, dict):
        return parsed.get("apikey")
    return raw


def _error_message(response):
    message = f"Request failed with status code {response.status}"
    try:
        payload = json.loads(response.data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return message
    if isinstance(payload, dict) and payload.get("message"):
        return f"{message}: {payload['message']}"
    return message


def _fail(message, status=None):
    logger.error("Gifts request error: %s", message)
    raise UpstreamRequestError("Request failed: " + message, status=status)


def fetch_gifts(api_key, gift_code=None, pool=None, rest_url=None, table=None, timeout=None):
    """GET every gift's name and code. Passing gift_code adds an eq. filter to the query."""
    pool = pool or http
    url = f"{(rest_url or SUPABASE_REST_URL).rstrip('/')}/{table or GIFTS_TABLE}"
    fields = {"select": SELECT_FIELDS}
    if gift_code is not None:
        fields["gift_code"] = f"eq.{gift_code}"

    try:
        response = pool.request(
            "GET",
            url,
            fields=fields,
            headers={"apikey": api_key},
            timeout=timeout if timeout is not None else HTTP_TIMEOUT,
            retries=False,
        )
    except urllib3.exceptions.HTTPError as e:
        _fail(str(e))

    if response.status >= 400:
        _fail(_error_message(response), status=response.status)

    try:
        data = json.loads(response.data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        _fail(f"invalid JSON in response: {e}", status=response.status)

    if not isinstance(data, list):
        _fail("expected a list of gift records", status=response.status)
    return data


def _to_number(value):
    if isinstance(value, (bool, int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return 0.0
    if "_" in text:
        return None
    if text.lower().startswith(("0x", "0o", "0b")):
        try:
            return float(int(text, 0))
        except ValueError:
            return None
    if text.lstrip("+-") == "Infinity":
        return -math.inf if text.startswith("-") else math.inf
    if text.lstrip("+-").lower() in ("inf", "infinity", "nan"):
        return None
    try:
        return float(text)
    except ValueError:
        return None


def codes_match(stored, code):
    """
    Loose equality between a stored gift_code and the requested code.

    Strings compare as strings. When one side is a number, the other side is
    converted to a number first, so "42" matches 42 and "4.0" matches 4.
    NaN never matches and None only matches None.
    """
    if stored is None or code is None:
        return stored is None and code is None
    if isinstance(stored, str) and isinstance(code, str):
        return stored == code

    left, right = _to_number(stored), _to_number(code)
    if left is None or right is None:
        return stored == code
    return left == right


def find_gift(records, gift_code):
    for record in records:
        if codes_match(record.get("gift_code"), gift_code):
            return record
    return None


def encode_string(value):
    if not isinstance(value, str):
        raise TypeError(f"expected a string to encode, got {type(value).__name__}")
    return value.encode("utf-8")


def lookup_gift(gift_code, api_key, pool=None, rest_url=None, table=None, timeout=None, server_side_filter=None):
    """Resolve gift_code to the encoded gift name, or to the encoded "not found" sentinel."""
    if not api_key:
        raise MissingApiKeyError("Error: Supabase API Key is not set!")

    if server_side_filter is None:
        server_side_filter = SERVER_SIDE_FILTER
    records = fetch_gifts(
        api_key,
        gift_code=gift_code if server_side_filter else None,
        pool=pool,
        rest_url=rest_url,
        table=table,
        timeout=timeout,
    )

    record = find_gift(records, gift_code)
    if record is None:
        return encode_string(NOT_FOUND)
    return encode_string(record.get("gift_name"))


def lambda_handler(event, context):
    """
    Gift code lookup.
    Event shape: {"args": ["<gift code>"], "secrets": {"apikey": "..."}}.
    Returns the encoded result as a 0x-prefixed hex string.
    """
    args = event.get("args") or []
    gift_code = args[0] if args else None
    logger.info("Gift lookup for code: %s", json.dumps(gift_code))

    api_key = resolve_api_key(event.get("secrets"))
    result = lookup_gift(gift_code, api_key)

    return {"result": "0x" + result.hex()}
