import base64
import json
import re
from typing import Optional

from utils.logger import get_logger

logger = get_logger("http")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": (
        "Content-Type, X-Lipana-Signature, X-Lipana-Event, "
        "X-Intasend-Signature, X-Intasend-Event"
    ),
}

_SIGNATURE_HEADER = re.compile(r"^x-(?:[a-z0-9]+-)?signature$")
_EVENT_HEADER = re.compile(r"^x-(?:[a-z0-9]+-)?event$")


def json_response(status_code: int, body: dict, headers: Optional[dict] = None) -> dict:
    merged = {"Content-Type": "application/json", "Access-Control-Allow-Origin": "*"}
    if headers:
        merged.update(headers)
    return {
        "statusCode": status_code,
        "headers": merged,
        "body": json.dumps(body),
    }


def preflight_response() -> dict:
    return {"statusCode": 204, "headers": dict(CORS_HEADERS), "body": ""}


def method(event: dict) -> str:
    http = event.get("requestContext", {}).get("http", {})
    return (http.get("method") or event.get("httpMethod") or "GET").upper()


def path(event: dict) -> str:
    raw = event.get("rawPath") or event.get("path") or "/"
    stripped = raw.rstrip("/")
    return stripped or "/"


def headers(event: dict) -> dict:
    """Header names lower-cased (HTTP API v2 already does this; REST API v1 does not)."""
    return {str(k).lower(): v for k, v in (event.get("headers") or {}).items()}


def vendor_header(event: dict, kind: str) -> Optional[str]:
    """First `x-<vendor>-signature` / `x-<vendor>-event` style header present."""
    pattern = _SIGNATURE_HEADER if kind == "signature" else _EVENT_HEADER
    for name, value in sorted(headers(event).items()):
        if pattern.match(name) and value:
            return value
    return None


def query_params(event: dict) -> dict:
    return dict(event.get("queryStringParameters") or {})


def raw_body(event: dict) -> str:
    """
    The request body exactly as received, for signature verification.
    API Gateway base64-encodes bodies it does not consider text.
    """
    body = event.get("body")
    if body is None:
        return ""
    if isinstance(body, (dict, list)):
        # Local tests may hand us an already-parsed payload.
        return json.dumps(body)
    if event.get("isBase64Encoded"):
        return base64.b64decode(body).decode("utf-8")
    return body


def parse_body(event: dict) -> dict:
    """
    Extract and parse the JSON body from the Lambda event.

    - For API Gateway / HttpApi: event["body"] should be a JSON string.
    - For direct tests: event["body"] may already be the payload.
    An empty body parses as {}.
    """
    body = event.get("body")

    if isinstance(body, dict):
        return body

    text = raw_body(event)
    if not text.strip():
        return {}

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.warning(
            "http.invalid_json",
            extra={"body_preview": text[:200]},
        )
        raise

    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Expected a JSON object", text, 0)
    return parsed
