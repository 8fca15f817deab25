import json
import os
from datetime import datetime, timedelta, timezone

import pytest

from billing import stores as billing_stores
from utils import timeutil

EVENTS_DIR = os.path.join(os.path.dirname(__file__), "events")


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def timestamp(self):
        return self.now.timestamp()

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))
    monkeypatch.setattr(timeutil, "utcnow", fake)
    return fake


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    for name in (
        "WEBHOOK_SECRET", "WEBHOOK_SECRET_NAME", "LOGS_TABLE", "APP_VERSION",
        "INTENT_TTL_SECONDS", "INTENT_INDEX_TTL_SECONDS", "LOG_TTL_SECONDS", "CLAIM_RETRY_AFTER_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def stores(monkeypatch, clock):
    fresh = billing_stores.in_memory(clock=clock.timestamp)
    monkeypatch.setattr(billing_stores, "_stores", fresh)
    return fresh


def load_event(name):
    with open(os.path.join(EVENTS_DIR, name), "r", encoding="utf-8") as f:
        return json.load(f)


def api_event(method, path, body=None, query=None, headers=None):
    """Minimal API Gateway HTTP API (v2) event."""
    return {
        "version": "2.0",
        "rawPath": path,
        "headers": headers or {"content-type": "application/json"},
        "queryStringParameters": query,
        "requestContext": {"http": {"method": method, "path": path}},
        "body": body if body is None or isinstance(body, str) else json.dumps(body),
        "isBase64Encoded": False,
    }


def response_body(resp):
    return json.loads(resp["body"])
