import base64
import json
import logging

import pytest

from billing.errors import AuthError
from billing.signature import compute_signature, verify_signature
from utils import config, secrets
from utils.http import parse_body, raw_body, vendor_header
from utils.logger import JsonFormatter, get_logger


class StubSecretsManager:
    def __init__(self, secret_string):
        self.secret_string = secret_string
        self.calls = 0

    def get_secret_value(self, SecretId):
        self.calls += 1
        return {"SecretString": self.secret_string}


class FakeBoto3:
    def __init__(self, client):
        self._client = client

    def client(self, name, region_name=None):
        assert name == "secretsmanager"
        return self._client


def test_load_settings_defaults():
    settings = config.load_settings()
    assert settings.store_backend == "memory"
    assert settings.intent_ttl_seconds == 10800
    assert settings.intent_index_ttl_seconds == 7 * 24 * 3600
    assert settings.claim_retry_after_seconds == 20


def test_load_settings_requires_tables_for_dynamodb(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "dynamodb")
    monkeypatch.setenv("INTENTS_TABLE", "intents")
    monkeypatch.delenv("TRANSACTIONS_TABLE", raising=False)
    monkeypatch.delenv("SUBSCRIPTIONS_TABLE", raising=False)
    with pytest.raises(RuntimeError, match="TRANSACTIONS_TABLE, SUBSCRIPTIONS_TABLE"):
        config.load_settings()


def test_load_settings_rejects_bad_integers(monkeypatch):
    monkeypatch.setenv("INTENT_TTL_SECONDS", "three hours")
    with pytest.raises(RuntimeError, match="INTENT_TTL_SECONDS"):
        config.load_settings()


def test_webhook_secret_from_secrets_manager(monkeypatch):
    stub = StubSecretsManager(json.dumps({"webhook_secret": "from-sm"}))
    monkeypatch.setattr(secrets, "boto3", FakeBoto3(stub))
    monkeypatch.setattr(secrets, "_cache", {})
    monkeypatch.setenv("WEBHOOK_SECRET_NAME", "billing/webhook")

    settings = config.load_settings()
    assert secrets.get_webhook_secret(settings) == "from-sm"
    assert secrets.get_webhook_secret(settings) == "from-sm"
    assert stub.calls == 1


def test_webhook_secret_raw_string_and_precedence(monkeypatch):
    stub = StubSecretsManager("plain-secret")
    monkeypatch.setattr(secrets, "boto3", FakeBoto3(stub))
    monkeypatch.setattr(secrets, "_cache", {})
    monkeypatch.setenv("WEBHOOK_SECRET_NAME", "billing/webhook")
    assert secrets.get_webhook_secret(config.load_settings()) == "plain-secret"

    monkeypatch.setenv("WEBHOOK_SECRET", "env-wins")
    assert secrets.get_webhook_secret(config.load_settings()) == "env-wins"


def test_webhook_secret_unset_disables_verification():
    assert secrets.get_webhook_secret(config.load_settings()) is None
    verify_signature("{}", None, None)


def test_verify_signature():
    body = '{"amount": 200}'
    verify_signature(body, compute_signature(body, "k"), "k")
    verify_signature(body, "SHA256=" + compute_signature(body, "k").upper(), "k")
    with pytest.raises(AuthError):
        verify_signature(body, compute_signature(body, "other"), "k")
    with pytest.raises(AuthError):
        verify_signature(body, "", "k")


def test_raw_body_decodes_base64():
    event = {"body": base64.b64encode(b'{"a": 1}').decode(), "isBase64Encoded": True}
    assert raw_body(event) == '{"a": 1}'
    assert parse_body(event) == {"a": 1}


def test_parse_body_variants():
    assert parse_body({"body": {"already": "parsed"}}) == {"already": "parsed"}
    assert parse_body({"body": None}) == {}
    with pytest.raises(json.JSONDecodeError):
        parse_body({"body": "[1, 2]"})


def test_vendor_header_matches_any_vendor():
    event = {"headers": {"X-Intasend-Signature": "abc", "X-Lipana-Event": "payment.success"}}
    assert vendor_header(event, "signature") == "abc"
    assert vendor_header(event, "event") == "payment.success"
    assert vendor_header({"headers": {}}, "signature") is None


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("billing", logging.INFO, __file__, 1, "claim.bound", None, None)
    record.txn_id = "TXN_1"
    line = json.loads(JsonFormatter().format(record))
    assert line["message"] == "claim.bound"
    assert line["level"] == "INFO"
    assert line["txn_id"] == "TXN_1"


def test_component_loggers_share_one_handler():
    claim_logger = get_logger("claim")
    assert claim_logger.name == "billing.claim"
    assert claim_logger.parent is get_logger()
    assert len(get_logger().handlers) == 1
    get_logger("claim")
    assert len(get_logger().handlers) == 1
