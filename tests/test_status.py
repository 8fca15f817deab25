import claim
import status
import webhook
from billing.subscriptions import Subscription
from conftest import api_event, load_event, response_body

PHONE = "254712345678"


def _subscribe(device_id="dev-123"):
    payload = {"transaction_id": "TXN_1", "phone": PHONE, "amount": 200, "status": "success",
               "mpesa_receipt": "QWE123RTY"}
    webhook.lambda_handler(api_event("POST", "/", payload), None)
    if device_id:
        claim.lambda_handler(
            api_event("POST", "/claim", {"device_id": device_id, "receipt": "QWE123RTY"}), None
        )


def _status(phone=PHONE, device_id="dev-123"):
    query = {k: v for k, v in (("phone", phone), ("device_id", device_id)) if v is not None}
    resp = status.lambda_handler(api_event("GET", "/status", query=query), None)
    return resp["statusCode"], response_body(resp)


def test_status_premium_for_bound_device(stores, clock):
    _subscribe()
    resp = status.lambda_handler(load_event("api_status.json"), None)
    body = response_body(resp)

    assert resp["statusCode"] == 200
    assert body["premium"] is True
    assert body["plan"] == "daily"
    assert "reason" not in body


def test_status_accepts_local_phone_format(stores, clock):
    _subscribe()
    code, body = _status(phone="0712345678")
    assert code == 200
    assert body["phone"] == PHONE
    assert body["premium"] is True


def test_status_device_mismatch(stores, clock):
    _subscribe()
    code, body = _status(device_id="dev-999")
    assert code == 200
    assert body["premium"] is False
    assert body["reason"] == "device_mismatch"


def test_status_device_unbound(stores, clock):
    _subscribe(device_id=None)
    _, body = _status()
    assert body["premium"] is False
    assert body["reason"] == "device_unbound"


def test_status_no_subscription(stores, clock):
    _, body = _status()
    assert body == {
        "phone": PHONE,
        "premium": False,
        "reason": "no_active_subscription",
        "message": "No active subscription",
    }


def test_status_expired(stores, clock):
    _subscribe()
    clock.advance(days=1, seconds=1)
    _, body = _status()
    assert body["premium"] is False
    assert body["reason"] == "no_active_subscription"
    assert body["message"] == "Subscription expired"
    assert body["paid_until"] is not None


def test_status_cancelled(stores, clock):
    _subscribe()
    webhook.lambda_handler(
        api_event("POST", "/", {"event": "subscription.cancelled", "data": {"id": "SUB_1", "phone": PHONE}}),
        None,
    )
    _, body = _status()
    assert body["premium"] is False
    assert body["message"] == "Subscription cancelled"


def test_status_requires_phone_and_device(stores):
    code, body = _status(phone=None)
    assert code == 400
    assert body["reason"] == "invalid_phone"

    code, body = _status(device_id=None)
    assert code == 400
    assert body["reason"] == "invalid_device_id"

    code, _ = _status(phone="not-a-phone")
    assert code == 400


def test_status_is_read_only(stores, clock):
    _subscribe()
    before = {k: stores.subscriptions.store.get_value(k) for k in stores.subscriptions.store.keys()}
    _status(device_id="dev-999")
    after = {k: stores.subscriptions.store.get_value(k) for k in stores.subscriptions.store.keys()}
    assert before == after


def test_status_uses_paid_until_boundary(stores, clock):
    _subscribe()
    clock.advance(hours=23, minutes=59)
    assert _status()[1]["premium"] is True
    clock.advance(minutes=1)
    assert _status()[1]["premium"] is False


def test_status_tolerates_missing_paid_until(stores, clock):
    stores.subscriptions.put(
        Subscription(
            phone=PHONE, status="active", plan="daily", amount=200.0, paid_until=None,
            last_txn=None, last_payment_at=None, mpesa_receipt=None, reference=None,
            updated_at="2026-03-01T09:00:00.000Z", device_id="dev-123",
        )
    )
    assert _status()[1]["premium"] is True
