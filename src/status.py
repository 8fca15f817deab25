from datetime import datetime

from billing.errors import BillingError, ValidationError
from billing.normalize import normalize_device_id, normalize_phone
from billing.stores import Stores, get_stores
from billing.subscriptions import CANCELLED
from utils import timeutil
from utils.config import load_settings
from utils.http import json_response, query_params
from utils.logger import get_logger

log = get_logger("status")

NO_SUBSCRIPTION = "No active subscription"


def subscription_status(params: dict, stores: Stores, now: datetime) -> dict:
    """
    GET /status projection. `premium` is true only for an unexpired,
    uncancelled subscription bound to the calling device; otherwise `reason`
    tells the app whether to offer a claim or show the expired state.
    """
    phone = normalize_phone(params.get("phone"))
    device_id = normalize_device_id(params.get("device_id"))
    if not phone:
        raise ValidationError("Invalid phone number", reason="invalid_phone")
    if not device_id:
        raise ValidationError("Invalid device_id", reason="invalid_device_id")

    response = {"phone": phone, "premium": False}

    sub = stores.subscriptions.get(phone)
    if sub is None:
        response.update(reason="no_active_subscription", message=NO_SUBSCRIPTION)
        return response

    response.update(
        plan=sub.plan,
        amount=sub.amount,
        paid_until=sub.paid_until,
        last_payment=sub.last_payment_at,
        last_txn=sub.last_txn,
        subscription_status=sub.status,
    )

    paid_until = timeutil.parse_datetime(sub.paid_until)
    if sub.status == CANCELLED:
        response.update(reason="no_active_subscription", message="Subscription cancelled")
    elif sub.paid_until and (paid_until is None or paid_until <= now):
        response.update(reason="no_active_subscription", message="Subscription expired")
    elif not sub.device_id:
        response.update(reason="device_unbound", message="Subscription is not bound to a device yet")
    elif sub.device_id != device_id:
        response.update(reason="device_mismatch", message="Subscription is bound to another device")
    else:
        response["premium"] = True

    return response


def lambda_handler(event, context):
    params = query_params(event)
    log.info(
        "status.check",
        extra={"phone": params.get("phone"), "device_id": params.get("device_id")},
    )

    try:
        settings = load_settings()
    except RuntimeError as e:
        log.error("status.env_error", extra={"error": str(e)})
        return json_response(500, {"error": "server_misconfigured"})

    try:
        return json_response(200, subscription_status(params, get_stores(settings), timeutil.utcnow()))
    except BillingError as e:
        return e.to_response()
    except Exception as e:
        log.exception("status.error", extra={"error": str(e)})
        return json_response(500, {"error": "status_failed", "message": str(e)})
