import json
from datetime import datetime

from billing.errors import BillingError, ConflictError, NotFoundError, PendingError, ValidationError
from billing.normalize import is_failure_status, normalize_device_id, normalize_phone
from billing.stores import Stores, get_stores
from billing.subscriptions import apply_claim
from utils import timeutil
from utils.config import load_settings
from utils.http import json_response, parse_body
from utils.logger import get_logger

logger = get_logger("claim")

RETRY_AFTER_SECONDS = 20


def _clean(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def claim_subscription(
    payload: dict,
    stores: Stores,
    now: datetime,
    retry_after_seconds: int = RETRY_AFTER_SECONDS,
) -> dict:
    """
    POST /claim: bind the subscription a confirmed payment bought to the
    caller's device. The payment is located by transaction id, then M-Pesa
    receipt, then the transaction recorded against the caller's intent.
    """
    device_id = normalize_device_id(payload.get("device_id"))
    if not device_id:
        raise ValidationError("device_id is required", reason="invalid_device_id")

    caller_phone = None
    if _clean(payload.get("phone")):
        caller_phone = normalize_phone(payload.get("phone"))
        if not caller_phone:
            raise ValidationError("Invalid phone number", reason="invalid_phone")

    transaction_id = _clean(payload.get("transaction_id"))
    receipt = _clean(payload.get("receipt") or payload.get("mpesa_receipt"))
    intent_id = _clean(payload.get("intent_id"))

    if not (transaction_id or receipt or intent_id):
        raise ValidationError(
            "One of transaction_id, receipt or intent_id is required",
            reason="missing_reference",
        )

    intent = stores.intents.get(intent_id, now) if intent_id else None
    if intent and intent.device_id != device_id:
        logger.warning(
            "claim.intent_device_mismatch",
            extra={"intent_id": intent.id, "intent_device": intent.device_id, "device_id": device_id},
        )
        raise ConflictError("Intent belongs to a different device", reason="device_mismatch")

    txn = (
        stores.ledger.get(transaction_id)
        or stores.ledger.find_by_receipt(receipt)
        or stores.ledger.find_by_intent(intent_id)
    )

    if txn is None:
        if intent:
            logger.info("claim.pending", extra={"intent_id": intent.id, "device_id": device_id})
            raise PendingError(
                "Payment not confirmed yet",
                retry_after_seconds=retry_after_seconds,
                intent_id=intent.id,
            )
        logger.info(
            "claim.not_found",
            extra={"transaction_id": transaction_id, "receipt": receipt, "intent_id": intent_id},
        )
        raise NotFoundError("No matching payment found", reason="payment_not_found")

    if not txn.succeeded:
        if is_failure_status(txn.status, txn.event):
            raise NotFoundError("Payment did not succeed", reason="payment_failed", status=txn.status)
        raise PendingError(
            "Payment not confirmed yet",
            retry_after_seconds=retry_after_seconds,
            transaction_id=txn.id,
        )

    # The intent recorded on the transaction also pins the device.
    if intent is None and txn.intent_id:
        intent = stores.intents.get(txn.intent_id, now)
        if intent and intent.device_id != device_id:
            logger.warning(
                "claim.intent_device_mismatch",
                extra={"intent_id": intent.id, "intent_device": intent.device_id, "device_id": device_id},
            )
            raise ConflictError("Payment belongs to a different device", reason="device_mismatch")

    phones = {p for p in (caller_phone, txn.phone, intent.phone if intent else None) if p}
    if len(phones) > 1:
        logger.warning(
            "claim.phone_mismatch",
            extra={"txn_id": txn.id, "caller_phone": caller_phone, "txn_phone": txn.phone},
        )
        raise ConflictError("Phone number does not match the payment", reason="phone_mismatch")
    if not phones:
        raise ValidationError("Unable to determine the phone for this payment", reason="missing_phone")
    phone = phones.pop()

    existing = stores.subscriptions.get(phone)
    subscription = apply_claim(existing, txn, phone, device_id, now)
    stores.subscriptions.put(subscription)
    if intent:
        stores.intents.mark_used(intent, txn.id, now)

    logger.info(
        "claim.bound",
        extra={"txn_id": txn.id, "phone": phone, "device_id": device_id, "paid_until": subscription.paid_until},
    )
    return {
        "phone": phone,
        "plan": subscription.plan,
        "paid_until": subscription.paid_until,
        "device_id": subscription.device_id,
        "status": subscription.status,
        "transaction_id": txn.id,
    }


def lambda_handler(event, context):
    logger.info(
        "claim.lambda_start",
        extra={"request_id": getattr(context, "aws_request_id", None)},
    )

    try:
        settings = load_settings()
    except RuntimeError as e:
        logger.error("claim.env_error", extra={"error": str(e)})
        return json_response(500, {"error": "server_misconfigured"})

    try:
        payload = parse_body(event)
    except json.JSONDecodeError:
        return json_response(400, {"error": "invalid_json"})

    try:
        result = claim_subscription(
            payload,
            get_stores(settings),
            timeutil.utcnow(),
            retry_after_seconds=settings.claim_retry_after_seconds,
        )
        return json_response(200, result)
    except BillingError as e:
        return e.to_response()
    except Exception as e:
        logger.exception("claim.error", extra={"error": str(e)})
        return json_response(500, {"error": "claim_failed", "message": str(e)})
