import json
from datetime import datetime

from billing import normalize
from billing.errors import BillingError, ValidationError
from billing.ledger import Transaction
from billing.plans import DEFAULT_PLAN, infer_plan_from_amount
from billing.signature import verify_signature
from billing.stores import Stores, get_stores
from billing.subscriptions import apply_cancellation, apply_payment, earned_until
from utils import timeutil
from utils.config import load_settings
from utils.http import json_response, raw_body, vendor_header
from utils.logger import get_logger
from utils.secrets import get_webhook_secret

logger = get_logger("webhook")


def process_webhook(
    body: str,
    signature: str,
    event_header: str,
    secret: str,
    stores: Stores,
    now: datetime,
) -> dict:
    """
    Reconcile one processor callback into the ledger and the subscription.

    Raises AuthError on a bad signature and ValidationError on a body that is
    not JSON. Anything that parses is acknowledged, even when no phone can be
    resolved, so the processor does not retry forever.
    """
    # 1) Signature over the raw bytes, before anything else
    verify_signature(body, signature, secret)

    try:
        parsed = json.loads(body) if body.strip() else {}
    except json.JSONDecodeError:
        logger.warning("webhook.invalid_json", extra={"body_preview": body[:200]})
        raise ValidationError("Body is not valid JSON", reason="invalid_json")

    # 2) Normalize
    payload = normalize.extract_payload(parsed)
    event_name = normalize.extract_event(parsed, event_header)
    reference = normalize.extract_reference(payload)
    phone = normalize.extract_phone(payload, reference)
    amount = normalize.extract_amount(payload)
    device_id = normalize.extract_device_id(payload, reference)
    intent_id = normalize.extract_intent_id(payload, reference)
    plan = normalize.explicit_plan(payload, reference)
    status = normalize.extract_status(payload)
    receipt = normalize.extract_receipt(payload)
    # Without a processor id, retries of a receipted payment still share one id.
    txn_id = normalize.extract_transaction_id(payload) or (
        f"rcpt_{receipt}" if receipt else f"txn_{timeutil.epoch_millis(now)}"
    )

    logger.info(
        "webhook.extracted",
        extra={
            "txn_id": txn_id,
            "event": event_name,
            "phone": phone,
            "amount": amount,
            "status": status,
            "receipt": receipt,
            "intent_id": intent_id,
        },
    )

    # 3) Resolve the intent, 4) backfill from it; payload values win
    intent = stores.intents.resolve(now, intent_id=intent_id, phone=phone, amount=amount)
    if intent:
        phone = phone or intent.phone
        amount = amount if amount is not None else intent.amount
        device_id = device_id or intent.device_id
        plan = plan or intent.plan
        intent_id = intent.id
        logger.info("webhook.intent_resolved", extra={"txn_id": txn_id, "intent_id": intent.id})

    plan = plan or infer_plan_from_amount(amount) or DEFAULT_PLAN
    success = normalize.is_success_status(status, event_name)

    txn = Transaction(
        id=txn_id,
        phone=phone,
        amount=amount,
        plan=plan,
        status=status,
        mpesa_receipt=receipt,
        reference=reference,
        device_id=device_id,
        intent_id=intent_id,
        event=event_name,
        timestamp=timeutil.isoformat(now),
    )

    existing = stores.subscriptions.get(phone) if phone else None
    if success and phone:
        txn.paid_until = timeutil.isoformat(earned_until(existing, plan, now))

    # 5) Ledger; a replay gets back the first delivery's record
    txn, created = stores.ledger.record(txn)
    if txn.phone != phone:
        existing = stores.subscriptions.get(txn.phone) if txn.phone else None

    subscription = None
    if txn.succeeded and txn.phone:
        # 6) Activate / extend
        # An intent already consumed by another payment no longer vouches for a device.
        vouching = intent and not (intent.txn_id and intent.txn_id != txn.id)
        subscription = apply_payment(
            existing, txn, now, intent_device=intent.device_id if vouching else None
        )
        stores.subscriptions.put(subscription)
        if intent:
            stores.intents.mark_used(intent, txn.id, now)
    elif txn.phone and existing and normalize.is_cancellation(status, event_name):
        subscription = apply_cancellation(existing, now)
        stores.subscriptions.put(subscription)
    elif not txn.phone:
        logger.warning(
            "webhook.missing_phone",
            extra={"txn_id": txn.id, "reference": reference},
        )

    stores.audit.record(
        now,
        txn.id,
        event=event_name,
        phone=txn.phone,
        amount=txn.amount,
        status=txn.status,
        replay=not created,
    )

    response = {
        "success": True,
        "message": "Payment processed successfully",
        "transaction_id": txn.id,
        "phone": txn.phone,
        "amount": txn.amount,
        "status": txn.status,
        "plan": txn.plan,
        "duplicate": not created,
        "processed_at": timeutil.isoformat(now),
    }
    if subscription:
        response["subscription_status"] = subscription.status
        response["paid_until"] = subscription.paid_until
    return response


def lambda_handler(event, context):
    logger.info(
        "webhook.lambda_start",
        extra={"request_id": getattr(context, "aws_request_id", None)},
    )

    try:
        settings = load_settings()
        secret = get_webhook_secret(settings)
    except RuntimeError as e:
        logger.error("webhook.env_error", extra={"error": str(e)})
        return json_response(500, {"success": False, "error": "server_misconfigured"})

    try:
        result = process_webhook(
            raw_body(event),
            vendor_header(event, "signature"),
            vendor_header(event, "event"),
            secret,
            get_stores(settings),
            timeutil.utcnow(),
        )
        return json_response(200, result)
    except BillingError as e:
        return json_response(e.status_code, dict(e.to_body(), success=False))
    except Exception as e:
        logger.exception("webhook.processing_error", extra={"error": str(e)})
        return json_response(
            500,
            {"success": False, "error": "Processing error", "message": str(e)},
        )
