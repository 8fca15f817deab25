import json
from datetime import datetime

from billing.errors import BillingError, ValidationError
from billing.normalize import normalize_device_id, normalize_phone, normalize_plan, to_amount
from billing.stores import Stores, get_stores
from utils import timeutil
from utils.config import load_settings
from utils.http import json_response, parse_body
from utils.logger import get_logger

logger = get_logger("intent")


def create_intent(payload: dict, stores: Stores, now: datetime) -> dict:
    """POST /init: register the (phone, device, amount) a payment is about to come from."""
    phone = normalize_phone(payload.get("phone"))
    device_id = normalize_device_id(payload.get("device_id"))

    if not phone or not device_id:
        logger.warning(
            "intent.missing_fields",
            extra={"phone_valid": bool(phone), "device_valid": bool(device_id)},
        )
        raise ValidationError("phone and device_id are required", reason="missing_fields")

    amount = None
    if payload.get("amount") not in (None, ""):
        amount = to_amount(payload.get("amount"))
        if amount is None:
            raise ValidationError("amount must be a number", reason="invalid_amount")

    plan = None
    if payload.get("plan") not in (None, ""):
        plan = normalize_plan(payload.get("plan"))
        if plan is None:
            raise ValidationError("unknown plan", reason="invalid_plan")

    intent = stores.intents.create(phone, device_id, now, amount=amount, plan=plan)
    return {"intent_id": intent.id, "expires_at": intent.expires_at}


def lambda_handler(event, context):
    logger.info(
        "intent.lambda_start",
        extra={"request_id": getattr(context, "aws_request_id", None)},
    )

    try:
        settings = load_settings()
    except RuntimeError as e:
        logger.error("intent.env_error", extra={"error": str(e)})
        return json_response(500, {"error": "server_misconfigured"})

    try:
        payload = parse_body(event)
    except json.JSONDecodeError:
        return json_response(400, {"error": "invalid_json"})

    try:
        result = create_intent(payload, get_stores(settings), timeutil.utcnow())
        return json_response(200, result)
    except BillingError as e:
        return e.to_response()
    except Exception as e:
        logger.exception("intent.store_error", extra={"error": str(e)})
        return json_response(500, {"error": "storage_failure", "message": str(e)})
