"""
Normalization of heterogeneous payment-processor payloads.

Processors (Lipana, IntaSend, Daraja relays, ...) name the same value in
different ways. Each logical value has an ordered list of candidate field
paths; `first_value` walks that list and the first present candidate wins.
Where a value may also be smuggled through the free-text `reference`, a
regex fallback runs only when no candidate field produced a usable value.
"""

import math
import re
from typing import Callable, Iterable, Optional

from billing.plans import DEFAULT_PLAN, ONE_HOUR, SIX_HOUR, DAILY, WEEKLY, infer_plan_from_amount

PHONE_FIELDS = (
    "phone",
    "customer_phone",
    "customer_contact",
    "phone_number",
    "msisdn",
    "payer_phone",
    "account",
    "customer.phone",
    "customer.phone_number",
    "customer.contact",
    "meta.phone",
    "metadata.phone",
    "extra.phone",
)
DEVICE_FIELDS = (
    "device_id",
    "deviceId",
    "device",
    "metadata.device_id",
    "meta.device_id",
    "extra.device_id",
    "customer.device_id",
)
INTENT_FIELDS = (
    "intent_id",
    "intentId",
    "metadata.intent_id",
    "meta.intent_id",
    "extra.intent_id",
)
AMOUNT_FIELDS = ("amount", "total_amount", "amount_received", "value")
PLAN_FIELDS = ("plan", "plan_code", "metadata.plan", "meta.plan", "extra.plan")
REFERENCE_FIELDS = ("reference", "custom_reference", "api_ref", "account_reference", "narrative")
TRANSACTION_FIELDS = ("transaction_id", "id", "invoice_id", "checkout_request_id", "CheckoutRequestID")
RECEIPT_FIELDS = (
    "mpesa_receipt", "receipt_number", "mpesaReceipt", "mpesa_reference", "receipt", "MpesaReceiptNumber",
)
STATUS_FIELDS = ("status", "state")
EVENT_FIELDS = ("event", "event_type", "type")

_DEVICE_ID = re.compile(r"^[A-Za-z0-9._:-]{6,128}$")
_REF_PHONE = re.compile(r"(?<![A-Za-z0-9])(\+?254|0)?(7\d{8}|1\d{8})(?![A-Za-z0-9])")
_REF_DEVICE = re.compile(r"(?:^|[^A-Za-z0-9])device(?:_?id)?[=:]([A-Za-z0-9._:-]{6,128})", re.IGNORECASE)
_REF_INTENT = re.compile(r"(?:^|[^A-Za-z0-9])intent(?:_?id)?[=:]([A-Za-z0-9_-]{6,128})", re.IGNORECASE)
_REF_PLAN = re.compile(r"(?:^|[^A-Za-z0-9])plan[=:]([A-Za-z0-9_-]+)", re.IGNORECASE)

_PLAN_VOCABULARY = {
    "weekly": WEEKLY,
    "daily": DAILY,
    "sixhour": SIX_HOUR,
    "onehour": ONE_HOUR,
}

SUCCESS_STATUSES = frozenset({"success", "successful", "paid", "complete", "completed", "ok"})
SUCCESS_EVENTS = frozenset(
    {
        "payment.success",
        "payment.succeeded",
        "payment.completed",
        "charge.success",
        "collection.success",
        "subscription.charge.success",
    }
)
FAILURE_STATUSES = frozenset({"failed", "failure", "cancelled", "canceled", "declined", "reversed", "expired"})
FAILURE_EVENTS = frozenset(
    {
        "payment.failed",
        "charge.failed",
        "collection.failed",
        "subscription.charge.failed",
    }
)
CANCELLATION_EVENTS = frozenset({"subscription.cancelled", "subscription.canceled"})


def normalize_phone(value) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    digits = re.sub(r"\D", "", str(value))
    if len(digits) == 10 and digits.startswith("0"):
        return "254" + digits[1:]
    if len(digits) == 12 and digits.startswith("254"):
        return digits
    if len(digits) == 9 and digits[0] in "71":
        return "254" + digits
    return None


def normalize_device_id(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if _DEVICE_ID.match(candidate):
        return candidate
    return None


def to_amount(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        try:
            parsed = float(value.strip().replace(",", ""))
        except ValueError:
            return None
    else:
        return None
    if math.isnan(parsed) or math.isinf(parsed) or parsed < 0:
        return None
    return parsed


def amount_key(amount: float) -> str:
    """Canonical text form used in storage keys: 200, "200", "200.00" all agree."""
    return f"{amount:.2f}"


def normalize_plan(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    compact = re.sub(r"[^a-z0-9]", "", value.lower())
    return _PLAN_VOCABULARY.get(compact)


def _lookup(payload: dict, path: str):
    current = payload
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def first_value(payload: dict, paths: Iterable[str]):
    """Raw value of the first candidate path that is present in `payload`."""
    if not isinstance(payload, dict):
        return None
    for path in paths:
        value = _lookup(payload, path)
        if _present(value):
            return value
    return None


def _from_reference(reference: Optional[str], pattern, normalizer: Callable, group: int = 1) -> Optional[str]:
    if not reference:
        return None
    match = pattern.search(str(reference))
    if not match:
        return None
    return normalizer(match.group(group))


def extract_payload(body) -> dict:
    if isinstance(body, dict):
        for key in ("data", "payload"):
            if isinstance(body.get(key), dict):
                return body[key]
        return body
    return {}


def extract_reference(payload: dict) -> str:
    value = first_value(payload, REFERENCE_FIELDS)
    return str(value) if value is not None else ""


def extract_phone(payload: dict, reference: Optional[str] = None) -> Optional[str]:
    normalized = normalize_phone(first_value(payload, PHONE_FIELDS))
    if normalized:
        return normalized
    return _from_reference(reference, _REF_PHONE, normalize_phone, group=0)


def extract_device_id(payload: dict, reference: Optional[str] = None) -> Optional[str]:
    normalized = normalize_device_id(first_value(payload, DEVICE_FIELDS))
    if normalized:
        return normalized
    return _from_reference(reference, _REF_DEVICE, normalize_device_id)


def extract_intent_id(payload: dict, reference: Optional[str] = None) -> Optional[str]:
    value = first_value(payload, INTENT_FIELDS)
    if value is not None:
        return str(value).strip()
    return _from_reference(reference, _REF_INTENT, lambda v: v)


def extract_amount(payload: dict) -> Optional[float]:
    return to_amount(first_value(payload, AMOUNT_FIELDS))


def extract_transaction_id(payload: dict) -> Optional[str]:
    value = first_value(payload, TRANSACTION_FIELDS)
    return str(value).strip() if value is not None else None


def extract_receipt(payload: dict) -> Optional[str]:
    value = first_value(payload, RECEIPT_FIELDS)
    return str(value).strip() if value is not None else None


def extract_status(payload: dict) -> str:
    value = first_value(payload, STATUS_FIELDS)
    return str(value) if value is not None else "unknown"


def extract_event(body: dict, header_value: Optional[str] = None) -> Optional[str]:
    if header_value:
        return header_value
    value = first_value(body, EVENT_FIELDS) if isinstance(body, dict) else None
    return str(value) if value is not None else None


def explicit_plan(payload: dict, reference: Optional[str] = None) -> Optional[str]:
    """A plan named by the payload itself or by a `plan=` token in the reference."""
    plan = normalize_plan(first_value(payload, PLAN_FIELDS))
    if plan:
        return plan
    return _from_reference(reference, _REF_PLAN, normalize_plan)


def extract_plan(payload: dict, reference: Optional[str], amount: Optional[float]) -> str:
    return explicit_plan(payload, reference) or infer_plan_from_amount(amount) or DEFAULT_PLAN


def _lower(value) -> str:
    return str(value).strip().lower() if value else ""


def is_success_status(status, event=None) -> bool:
    return _lower(status) in SUCCESS_STATUSES or _lower(event) in SUCCESS_EVENTS


def is_failure_status(status, event=None) -> bool:
    return _lower(status) in FAILURE_STATUSES or _lower(event) in FAILURE_EVENTS


def is_cancellation(status, event=None) -> bool:
    return _lower(event) in CANCELLATION_EVENTS
