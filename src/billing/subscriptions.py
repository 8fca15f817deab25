"""
Per-phone subscription state and the rules that update it.

Updates are pure functions of (existing subscription, durable transaction),
so two racing writers computing from the same facts produce the same record
and a replayed webhook converges instead of compounding.
"""

import re
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Optional

from billing.ledger import Transaction
from billing.plans import add_plan_duration
from utils.logger import get_logger
from utils.store import Store
from utils.timeutil import isoformat, parse_datetime

logger = get_logger("subscriptions")

ACTIVE = "active"
PENDING_DEVICE = "pending_device"
CANCELLED = "cancelled"

# Older app builds identified devices with a random UUID; current builds send
# the 16-hex-digit Android ID, which survives reinstalls.
LEGACY_DEVICE_ID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
STABLE_DEVICE_ID = re.compile(r"^[0-9a-f]{16}$", re.IGNORECASE)


@dataclass
class Subscription:
    phone: str
    status: str
    plan: Optional[str]
    amount: Optional[float]
    paid_until: Optional[str]
    last_txn: Optional[str]
    last_payment_at: Optional[str]
    mpesa_receipt: Optional[str]
    reference: Optional[str]
    updated_at: str
    device_id: Optional[str] = None

    def valid_until(self, now: datetime) -> Optional[datetime]:
        """`paid_until` if it is still in the future, else None."""
        paid_until = parse_datetime(self.paid_until)
        if paid_until and paid_until > now:
            return paid_until
        return None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Subscription":
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


def is_legacy_device_id(device_id: Optional[str]) -> bool:
    return bool(device_id and LEGACY_DEVICE_ID.match(device_id))


def is_stable_device_id(device_id: Optional[str]) -> bool:
    return bool(device_id and STABLE_DEVICE_ID.match(device_id))


def resolve_device_binding(
    existing: Optional[str],
    incoming: Optional[str],
    intent_device: Optional[str] = None,
) -> Optional[str]:
    """
    Device a payment binds the subscription to.

    The bound device is kept unless nothing is bound yet, a live intent that
    carries a device vouches for this payment, or the bound id is a legacy UUID
    being replaced by a stable Android ID (one-time migration).
    """
    if not incoming or incoming == existing:
        return existing
    if not existing:
        return incoming
    if intent_device:
        logger.info(
            "subscription.device_rebound",
            extra={"previous_device": existing, "device_id": incoming, "intent_device": intent_device},
        )
        return incoming
    if is_legacy_device_id(existing) and is_stable_device_id(incoming):
        logger.info(
            "subscription.device_migrated",
            extra={"previous_device": existing, "device_id": incoming},
        )
        return incoming

    logger.warning(
        "subscription.device_conflict",
        extra={"bound_device": existing, "incoming_device": incoming, "intent_device": intent_device},
    )
    return existing


def earned_until(existing: Optional[Subscription], plan: Optional[str], now: datetime) -> datetime:
    """Expiry a new payment buys: one plan period after max(now, current valid expiry)."""
    base = now
    if existing:
        base = existing.valid_until(now) or now
    return add_plan_duration(base, plan)


def _txn_until(txn: Transaction, existing: Optional[Subscription], now: datetime) -> datetime:
    return parse_datetime(txn.paid_until) or earned_until(existing, txn.plan, now)


def apply_payment(
    existing: Optional[Subscription],
    txn: Transaction,
    now: datetime,
    intent_device: Optional[str] = None,
) -> Subscription:
    """Subscription after reconciling a successful webhook payment."""
    paid_until = _txn_until(txn, existing, now)
    # Compared against the stored expiry, lapsed or not, so a late retry of an
    # older payment never winds it back.
    stored = parse_datetime(existing.paid_until) if existing else None
    newer = stored is None or paid_until > stored

    device_id = resolve_device_binding(
        existing.device_id if existing else None,
        txn.device_id,
        intent_device,
    )
    status = ACTIVE if device_id else PENDING_DEVICE

    if existing and (existing.last_txn == txn.id or not newer):
        # Replay: this payment, or a later one, already set the expiry.
        if existing.status == CANCELLED:
            status = CANCELLED
        return replace(existing, status=status, device_id=device_id, updated_at=isoformat(now))

    return Subscription(
        phone=txn.phone,
        status=status,
        plan=txn.plan,
        amount=txn.amount,
        paid_until=isoformat(paid_until),
        last_txn=txn.id,
        last_payment_at=txn.timestamp,
        mpesa_receipt=txn.mpesa_receipt,
        reference=txn.reference,
        updated_at=isoformat(now),
        device_id=device_id,
    )


def apply_claim(
    existing: Optional[Subscription],
    txn: Transaction,
    phone: str,
    device_id: str,
    now: datetime,
) -> Subscription:
    """Subscription after a client explicitly claims `txn` for `device_id`."""
    claimed_until = parse_datetime(txn.paid_until) or add_plan_duration(
        parse_datetime(txn.timestamp) or now, txn.plan
    )
    stored = parse_datetime(existing.paid_until) if existing else None
    paid_until = max(claimed_until, stored) if stored else claimed_until

    if existing and stored and stored > claimed_until:
        base = existing
    else:
        base = Subscription(
            phone=phone,
            status=ACTIVE,
            plan=txn.plan,
            amount=txn.amount,
            paid_until=None,
            last_txn=txn.id,
            last_payment_at=txn.timestamp,
            mpesa_receipt=txn.mpesa_receipt,
            reference=txn.reference,
            updated_at=isoformat(now),
        )

    # An older claim binds the device but does not revive a cancellation.
    status = CANCELLED if base is existing and existing.status == CANCELLED else ACTIVE

    return replace(
        base,
        phone=phone,
        status=status,
        paid_until=isoformat(paid_until),
        device_id=device_id,
        updated_at=isoformat(now),
    )


def apply_cancellation(existing: Subscription, now: datetime) -> Subscription:
    return replace(existing, status=CANCELLED, updated_at=isoformat(now))


def _keys(phone: str):
    return (f"sub:{phone}", f"sub:+{phone}")


class SubscriptionStore:
    """One logical record per phone, written under both `sub:254...` and `sub:+254...`."""

    def __init__(self, store: Store):
        self.store = store

    def get(self, phone: str) -> Optional[Subscription]:
        for key in _keys(phone):
            data = self.store.get_value(key)
            if data:
                return Subscription.from_dict(data)
        return None

    def put(self, subscription: Subscription) -> None:
        for key in _keys(subscription.phone):
            self.store.put(key, subscription.to_dict())
        logger.info(
            "subscription.saved",
            extra={
                "phone": subscription.phone,
                "status": subscription.status,
                "plan": subscription.plan,
                "paid_until": subscription.paid_until,
                "device_id": subscription.device_id,
            },
        )
