import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from billing.normalize import amount_key
from utils.logger import get_logger
from utils.store import Store
from utils.timeutil import isoformat, parse_datetime

logger = get_logger("intents")

INTENT_TTL_SECONDS = 3 * 60 * 60


@dataclass
class PaymentIntent:
    id: str
    phone: str
    device_id: str
    plan: Optional[str]
    amount: Optional[float]
    created_at: str
    expires_at: str
    used_at: Optional[str] = None
    txn_id: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        expires_at = parse_datetime(self.expires_at)
        return expires_at is None or expires_at <= now

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentIntent":
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


def _id_key(intent_id: str) -> str:
    return f"intent:{intent_id}"


def _phone_key(phone: str) -> str:
    return f"intent_phone:{phone}"


def _phone_amount_key(phone: str, amount: float) -> str:
    return f"intent_phone_amount:{phone}:{amount_key(amount)}"


class IntentStore:
    """
    Short-lived payment intents, written before the client starts an M-Pesa
    payment so an anonymous webhook can be correlated to a phone/device pair.

    Each intent is stored under up to three keys sharing one TTL:
    by id, by phone, and by phone+amount. The by-id copy is authoritative.
    """

    def __init__(self, store: Store, ttl_seconds: int = INTENT_TTL_SECONDS):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def _keys(self, intent: PaymentIntent):
        keys = [_id_key(intent.id), _phone_key(intent.phone)]
        if intent.amount is not None:
            keys.append(_phone_amount_key(intent.phone, intent.amount))
        return keys

    def create(
        self,
        phone: str,
        device_id: str,
        now: datetime,
        amount: Optional[float] = None,
        plan: Optional[str] = None,
    ) -> PaymentIntent:
        intent = PaymentIntent(
            id=f"intent_{uuid.uuid4().hex}",
            phone=phone,
            device_id=device_id,
            plan=plan,
            amount=amount,
            created_at=isoformat(now),
            expires_at=isoformat(now + timedelta(seconds=self.ttl_seconds)),
        )
        for key in self._keys(intent):
            self.store.put(key, intent.to_dict(), ttl=self.ttl_seconds)

        logger.info(
            "intent.created",
            extra={"intent_id": intent.id, "phone": phone, "amount": amount, "plan": plan},
        )
        return intent

    def _load(self, key: str, now: datetime) -> Optional[PaymentIntent]:
        data = self.store.get_value(key)
        if not data:
            return None
        intent = PaymentIntent.from_dict(data)
        if intent.is_expired(now):
            return None
        return intent

    def get(self, intent_id: str, now: datetime) -> Optional[PaymentIntent]:
        if not intent_id:
            return None
        return self._load(_id_key(intent_id), now)

    def _via_index(self, key: str, now: datetime) -> Optional[PaymentIntent]:
        indexed = self._load(key, now)
        if indexed is None:
            return None
        # Prefer the by-id copy; it carries used_at/txn_id once claimed.
        return self.get(indexed.id, now) or indexed

    def find_by_phone_amount(self, phone: str, amount: float, now: datetime) -> Optional[PaymentIntent]:
        return self._via_index(_phone_amount_key(phone, amount), now)

    def find_by_phone(self, phone: str, now: datetime) -> Optional[PaymentIntent]:
        return self._via_index(_phone_key(phone), now)

    def resolve(
        self,
        now: datetime,
        intent_id: Optional[str] = None,
        phone: Optional[str] = None,
        amount: Optional[float] = None,
    ) -> Optional[PaymentIntent]:
        """
        Locate the intent behind a payment: explicit id, then (phone, amount),
        then phone alone. The phone-only match is discarded when both sides
        carry an amount and they disagree.
        """
        if intent_id:
            intent = self.get(intent_id, now)
            if intent:
                return intent
            logger.warning("intent.id_not_found", extra={"intent_id": intent_id})

        if not phone:
            return None

        if amount is not None:
            intent = self.find_by_phone_amount(phone, amount, now)
            if intent:
                return intent

        intent = self.find_by_phone(phone, now)
        if intent and amount is not None and intent.amount is not None and intent.amount != amount:
            logger.warning(
                "intent.amount_mismatch",
                extra={
                    "intent_id": intent.id,
                    "phone": phone,
                    "intent_amount": intent.amount,
                    "payment_amount": amount,
                },
            )
            return None
        return intent

    def mark_used(self, intent: PaymentIntent, txn_id: str, now: datetime) -> Optional[PaymentIntent]:
        """Record the transaction that consumed the intent, keeping its original expiry."""
        expires_at = parse_datetime(intent.expires_at)
        remaining = int((expires_at - now).total_seconds()) if expires_at else 0
        if remaining <= 0:
            return None

        if intent.used_at and intent.txn_id == txn_id:
            return intent

        intent.used_at = isoformat(now)
        intent.txn_id = txn_id
        for key in self._keys(intent):
            if key != _id_key(intent.id):
                # A newer intent for the same phone owns this index entry now.
                current = self.store.get_value(key)
                if current and current.get("id") != intent.id:
                    continue
            self.store.put(key, intent.to_dict(), ttl=remaining)

        logger.info("intent.used", extra={"intent_id": intent.id, "txn_id": txn_id})
        return intent
