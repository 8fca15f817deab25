from dataclasses import asdict, dataclass
from typing import Optional, Tuple

from billing.normalize import is_success_status
from utils.logger import get_logger
from utils.store import Store

logger = get_logger("ledger")

INTENT_INDEX_TTL_SECONDS = 7 * 24 * 60 * 60


@dataclass
class Transaction:
    id: str
    amount: Optional[float]
    plan: str
    status: str
    reference: str
    timestamp: str
    phone: Optional[str] = None
    mpesa_receipt: Optional[str] = None
    device_id: Optional[str] = None
    intent_id: Optional[str] = None
    event: Optional[str] = None
    # Expiry this payment earned, fixed on first write so replays re-derive it.
    paid_until: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return is_success_status(self.status, self.event)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


def _txn_key(txn_id: str) -> str:
    return f"txn:{txn_id}"


def _receipt_key(receipt: str) -> str:
    return f"receipt:{receipt}"


def _intent_key(intent_id: str) -> str:
    return f"intent_txn:{intent_id}"


class TransactionLedger:
    """
    Durable, append-only record of payment events.

    A transaction id is written once. The only exception is a record that
    has not succeeded being superseded by a later delivery that has.
    Receipt and intent entries are lookup aids pointing at the id.
    """

    def __init__(self, store: Store, intent_index_ttl_seconds: int = INTENT_INDEX_TTL_SECONDS):
        self.store = store
        self.intent_index_ttl_seconds = intent_index_ttl_seconds

    def record(self, txn: Transaction) -> Tuple[Transaction, bool]:
        """
        Persist `txn` unless the id is already recorded.

        Returns (stored transaction, created). When another delivery won the
        write, the stored transaction is theirs and created is False.
        """
        existing = self.store.put_if_absent(_txn_key(txn.id), txn.to_dict())
        if existing is None:
            stored, created = txn, True
        else:
            previous = Transaction.from_dict(existing)
            if txn.succeeded and not previous.succeeded:
                logger.info(
                    "ledger.superseded",
                    extra={"txn_id": txn.id, "previous_status": previous.status, "status": txn.status},
                )
                self.store.put(_txn_key(txn.id), txn.to_dict())
                stored, created = txn, True
            else:
                logger.info("ledger.duplicate", extra={"txn_id": txn.id, "status": previous.status})
                stored, created = previous, False

        # A replayed failure must not repoint the indexes away from a later success.
        if created or stored.succeeded:
            self._index(stored)
        return stored, created

    def _index(self, txn: Transaction) -> None:
        pointer = {"txn_id": txn.id}
        if txn.mpesa_receipt:
            self.store.put(_receipt_key(txn.mpesa_receipt), pointer)
        if txn.intent_id:
            key = _intent_key(txn.intent_id)
            if txn.succeeded:
                self.store.put(key, pointer, ttl=self.intent_index_ttl_seconds)
            else:
                # Unsuccessful events never displace a recorded payment.
                self.store.put_if_absent(key, pointer, ttl=self.intent_index_ttl_seconds)

    def get(self, txn_id: Optional[str]) -> Optional[Transaction]:
        if not txn_id:
            return None
        data = self.store.get_value(_txn_key(txn_id))
        return Transaction.from_dict(data) if data else None

    def _follow(self, key: str) -> Optional[Transaction]:
        pointer = self.store.get_value(key)
        if not pointer:
            return None
        return self.get(pointer.get("txn_id"))

    def find_by_receipt(self, receipt: Optional[str]) -> Optional[Transaction]:
        if not receipt:
            return None
        return self._follow(_receipt_key(receipt))

    def find_by_intent(self, intent_id: Optional[str]) -> Optional[Transaction]:
        if not intent_id:
            return None
        return self._follow(_intent_key(intent_id))
