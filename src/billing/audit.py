from datetime import datetime
from typing import Optional

from utils.logger import get_logger
from utils.store import Store
from utils.timeutil import epoch_millis, isoformat

logger = get_logger("audit")

LOG_TTL_SECONDS = 30 * 24 * 60 * 60


class WebhookLog:
    """Time-ordered trail of processed webhooks (`log:<millis>:<txn_id>`), kept for a bounded period."""

    def __init__(self, store: Optional[Store], ttl_seconds: int = LOG_TTL_SECONDS):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def record(self, now: datetime, txn_id: str, **fields) -> None:
        if self.store is None:
            return
        entry = {"type": "webhook", "txn_id": txn_id, "timestamp": isoformat(now)}
        entry.update(fields)
        try:
            self.store.put(f"log:{epoch_millis(now)}:{txn_id}", entry, ttl=self.ttl_seconds)
        except Exception as e:
            # The trail is best-effort; the payment is already reconciled.
            logger.error("audit.write_failed", extra={"txn_id": txn_id, "error": str(e)})
