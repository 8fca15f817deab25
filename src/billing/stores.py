from dataclasses import dataclass

from billing.audit import WebhookLog
from billing.intents import IntentStore
from billing.ledger import TransactionLedger
from billing.subscriptions import SubscriptionStore
from utils.store import MemoryStore, build_store


@dataclass
class Stores:
    intents: IntentStore
    ledger: TransactionLedger
    subscriptions: SubscriptionStore
    audit: WebhookLog


def build_stores(settings) -> Stores:
    logs = build_store(settings, settings.logs_table) if (
        settings.logs_table or settings.store_backend == "memory"
    ) else None
    return Stores(
        intents=IntentStore(build_store(settings, settings.intents_table), settings.intent_ttl_seconds),
        ledger=TransactionLedger(
            build_store(settings, settings.transactions_table), settings.intent_index_ttl_seconds
        ),
        subscriptions=SubscriptionStore(build_store(settings, settings.subscriptions_table)),
        audit=WebhookLog(logs, settings.log_ttl_seconds),
    )


def in_memory(clock=None) -> Stores:
    """Fresh in-memory stores; `clock` returns epoch seconds."""
    kwargs = {"clock": clock} if clock else {}
    return Stores(
        intents=IntentStore(MemoryStore(**kwargs)),
        ledger=TransactionLedger(MemoryStore(**kwargs)),
        subscriptions=SubscriptionStore(MemoryStore(**kwargs)),
        audit=WebhookLog(MemoryStore(**kwargs)),
    )


# Built once per container; memory stores then live as long as the container.
_stores = None


def get_stores(settings) -> Stores:
    global _stores
    if _stores is None:
        _stores = build_stores(settings)
    return _stores
