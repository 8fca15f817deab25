import os
from dataclasses import dataclass
from typing import Optional

from utils import __version__
from utils.logger import get_logger

logger = get_logger("config")

BACKENDS = ("dynamodb", "memory")


@dataclass(frozen=True)
class Settings:
    store_backend: str
    intents_table: Optional[str]
    transactions_table: Optional[str]
    subscriptions_table: Optional[str]
    logs_table: Optional[str]
    region: str
    webhook_secret: Optional[str]
    webhook_secret_name: Optional[str]
    intent_ttl_seconds: int
    intent_index_ttl_seconds: int
    log_ttl_seconds: int
    claim_retry_after_seconds: int
    app_version: str


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        msg = f"Invalid {name}='{raw}'. Must be an integer number of seconds."
        logger.error(msg)
        raise RuntimeError(msg)
    if value <= 0:
        msg = f"Invalid {name}='{raw}'. Must be positive."
        logger.error(msg)
        raise RuntimeError(msg)
    return value


def load_settings() -> Settings:
    """
    Load service configuration from environment variables.

    STORE_BACKEND: "dynamodb" (default) or "memory" for local runs
    INTENTS_TABLE / TRANSACTIONS_TABLE / SUBSCRIPTIONS_TABLE: DynamoDB tables,
        required with the dynamodb backend
    LOGS_TABLE: optional webhook audit log table
    WEBHOOK_SECRET / WEBHOOK_SECRET_NAME: HMAC secret, plain or via Secrets Manager

    Raises RuntimeError with a clear message if something is missing/invalid.
    """
    backend = os.getenv("STORE_BACKEND", "dynamodb").lower()
    if backend not in BACKENDS:
        msg = f"Invalid STORE_BACKEND='{backend}'. Expected one of: {', '.join(BACKENDS)}"
        logger.error(msg)
        raise RuntimeError(msg)

    intents_table = os.getenv("INTENTS_TABLE")
    transactions_table = os.getenv("TRANSACTIONS_TABLE")
    subscriptions_table = os.getenv("SUBSCRIPTIONS_TABLE")

    if backend == "dynamodb":
        missing = [
            name
            for name, value in [
                ("INTENTS_TABLE", intents_table),
                ("TRANSACTIONS_TABLE", transactions_table),
                ("SUBSCRIPTIONS_TABLE", subscriptions_table),
            ]
            if not value
        ]
        if missing:
            msg = f"Missing required environment variables: {', '.join(missing)}"
            logger.error(msg)
            raise RuntimeError(msg)

    return Settings(
        store_backend=backend,
        intents_table=intents_table,
        transactions_table=transactions_table,
        subscriptions_table=subscriptions_table,
        logs_table=os.getenv("LOGS_TABLE") or None,
        region=os.getenv("AWS_REGION", "us-east-1"),
        webhook_secret=os.getenv("WEBHOOK_SECRET") or None,
        webhook_secret_name=os.getenv("WEBHOOK_SECRET_NAME") or None,
        intent_ttl_seconds=_int_env("INTENT_TTL_SECONDS", 3 * 60 * 60),
        intent_index_ttl_seconds=_int_env("INTENT_INDEX_TTL_SECONDS", 7 * 24 * 60 * 60),
        log_ttl_seconds=_int_env("LOG_TTL_SECONDS", 30 * 24 * 60 * 60),
        claim_retry_after_seconds=_int_env("CLAIM_RETRY_AFTER_SECONDS", 20),
        app_version=os.getenv("APP_VERSION", __version__),
    )
