import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Every service logger hangs under this one, which owns the only handler.
ROOT_LOGGER = "billing"

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RESERVED = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per log line, for CloudWatch Logs Insights.

    The message is a dotted event name ("claim.bound"); fields passed with
    `extra=` become top-level keys next to it.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        # Decimals from DynamoDB and datetimes fall back to str()
        return json.dumps(payload, default=str)


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not getattr(root, "_configured", False):
        root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        # Lambda's runtime installs its own root handler; keep lines single-format.
        root.propagate = False
        root._configured = True  # type: ignore[attr-defined]
    return root


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Logger for one component, e.g. get_logger("webhook") -> "billing.webhook".
    Safe to call at import time from every module.
    """
    root = _configure_root()
    if name == ROOT_LOGGER:
        return root
    return root.getChild(name)


_base_logger = get_logger()


def log(message: str, **fields: Any) -> None:
    """
    Quick structured log line without grabbing a logger:

        log("health.check", path="/health", method="GET")
    """
    clashing = _RESERVED.intersection(fields)
    if clashing:
        fields = {(f"field_{k}" if k in clashing else k): v for k, v in fields.items()}
    _base_logger.info(message, extra=fields)
