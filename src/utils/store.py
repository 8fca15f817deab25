"""
Key-value storage with per-key time-to-live.

Every backend honours the same small contract:

    get(key)                          -> (value, ttl_remaining_seconds)
    put(key, value, ttl=None)         -> None   (blind overwrite, last write wins)
    put_if_absent(key, value, ttl)    -> existing value, or None when written

Values are JSON-encoded dicts. `ttl=None` means the entry never expires.
Expired entries read as absent even before the backend physically removes
them (DynamoDB TTL deletion can lag by hours).
"""

import json
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from utils.logger import get_logger

logger = get_logger("store")

Lookup = Tuple[Optional[dict], Optional[int]]


class Store:
    """Base class; subclasses implement `get` and `put`."""

    def get(self, key: str) -> Lookup:
        raise NotImplementedError

    def put(self, key: str, value: dict, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def put_if_absent(self, key: str, value: dict, ttl: Optional[int] = None) -> Optional[dict]:
        # Not atomic here; backends with a conditional write override this.
        existing, _ = self.get(key)
        if existing is not None:
            return existing
        self.put(key, value, ttl)
        return None

    def get_value(self, key: str) -> Optional[dict]:
        value, _ = self.get(key)
        return value


class MemoryStore(Store):
    """
    In-process store for local runs and tests.
    `clock` returns epoch seconds and can be swapped to simulate expiry.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._items: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Lookup:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None, None
            raw, expires_at = item
            now = self._clock()
            if expires_at is not None and expires_at <= now:
                del self._items[key]
                return None, None
        remaining = None if expires_at is None else int(expires_at - now)
        return json.loads(raw), remaining

    def put(self, key: str, value: dict, ttl: Optional[int] = None) -> None:
        expires_at = None if ttl is None else self._clock() + ttl
        with self._lock:
            self._items[key] = (json.dumps(value), expires_at)

    def put_if_absent(self, key: str, value: dict, ttl: Optional[int] = None) -> Optional[dict]:
        with self._lock:
            item = self._items.get(key)
            if item is not None and (item[1] is None or item[1] > self._clock()):
                return json.loads(item[0])
            expires_at = None if ttl is None else self._clock() + ttl
            self._items[key] = (json.dumps(value), expires_at)
        return None

    def keys(self):
        return list(self._items)


class DynamoDBStore(Store):
    """
    One DynamoDB table per logical store.

    Item layout: {"pk": S, "value": S (JSON), "exp": N (epoch seconds, optional)}.
    Enable DynamoDB TTL on the `exp` attribute.
    """

    def __init__(self, table_name: str, client=None, clock: Callable[[], float] = time.time):
        self.table_name = table_name
        self._client = client or boto3.client("dynamodb")
        self._clock = clock

    def get(self, key: str) -> Lookup:
        resp = self._client.get_item(
            TableName=self.table_name,
            Key={"pk": {"S": key}},
            ConsistentRead=True,
        )
        item = resp.get("Item")
        if not item:
            return None, None

        remaining = None
        if "exp" in item:
            remaining = int(item["exp"]["N"]) - int(self._clock())
            if remaining <= 0:
                return None, None

        try:
            value = json.loads(item["value"]["S"])
        except (KeyError, json.JSONDecodeError):
            logger.error(
                "store.corrupt_item",
                extra={"table": self.table_name, "key": key},
            )
            raise
        return value, remaining

    def _item(self, key: str, value: dict, ttl: Optional[int]) -> dict:
        item = {"pk": {"S": key}, "value": {"S": json.dumps(value)}}
        if ttl is not None:
            item["exp"] = {"N": str(int(self._clock()) + int(ttl))}
        return item

    def put(self, key: str, value: dict, ttl: Optional[int] = None) -> None:
        self._client.put_item(TableName=self.table_name, Item=self._item(key, value, ttl))

    def put_if_absent(self, key: str, value: dict, ttl: Optional[int] = None) -> Optional[dict]:
        try:
            self._client.put_item(
                TableName=self.table_name,
                Item=self._item(key, value, ttl),
                # An expired item still waiting for TTL deletion counts as absent.
                ConditionExpression="attribute_not_exists(pk) OR #exp <= :now",
                ExpressionAttributeNames={"#exp": "exp"},
                ExpressionAttributeValues={":now": {"N": str(int(self._clock()))}},
            )
            return None
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                existing, _ = self.get(key)
                return existing if existing is not None else value
            raise


# Reuse AWS clients across invocations
_clients: Dict[str, object] = {}


def _dynamodb_client(region: str):
    if region not in _clients:
        _clients[region] = boto3.client("dynamodb", region_name=region)
    return _clients[region]


def build_store(settings, table_name: Optional[str]) -> Store:
    if settings.store_backend == "memory":
        return MemoryStore()
    return DynamoDBStore(table_name, client=_dynamodb_client(settings.region))
