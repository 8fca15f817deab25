from botocore.exceptions import ClientError

from utils.store import DynamoDBStore, MemoryStore


class Tick:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class StubDynamoDB:
    """Implements the handful of low-level client calls DynamoDBStore makes."""

    def __init__(self):
        self.items = {}
        self.calls = []

    def get_item(self, TableName, Key, ConsistentRead=False):
        self.calls.append(("get_item", TableName, ConsistentRead))
        item = self.items.get((TableName, Key["pk"]["S"]))
        return {"Item": item} if item else {}

    def put_item(self, TableName, Item, ConditionExpression=None, **kwargs):
        self.calls.append(("put_item", TableName, ConditionExpression))
        key = (TableName, Item["pk"]["S"])
        if ConditionExpression and key in self.items:
            current = self.items[key]
            now = int(kwargs["ExpressionAttributeValues"][":now"]["N"])
            if "exp" not in current or int(current["exp"]["N"]) > now:
                raise ClientError(
                    {"Error": {"Code": "ConditionalCheckFailedException", "Message": "exists"}},
                    "PutItem",
                )
        self.items[key] = Item
        return {}


def test_memory_store_roundtrip_and_ttl():
    tick = Tick()
    store = MemoryStore(clock=tick)
    store.put("a", {"x": 1}, ttl=60)
    store.put("b", {"y": 2})

    value, remaining = store.get("a")
    assert value == {"x": 1}
    assert remaining == 60
    assert store.get("b") == ({"y": 2}, None)

    tick.now += 61
    assert store.get("a") == (None, None)
    assert store.get_value("b") == {"y": 2}


def test_memory_store_put_if_absent():
    tick = Tick()
    store = MemoryStore(clock=tick)
    assert store.put_if_absent("k", {"v": "first"}, ttl=10) is None
    assert store.put_if_absent("k", {"v": "second"}) == {"v": "first"}
    assert store.get_value("k") == {"v": "first"}

    tick.now += 11
    assert store.put_if_absent("k", {"v": "third"}) is None
    assert store.get_value("k") == {"v": "third"}


def test_memory_store_values_are_copies():
    store = MemoryStore()
    value = {"nested": {"n": 1}}
    store.put("k", value)
    value["nested"]["n"] = 2
    assert store.get_value("k") == {"nested": {"n": 1}}


def test_dynamodb_store_item_layout():
    client = StubDynamoDB()
    tick = Tick()
    store = DynamoDBStore("intents", client=client, clock=tick)
    store.put("intent:1", {"id": "1"}, ttl=10800)

    item = client.items[("intents", "intent:1")]
    assert item["value"]["S"] == '{"id": "1"}'
    assert item["exp"]["N"] == str(1_000_000 + 10800)

    value, remaining = store.get("intent:1")
    assert value == {"id": "1"}
    assert remaining == 10800
    assert ("get_item", "intents", True) in client.calls


def test_dynamodb_store_treats_expired_items_as_absent():
    client = StubDynamoDB()
    tick = Tick()
    store = DynamoDBStore("intents", client=client, clock=tick)
    store.put("intent:1", {"id": "1"}, ttl=5)
    tick.now += 6
    # TTL deletion has not run yet; the item is still physically there
    assert ("intents", "intent:1") in client.items
    assert store.get("intent:1") == (None, None)


def test_dynamodb_store_durable_items_have_no_exp():
    client = StubDynamoDB()
    store = DynamoDBStore("transactions", client=client, clock=Tick())
    store.put("txn:1", {"id": "1"})
    assert "exp" not in client.items[("transactions", "txn:1")]
    assert store.get("txn:1") == ({"id": "1"}, None)


def test_dynamodb_store_conditional_put():
    client = StubDynamoDB()
    tick = Tick()
    store = DynamoDBStore("transactions", client=client, clock=tick)
    assert store.put_if_absent("txn:1", {"status": "success"}) is None
    assert store.put_if_absent("txn:1", {"status": "other"}) == {"status": "success"}
    assert store.get_value("txn:1") == {"status": "success"}
