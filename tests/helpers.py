"""Test doubles for the queue store and the pipeline's remote collaborators."""
import hashlib
import itertools
import json

import redis

from castmint.chain import MintedToken, SplitTarget
from castmint.db import MintRecord
from castmint.errors import HistoryStoreError, HistoryUnavailableError, TransportError
from castmint.neynar_client import TargetContent
from castmint.queue.models import Identity, WorkItem

REQUESTER_ADDRESS = "0x" + "1" * 40
OWNER_ADDRESS = "0x" + "2" * 40
PLATFORM_ADDRESS = "0x" + "9" * 40
CONTRACT_ADDRESS = "0x" + "c" * 40


class FakeRedis:
    """In-memory stand-in for the redis-py calls QueueStore makes."""

    def __init__(self):
        self.lists = {}
        self.sets = {}
        self.down = False
        self.closed = False

    def _check(self):
        if self.down:
            raise redis.ConnectionError("Connection refused")

    def ping(self):
        self._check()
        return True

    def lpush(self, key, *values):
        self._check()
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    def rpush(self, key, *values):
        self._check()
        items = self.lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    def rpop(self, key):
        self._check()
        items = self.lists.get(key)
        if not items:
            return None
        return items.pop()

    def brpop(self, keys, timeout=0):
        self._check()
        for key in keys:
            if self.lists.get(key):
                return key, self.lists[key].pop()
        return None

    def lrange(self, key, start, end):
        self._check()
        items = self.lists.get(key, [])
        n = len(items)
        start = start if start >= 0 else max(n + start, 0)
        end = end if end >= 0 else n + end
        end = min(end, n - 1)
        if start > end:
            return []
        return list(items[start:end + 1])

    def llen(self, key):
        self._check()
        return len(self.lists.get(key, []))

    def lrem(self, key, count, value):
        self._check()
        items = self.lists.get(key, [])
        removed = 0
        for i, existing in enumerate(list(items)):
            if existing == value and (count == 0 or removed < count):
                items.pop(i - removed)
                removed += 1
        return removed

    def sadd(self, key, *values):
        self._check()
        members = self.sets.setdefault(key, set())
        before = len(members)
        members.update(values)
        return len(members) - before

    def sismember(self, key, value):
        self._check()
        return value in self.sets.get(key, set())

    def close(self):
        self.closed = True


class FakeHistory:
    def __init__(self):
        self.records = {}
        self.fail_record = False
        self.dropped_connections = 0
        self.closed = False

    def ensure_schema(self):
        pass

    def record_result(self, record: MintRecord):
        if self.dropped_connections:
            self.dropped_connections -= 1
            raise HistoryUnavailableError("server closed the connection unexpectedly")
        if self.fail_record:
            raise HistoryStoreError("database is down")
        if record.target_hash in self.records:
            raise HistoryStoreError(f"Mint already recorded for {record.target_hash}", code="DUPLICATE_MINT")
        self.records[record.target_hash] = record

    def lookup_result(self, target_hash):
        return self.records.get(target_hash)

    def close(self):
        self.closed = True


class FakeSocial:
    def __init__(self, owner_address=OWNER_ADDRESS):
        self.owner_address = owner_address
        self.replies = []
        self.fail_reply = False

    def fetch_content(self, cast_hash):
        addresses = [self.owner_address] if self.owner_address else []
        return TargetContent(
            hash=cast_hash,
            text="gm to everyone",
            owner=Identity(fid=2, username="caster", payable_addresses=addresses),
        )

    def publish_reply(self, text, parent, embeds=None):
        if self.fail_reply:
            raise TransportError("Neynar is down")
        self.replies.append({"text": text, "parent": parent, "embeds": embeds or []})
        return {"success": True}


class FakeRenderer:
    def render(self, target):
        return b"\x89PNG" + target.cast_hash.encode()


class FakeStorage:
    def __init__(self):
        self.files = {}

    def store(self, data, filename, content_type="application/octet-stream"):
        cid = "bafy" + hashlib.sha256(data).hexdigest()[:20]
        self.files[cid] = (filename, data)
        return f"ipfs://{cid}"

    def store_json(self, document, filename="metadata.json"):
        return self.store(json.dumps(document, sort_keys=True).encode(), filename, "application/json")


class FakeSplits:
    """Predicts addresses from the config, like an immutable split factory."""

    def __init__(self):
        self.deployed = set()
        self.created = []

    def _address(self, config):
        digest = hashlib.sha256(json.dumps(config.to_dict(), sort_keys=True).encode()).hexdigest()
        return "0x" + digest[:40]

    def predict(self, config):
        address = self._address(config)
        return SplitTarget(address=address, exists=address in self.deployed)

    def create(self, config):
        address = self._address(config)
        self.deployed.add(address)
        self.created.append(config)
        return SplitTarget(address=address, exists=True, tx_hash="0xsplittx")


class FakeTokens:
    def __init__(self):
        self.counter = itertools.count(1)
        self.minted = []

    def mint(self, contract_address, metadata_uri, payout_recipient):
        token = MintedToken(
            token_id=str(next(self.counter)),
            contract_address=contract_address,
            tx_hash="0xminttx",
        )
        self.minted.append((metadata_uri, payout_recipient, token))
        return token


def make_item(target_hash="0xabc", work_hash=None, requester_address=REQUESTER_ADDRESS,
              owner_address=OWNER_ADDRESS, requester="minter"):
    requester_addresses = [requester_address] if requester_address else []
    owner_addresses = [owner_address] if owner_address else []
    return WorkItem.create(
        work_hash=work_hash or f"0xreply-{target_hash}",
        target_hash=target_hash,
        requester=Identity(fid=1, username=requester, payable_addresses=requester_addresses, score=0.9),
        target_owner=Identity(fid=2, username="caster", payable_addresses=owner_addresses),
        submitted_at="2024-02-18T12:00:00+00:00",
        text="!mint",
    )


def cast_event(text="!mint", parent_hash="0xparent", score=0.9, parent_author=True, event_type="cast.created"):
    data = {
        "hash": "0xreply",
        "text": text,
        "timestamp": "2024-02-18T12:00:00.000Z",
        "parent_hash": parent_hash,
        "author": {
            "fid": 1,
            "username": "minter",
            "verified_addresses": {"eth_addresses": [REQUESTER_ADDRESS]},
            "experimental": {"neynar_user_score": score},
        },
    }
    if parent_author:
        data["parent_author"] = {
            "fid": 2,
            "username": "caster",
            "verified_addresses": {"eth_addresses": [OWNER_ADDRESS]},
        }
    return {"type": event_type, "data": data}
