import json

import pytest

from castmint.errors import StoreConnectionError
from castmint.queue.models import FailedWorkItem, Identity, WorkItem
from tests.helpers import make_item


class TestQueueStore:
    def test_push_front_pop_back_is_fifo(self, store):
        store.push_front("q", "a")
        store.push_front("q", "b")
        assert store.pop_back("q") == "a"
        assert store.pop_back("q") == "b"
        assert store.pop_back("q") is None

    def test_blocking_pop_returns_value_or_none(self, store):
        assert store.pop_back_blocking("q", 0.1) is None
        store.push_front("q", "a")
        assert store.pop_back_blocking("q", 0.1) == "a"

    def test_length_and_remove(self, store):
        store.push_front("q", "a")
        store.push_front("q", "b")
        store.push_front("q", "a")
        assert store.length("q") == 3
        assert store.remove("q", "a") == 1
        assert store.length("q") == 2

    def test_set_membership(self, store):
        assert store.is_member("s", "x") is False
        store.add_to_set("s", "x")
        assert store.is_member("s", "x") is True

    def test_connection_errors_are_mapped(self, store, fake_redis):
        fake_redis.down = True
        with pytest.raises(StoreConnectionError):
            store.push_front("q", "a")
        with pytest.raises(StoreConnectionError):
            store.length("q")
        with pytest.raises(StoreConnectionError):
            store.connect()

    def test_close_releases_client(self, store, fake_redis):
        store.close()
        assert fake_redis.closed is True
        assert store._client is None


class TestWorkItem:
    def test_json_preserves_every_field(self):
        item = make_item()
        decoded = WorkItem.from_json(item.to_json())
        assert decoded == item
        assert decoded.requester.payable_address == item.requester.payable_address

    def test_malformed_json_raises_value_error(self):
        with pytest.raises(ValueError):
            WorkItem.from_json("{not json")
        with pytest.raises(ValueError):
            WorkItem.from_json(json.dumps({"target_hash": "0xabc"}))

    def test_identity_from_neynar_user(self):
        identity = Identity.from_neynar({
            "fid": 7,
            "username": "alice",
            "display_name": "Alice",
            "verified_addresses": {"eth_addresses": ["0xaaa", "0xbbb"]},
            "experimental": {"neynar_user_score": 0.95},
        })
        assert identity.payable_address == "0xaaa"
        assert identity.score == 0.95

    def test_identity_without_addresses(self):
        identity = Identity.from_neynar({"fid": 7, "username": "alice"})
        assert identity.payable_address is None
        assert identity.score is None


class TestMintQueue:
    def test_dequeue_returns_items_in_enqueue_order(self, queue):
        items = [make_item(target_hash=f"0x{i}") for i in range(5)]
        for item in items:
            queue.enqueue(item)

        drained = []
        while True:
            item = queue.dequeue()
            if item is None:
                break
            drained.append(item)

        assert drained == items

    def test_enqueue_returns_queue_length(self, queue):
        assert queue.enqueue(make_item(target_hash="0x1")) == 1
        assert queue.enqueue(make_item(target_hash="0x2")) == 2
        assert queue.size() == 2

    def test_dequeue_with_timeout_on_empty_queue(self, queue):
        assert queue.dequeue(timeout=0.01) is None

    def test_dequeue_with_timeout_returns_item(self, queue):
        item = make_item()
        queue.enqueue(item)
        assert queue.dequeue(timeout=0.01) == item

    def test_same_target_can_be_enqueued_twice(self, queue):
        queue.enqueue(make_item(target_hash="0xabc", work_hash="0xr1"))
        queue.enqueue(make_item(target_hash="0xabc", work_hash="0xr2"))
        assert queue.size() == 2

    def test_returned_item_comes_out_next(self, queue):
        queue.enqueue(make_item(target_hash="0x1"))
        queue.enqueue(make_item(target_hash="0x2"))

        first = queue.dequeue()
        queue.return_item(first)

        assert queue.dequeue().target_hash == "0x1"
        assert queue.dequeue().target_hash == "0x2"

    def test_peek_is_oldest_first_and_non_destructive(self, queue):
        for i in range(3):
            queue.enqueue(make_item(target_hash=f"0x{i}"))

        peeked = queue.peek(2)

        assert [i.target_hash for i in peeked] == ["0x0", "0x1"]
        assert queue.size() == 3
        assert queue.peek(0) == []

    def test_undecodable_entry_moves_to_failed_list(self, queue, store):
        store.push_front("mint_queue", "garbage")
        good = make_item()
        queue.enqueue(good)

        assert queue.dequeue() == good
        assert queue.failed_size() == 1
        raw = store.peek_range("failed_mint_queue", 0, -1)[0]
        entry = json.loads(raw)
        assert entry["raw_entry"] == "garbage"
        assert entry["failure_reason"].startswith("undecodable queue entry")

    def test_failed_items_are_most_recent_first(self, queue):
        queue.add_failed(make_item(target_hash="0x1"), "first", step="render_asset", code="TIMEOUT")
        queue.add_failed(make_item(target_hash="0x2"), "second")

        failed = queue.failed_items()

        assert [f.item.target_hash for f in failed] == ["0x2", "0x1"]
        assert failed[1].failed_step == "render_asset"
        assert failed[1].error_code == "TIMEOUT"
        assert failed[1].failure_reason == "first"

    def test_failed_items_skip_raw_entries(self, queue, store):
        queue.add_failed(make_item(), "boom")
        queue._add_failed_raw("garbage", "bad json")
        assert len(queue.failed_items()) == 1

    def test_failed_entry_is_flat_json(self, queue, store):
        item = make_item()
        queue.add_failed(item, "boom", step="mint_token")
        data = json.loads(store.peek_range("failed_mint_queue", 0, 0)[0])
        assert data["work_hash"] == item.work_hash
        assert data["failure_reason"] == "boom"
        assert FailedWorkItem.from_json(json.dumps(data)).item == item

    def test_requeue_moves_oldest_failure_first(self, queue, dedup):
        queue.add_failed(make_item(target_hash="0x1"), "a")
        queue.add_failed(make_item(target_hash="0x2"), "b")

        moved = queue.requeue_failed(dedup)

        assert moved == 2
        assert queue.failed_size() == 0
        assert queue.dequeue().target_hash == "0x1"
        assert queue.dequeue().target_hash == "0x2"

    def test_requeue_drops_targets_already_minted(self, queue, dedup):
        queue.add_failed(make_item(target_hash="0x1"), "a")
        queue.add_failed(make_item(target_hash="0x2"), "b")
        dedup.mark_target_processed("0x1")

        moved = queue.requeue_failed(dedup)

        assert moved == 1
        assert queue.failed_size() == 0
        assert [i.target_hash for i in queue.peek(5)] == ["0x2"]

    def test_requeue_respects_limit(self, queue, dedup):
        for i in range(3):
            queue.add_failed(make_item(target_hash=f"0x{i}"), "x")

        assert queue.requeue_failed(dedup, limit=2) == 2
        assert queue.failed_size() == 1
        assert queue.failed_items()[0].item.target_hash == "0x2"


class TestDedupGate:
    def test_marking_is_idempotent(self, dedup):
        assert dedup.is_target_processed("0xabc") is False
        dedup.mark_target_processed("0xabc")
        dedup.mark_target_processed("0xabc")
        assert dedup.is_target_processed("0xabc") is True

    def test_store_outage_surfaces(self, dedup, fake_redis):
        fake_redis.down = True
        with pytest.raises(StoreConnectionError):
            dedup.is_target_processed("0xabc")
