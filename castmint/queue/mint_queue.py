"""FIFO mint queue on top of the queue store."""
import json
from typing import List, Optional

from castmint.logging_conf import logger
from castmint.queue.dedup import DedupGate
from castmint.queue.models import WorkItem, FailedWorkItem, utc_now
from castmint.queue.store import QueueStore


class MintQueue:
    """Pending and failed mint lists.

    Enqueue pushes to the head and dequeue pops from the tail, so items
    come out in the order they went in. Failed items are appended to a
    separate list and never re-enter the pending list on their own.
    """

    def __init__(self, store: QueueStore, pending_key: str, failed_key: str):
        self.store = store
        self.pending_key = pending_key
        self.failed_key = failed_key

    def enqueue(self, item: WorkItem) -> int:
        """Append an item to the pending list; returns the queue length."""
        length = self.store.push_front(self.pending_key, item.to_json())
        logger.info(
            f"Enqueued {item.work_hash} for target {item.target_hash} (queue length {length})",
            extra={"work_hash": item.work_hash, "target_hash": item.target_hash}
        )
        return length

    def dequeue(self, timeout: Optional[float] = None) -> Optional[WorkItem]:
        """Return the oldest pending item, or None if the queue is empty.

        With a timeout, wait up to that many seconds for an item to arrive.
        """
        while True:
            if timeout is None:
                raw = self.store.pop_back(self.pending_key)
            else:
                raw = self.store.pop_back_blocking(self.pending_key, timeout)
            if raw is None:
                return None
            try:
                return WorkItem.from_json(raw)
            except ValueError as e:
                logger.error(f"Dropping undecodable queue entry to failed list: {e}")
                self._add_failed_raw(raw, f"undecodable queue entry: {e}")
                timeout = None

    def return_item(self, item: WorkItem) -> int:
        """Put a dequeued item back so it is the next one out."""
        return self.store.push_back(self.pending_key, item.to_json())

    def peek(self, count: int = 1) -> List[WorkItem]:
        """The next ``count`` items due, oldest first, without removing them."""
        if count <= 0:
            return []
        raws = self.store.peek_range(self.pending_key, -count, -1)
        items = []
        for raw in reversed(raws):
            try:
                items.append(WorkItem.from_json(raw))
            except ValueError:
                logger.warning("Skipping undecodable entry while peeking")
        return items

    def size(self) -> int:
        return self.store.length(self.pending_key)

    def failed_size(self) -> int:
        return self.store.length(self.failed_key)

    def add_failed(self, item: WorkItem, reason: str, step: Optional[str] = None,
                   code: Optional[str] = None) -> int:
        """Record a failed item; returns the failed list length."""
        failed = FailedWorkItem(
            item=item,
            failure_reason=reason,
            failed_at=utc_now(),
            failed_step=step,
            error_code=code,
        )
        length = self.store.push_front(self.failed_key, failed.to_json())
        logger.warning(
            f"Moved {item.work_hash} to failed list: {reason}",
            extra={"work_hash": item.work_hash, "target_hash": item.target_hash, "step": step}
        )
        return length

    def failed_items(self, start: int = 0, end: int = -1) -> List[FailedWorkItem]:
        """Failed items, most recent first."""
        items = []
        for raw in self.store.peek_range(self.failed_key, start, end):
            try:
                items.append(FailedWorkItem.from_json(raw))
            except (ValueError, KeyError) as e:
                logger.warning(f"Skipping unreadable failed entry: {e}")
        return items

    def requeue_failed(self, dedup: DedupGate, limit: Optional[int] = None) -> int:
        """Move failed items back onto the pending list, oldest failure first.

        Targets that have since been minted are dropped instead of requeued.
        Undecodable entries stay where they are.
        """
        moved = 0
        raws = list(reversed(self.store.peek_range(self.failed_key, 0, -1)))
        for raw in raws:
            if limit is not None and moved >= limit:
                break
            try:
                failed = FailedWorkItem.from_json(raw)
            except (ValueError, KeyError):
                continue
            if not self.store.remove(self.failed_key, raw):
                continue
            if dedup.is_target_processed(failed.item.target_hash):
                logger.info(f"Not requeuing {failed.item.work_hash}: target already minted")
                continue
            self.enqueue(failed.item)
            moved += 1
        return moved

    def _add_failed_raw(self, raw: str, reason: str) -> None:
        entry = json.dumps({"raw_entry": raw, "failure_reason": reason, "failed_at": utc_now()})
        self.store.push_front(self.failed_key, entry)
