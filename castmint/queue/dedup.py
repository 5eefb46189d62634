"""Tracks which targets have been minted."""
from castmint.logging_conf import logger
from castmint.queue.store import QueueStore


class DedupGate:
    """Set membership of target hashes whose mint fully completed.

    Only mark a target after the mint and the history write both succeed;
    an early mark would block legitimate retries for good.
    """

    def __init__(self, store: QueueStore, set_name: str):
        self.store = store
        self.set_name = set_name

    def is_target_processed(self, target_hash: str) -> bool:
        return self.store.is_member(self.set_name, target_hash)

    def mark_target_processed(self, target_hash: str) -> None:
        self.store.add_to_set(self.set_name, target_hash)
        logger.info(f"Marked target processed: {target_hash}", extra={"target_hash": target_hash})
