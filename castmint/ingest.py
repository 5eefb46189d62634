"""Turns webhook events into queued mint requests."""
import re
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

from castmint.db import HistoryStore
from castmint.errors import CastmintError
from castmint.logging_conf import logger
from castmint.neynar_client import NeynarClient
from castmint.queue.dedup import DedupGate
from castmint.queue.mint_queue import MintQueue
from castmint.queue.models import Identity, WorkItem

MINT_COMMAND = re.compile(r"^(!mint|ok\s+banger|@edit\s+mint)$", re.IGNORECASE)


@dataclass
class IngestResult:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **extra) -> "IngestResult":
        return cls(200, {"success": True, "message": message, **extra})

    @classmethod
    def fail(cls, status_code: int, error: str, code: str) -> "IngestResult":
        return cls(status_code, {"success": False, "error": error, "code": code})


def is_mint_command(text: Optional[str]) -> bool:
    return bool(text) and MINT_COMMAND.match(text.strip()) is not None


class IngestService:
    """
    Validates a cast.created event and enqueues it for minting.

    Only novel targets are queued: the dedup gate and the mint history are
    both consulted first. Two commands for the same target that arrive
    before either is minted are both queued; the pipeline's entry check
    stops the second one.
    """

    def __init__(self, queue: MintQueue, dedup: DedupGate, history: HistoryStore,
                 social: Optional[NeynarClient] = None, min_score: float = 0.69):
        self.queue = queue
        self.dedup = dedup
        self.history = history
        self.social = social
        self.min_score = min_score

    def handle_event(self, payload: Dict[str, Any]) -> IngestResult:
        if not isinstance(payload, dict):
            return IngestResult.fail(400, "Invalid webhook payload", "INVALID_PAYLOAD")

        if payload.get("type") != "cast.created":
            return IngestResult.ok("Ignored event")

        data = payload.get("data")
        if not isinstance(data, dict) or not data.get("hash"):
            return IngestResult.fail(400, "Invalid webhook payload", "INVALID_PAYLOAD")

        work_hash = data["hash"]
        text = (data.get("text") or "").strip()
        parent_hash = data.get("parent_hash")

        if not parent_hash:
            logger.info(f"Not a reply, ignoring: {work_hash}")
            return IngestResult.ok("Not a reply")

        if not is_mint_command(text):
            logger.debug(f"Not a mint command, ignoring: {text!r}")
            return IngestResult.ok("Not a mint command")

        author = data.get("author") or {}
        if not isinstance(author, dict):
            return IngestResult.fail(400, "Invalid webhook payload", "INVALID_PAYLOAD")

        requester = Identity.from_neynar(author)
        if requester.score is None or requester.score < self.min_score:
            logger.info(f"User score too low: {requester.score}")
            self._reply_score_too_low(work_hash, requester.score)
            return IngestResult.ok("User score too low")

        parent_author = data.get("parent_author")
        if not parent_author:
            logger.info(f"Parent cast data not found: {parent_hash}")
            return IngestResult.fail(400, "Parent cast data not found", "MISSING_PARENT")
        if not isinstance(parent_author, dict):
            logger.info(f"Malformed parent author for {parent_hash}")
            return IngestResult.fail(400, "Invalid webhook payload", "INVALID_PAYLOAD")

        try:
            if self.dedup.is_target_processed(parent_hash):
                logger.info(f"Cast already processed: {parent_hash}")
                return IngestResult.ok("Cast already processed")

            existing = self.history.lookup_result(parent_hash)
            if existing:
                logger.info(f"Cast already minted, returning existing NFT: {existing.collect_url}")
                return IngestResult.ok(
                    "Returned existing mint",
                    minter=existing.requester_username,
                    collect_url=existing.collect_url,
                )

            item = WorkItem.create(
                work_hash=work_hash,
                target_hash=parent_hash,
                requester=requester,
                target_owner=Identity.from_neynar(parent_author),
                submitted_at=data.get("timestamp"),
                text=text,
            )
            length = self.queue.enqueue(item)
        except CastmintError as e:
            logger.error(f"Error processing mint command for {parent_hash}: {e}", exc_info=True)
            return IngestResult.fail(500, "Failed to process mint command", "ENQUEUE_FAILED")

        return IngestResult.ok("Cast queued for minting", queue_length=length)

    def _reply_score_too_low(self, work_hash: str, score: Optional[float]) -> None:
        if self.social is None:
            return
        text = (
            f"Sorry, your Neynar user score ({score or 0}) is too low to mint. "
            f"A minimum score of {self.min_score} is required."
        )
        try:
            self.social.publish_reply(text, parent=work_hash)
        except CastmintError as e:
            logger.error(f"Failed to post score reply: {e}")
