"""Queue data models."""
import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Identity:
    """A Farcaster user and the addresses they have verified."""

    fid: Optional[int]
    username: str
    payable_addresses: List[str] = field(default_factory=list)
    display_name: Optional[str] = None
    score: Optional[float] = None

    @property
    def payable_address(self) -> Optional[str]:
        """First verified ETH address, if any."""
        for address in self.payable_addresses:
            if address:
                return address
        return None

    @classmethod
    def from_neynar(cls, user: Dict[str, Any]) -> "Identity":
        """Build from a Neynar user object (webhook author or API user)."""
        verified = (user.get("verified_addresses") or {}).get("eth_addresses") or []
        experimental = user.get("experimental") or {}
        return cls(
            fid=user.get("fid"),
            username=user.get("username") or "",
            payable_addresses=list(verified),
            display_name=user.get("display_name"),
            score=experimental.get("neynar_user_score"),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        return cls(
            fid=data.get("fid"),
            username=data.get("username") or "",
            payable_addresses=list(data.get("payable_addresses") or []),
            display_name=data.get("display_name"),
            score=data.get("score"),
        )


@dataclass(frozen=True)
class WorkItem:
    """A queued mint request."""

    work_hash: str  # Hash of the reply that carried the command
    target_hash: str  # Hash of the cast being minted; the dedup key
    requester: Identity
    target_owner: Identity
    submitted_at: str
    text: str = ""

    @classmethod
    def create(cls, work_hash: str, target_hash: str, requester: Identity,
               target_owner: Identity, submitted_at: Optional[str] = None, text: str = ""):
        """Factory method to create a WorkItem."""
        return cls(
            work_hash=work_hash,
            target_hash=target_hash,
            requester=requester,
            target_owner=target_owner,
            submitted_at=submitted_at or utc_now(),
            text=text,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkItem":
        return cls(
            work_hash=data["work_hash"],
            target_hash=data["target_hash"],
            requester=Identity.from_dict(data.get("requester") or {}),
            target_owner=Identity.from_dict(data.get("target_owner") or {}),
            submitted_at=data.get("submitted_at") or "",
            text=data.get("text") or "",
        )

    @classmethod
    def from_json(cls, raw: str) -> "WorkItem":
        """Decode a queue entry. Raises ValueError on malformed input."""
        try:
            data = json.loads(raw)
            return cls.from_dict(data)
        except (TypeError, KeyError, AttributeError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed work item: {e}") from e


@dataclass(frozen=True)
class FailedWorkItem:
    """A work item that failed, with the reason it failed."""

    item: WorkItem
    failure_reason: str
    failed_at: str
    failed_step: Optional[str] = None
    error_code: Optional[str] = None

    def to_json(self) -> str:
        data = self.item.to_dict()
        data.update({
            "failure_reason": self.failure_reason,
            "failed_at": self.failed_at,
            "failed_step": self.failed_step,
            "error_code": self.error_code,
        })
        return json.dumps(data, sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "FailedWorkItem":
        data = json.loads(raw)
        return cls(
            item=WorkItem.from_dict(data),
            failure_reason=data.get("failure_reason") or "",
            failed_at=data.get("failed_at") or "",
            failed_step=data.get("failed_step"),
            error_code=data.get("error_code"),
        )
