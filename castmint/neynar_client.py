"""Minimal Neynar API client for reading casts and publishing replies."""
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from castmint.errors import NotFoundError, ServiceError
from castmint.http_client import HttpClient
from castmint.logging_conf import logger
from castmint.queue.models import Identity


@dataclass
class TargetContent:
    """A cast together with its author's full identity."""

    hash: str
    text: str
    owner: Identity
    embeds: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: Optional[str] = None


class NeynarClient:
    """Reads casts and users from Neynar and posts replies as our signer."""

    def __init__(self, api_key: str, signer_uuid: str, base_url: str, timeout: float = 30.0):
        self.signer_uuid = signer_uuid
        self.http = HttpClient(
            base_url,
            name="Neynar",
            timeout=timeout,
            headers={"api_key": api_key, "x-neynar-experimental": "true"},
        )

    def fetch_cast(self, cast_hash: str) -> Dict[str, Any]:
        """Fetch a cast by hash. Raises NotFoundError when it does not exist."""
        response = self.http.get_json("/cast", params={"identifier": cast_hash, "type": "hash"})
        cast = response.get("cast")
        if not cast:
            raise NotFoundError(f"Cast not found: {cast_hash}")
        return cast

    def fetch_user(self, fid: int) -> Identity:
        """Fetch a user with verified addresses. Raises NotFoundError when unknown."""
        response = self.http.get_json("/user/bulk", params={"fids": str(fid)})
        users = response.get("users") or []
        if not users:
            raise NotFoundError(f"User not found: {fid}")
        return Identity.from_neynar(users[0])

    def fetch_content(self, cast_hash: str) -> TargetContent:
        """
        Fetch a cast and its owner's identity.

        Webhook author objects can lag behind verified addresses, so the
        owner is looked up again through the user endpoint.
        """
        cast = self.fetch_cast(cast_hash)
        author = cast.get("author") or {}
        fid = author.get("fid")
        if fid is None:
            raise ServiceError(f"Cast {cast_hash} has no author fid")
        owner = self.fetch_user(fid)
        return TargetContent(
            hash=cast_hash,
            text=cast.get("text") or "",
            owner=owner,
            embeds=cast.get("embeds") or [],
            timestamp=cast.get("timestamp"),
        )

    def publish_reply(self, text: str, parent: str, embeds: Optional[List[str]] = None) -> Dict[str, Any]:
        """Publish a cast as a reply to ``parent``."""
        payload = {
            "signer_uuid": self.signer_uuid,
            "text": text,
            "parent": parent,
            "embeds": [{"url": url} for url in (embeds or [])],
        }
        response = self.http.post_json("/cast", payload)
        logger.info(f"Published reply to {parent}")
        return response
