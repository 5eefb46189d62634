"""Signature verification for incoming Neynar webhooks."""
import hashlib
import hmac
from typing import Optional, Union


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_signature(secret: str, timestamp: str, body: Union[str, bytes]) -> str:
    """Hex HMAC-SHA256 of ``timestamp + "." + body``."""
    payload = _to_bytes(timestamp) + b"." + _to_bytes(body)
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(body: Union[str, bytes], signature: Optional[str],
                     timestamp: Optional[str], secret: str) -> bool:
    """Check a webhook signature in constant time.

    Stateless: the same valid triple verifies every time. Replays are
    stopped by the dedup gate and history lookup, not here.
    """
    if not signature or not timestamp or not secret:
        return False
    expected = compute_signature(secret, timestamp, body)
    return hmac.compare_digest(signature.strip().lower().encode("utf-8"), expected.encode("utf-8"))
