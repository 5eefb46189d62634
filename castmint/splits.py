"""Revenue split configuration for minted casts."""
import re
from dataclasses import dataclass, field
from typing import List, Dict, Any

from castmint import settings
from castmint.errors import ValidationError

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


@dataclass(frozen=True)
class SplitRecipient:
    address: str
    percent: int


@dataclass(frozen=True)
class SplitConfig:
    """Recipients and their percentage allocations. Always sums to 100."""

    recipients: List[SplitRecipient] = field(default_factory=list)
    distributor_fee_percent: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipients": [
                {"address": r.address, "percentAllocation": r.percent} for r in self.recipients
            ],
            "distributorFeePercent": self.distributor_fee_percent,
        }


def normalize_address(address) -> str:
    """Trim and lowercase an address, rejecting anything that is not 0x + 40 hex."""
    if not isinstance(address, str):
        raise ValidationError(f"Wallet address must be a string. Received type: {type(address).__name__}")
    normalized = address.strip().lower()
    if not _ADDRESS_RE.match(normalized):
        raise ValidationError(f"Invalid wallet address format: {address}")
    return normalized


def build_split_config(owner_address: str, requester_address: str, platform_address: str,
                       owner_share: int = settings.OWNER_SHARE,
                       requester_share: int = settings.REQUESTER_SHARE,
                       platform_share: int = settings.PLATFORM_SHARE) -> SplitConfig:
    """
    Build the split for one mint.

    The cast owner, the requester and the platform get 50/5/45. When the owner
    minted their own cast the first two shares collapse into one 55% entry.
    Recipient order is fixed, so identical inputs always give identical configs.
    """
    if owner_share + requester_share + platform_share != 100:
        raise ValueError("Split shares must add up to 100")

    owner = normalize_address(owner_address)
    requester = normalize_address(requester_address)
    platform = normalize_address(platform_address)

    if owner == requester:
        recipients = [
            SplitRecipient(owner, owner_share + requester_share),
            SplitRecipient(platform, platform_share),
        ]
    else:
        recipients = [
            SplitRecipient(owner, owner_share),
            SplitRecipient(requester, requester_share),
            SplitRecipient(platform, platform_share),
        ]
    return SplitConfig(recipients=recipients)
