"""Clients for the on-chain split and token services."""
from dataclasses import dataclass
from typing import Optional

from castmint.errors import ServiceError
from castmint.http_client import HttpClient
from castmint.logging_conf import logger
from castmint.splits import SplitConfig


@dataclass
class SplitTarget:
    address: str
    exists: bool = False
    tx_hash: Optional[str] = None


@dataclass
class MintedToken:
    token_id: str
    contract_address: str
    tx_hash: Optional[str] = None


def _chain_http(base_url: str, name: str, api_key: Optional[str], timeout: float) -> HttpClient:
    headers = {"x-api-key": api_key} if api_key else None
    return HttpClient(base_url, name=name, timeout=timeout, headers=headers)


class SplitsClient:
    """Predicts and deploys immutable split contracts."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 120.0):
        self.http = _chain_http(base_url, "Splits", api_key, timeout)

    def predict(self, config: SplitConfig) -> SplitTarget:
        """Deterministic address for this config and whether it is deployed."""
        data = self.http.post_json("/splits/predict", config.to_dict())
        address = data.get("splitAddress") or data.get("address")
        if not address:
            raise ServiceError("Split prediction returned no address")
        return SplitTarget(address=address, exists=bool(data.get("splitExists", data.get("exists"))))

    def create(self, config: SplitConfig) -> SplitTarget:
        """Deploy a split and wait for the receipt."""
        data = self.http.post_json("/splits", config.to_dict())
        address = data.get("splitAddress") or data.get("address")
        if not address:
            raise ServiceError("Split creation returned no address")
        tx_hash = data.get("transactionHash")
        logger.info(f"Created split {address} (tx {tx_hash})")
        return SplitTarget(address=address, exists=True, tx_hash=tx_hash)


class TokenClient:
    """Creates new ERC-1155 tokens on an existing contract."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 120.0):
        self.http = _chain_http(base_url, "Tokens", api_key, timeout)

    def mint(self, contract_address: str, metadata_uri: str, payout_recipient: str) -> MintedToken:
        data = self.http.post_json("/tokens", {
            "contractAddress": contract_address,
            "tokenUri": metadata_uri,
            "splitAddress": payout_recipient,
        })
        token = data.get("token") or data
        token_id = token.get("tokenId")
        if token_id is None:
            raise ServiceError("Token creation returned no token id")
        return MintedToken(
            token_id=str(token_id),
            contract_address=token.get("contractAddress") or contract_address,
            tx_hash=token.get("transactionHash"),
        )
