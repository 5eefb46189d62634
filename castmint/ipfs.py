"""Pins files to IPFS through Pinata."""
import json
from typing import Dict, Any

from castmint.errors import ServiceError
from castmint.http_client import HttpClient
from castmint.logging_conf import logger


class PinataStorage:
    """Content-addressed storage. Returns ``ipfs://<CIDv1>`` URIs."""

    def __init__(self, jwt: str, base_url: str = "https://api.pinata.cloud", timeout: float = 60.0):
        self.http = HttpClient(
            base_url,
            name="Pinata",
            timeout=timeout,
            headers={"Authorization": f"Bearer {jwt}"},
        )

    def store(self, data: bytes, filename: str, content_type: str = "application/octet-stream") -> str:
        """Upload and pin bytes; returns the content URI."""
        files = {"file": (filename, data, content_type)}
        form = {
            "pinataMetadata": json.dumps({"name": filename}),
            "pinataOptions": json.dumps({"cidVersion": 1}),
        }
        response = self.http.request("POST", "/pinning/pinFileToIPFS", files=files, data=form)
        try:
            cid = response.json()["IpfsHash"]
        except (ValueError, KeyError) as e:
            raise ServiceError(f"Pinata response missing IpfsHash for {filename}") from e
        logger.info(f"Pinned {filename} ({len(data)} bytes) as {cid}")
        return f"ipfs://{cid}"

    def store_json(self, document: Dict[str, Any], filename: str = "metadata.json") -> str:
        data = json.dumps(document).encode("utf-8")
        return self.store(data, filename, content_type="application/json")
