"""Client for the cast image rendering service."""
from dataclasses import dataclass, asdict
from typing import Optional

from castmint.errors import ServiceError
from castmint.http_client import HttpClient


@dataclass
class TargetDescription:
    """What the renderer needs to draw a cast."""

    cast_hash: str
    text: str
    author_username: str
    author_display_name: Optional[str] = None


class RenderClient:
    """Renders a cast to a PNG through the rendering service."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 30.0):
        headers = {"x-api-key": api_key} if api_key else None
        self.http = HttpClient(base_url, name="Renderer", timeout=timeout, headers=headers)

    def render(self, target: TargetDescription) -> bytes:
        response = self.http.request("POST", "/render", json=asdict(target), headers={"Accept": "image/png"})
        if not response.content:
            raise ServiceError(f"Renderer returned an empty image for {target.cast_hash}")
        return response.content
