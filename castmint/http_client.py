"""Thin requests wrapper that maps HTTP failures onto castmint errors."""
from typing import Optional, Dict, Any

import requests

from castmint.errors import (
    InsufficientFundsError,
    NotFoundError,
    RateLimitedError,
    ServiceError,
    ServiceTimeout,
    TransportError,
)


class HttpClient:
    """A requests session bound to one base URL.

    Each call gets its own timeout. Timeouts surface as ServiceTimeout,
    connection failures and 5xx as TransportError, and 4xx as the matching
    ServiceError subclass. Retrying is left to the caller.
    """

    def __init__(self, base_url: str, name: str, timeout: float = 30.0,
                 headers: Optional[Dict[str, str]] = None):
        self.base_url = base_url.rstrip("/")
        self.name = name
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if headers:
            self.session.headers.update(headers)

    def request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{endpoint}"
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method=method, url=url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise ServiceTimeout(f"{self.name} timed out: {method} {endpoint}") from e
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"{self.name} connection failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{self.name} request failed: {e}") from e

        if response.status_code >= 400:
            self._raise_for_status(response, method, endpoint)
        return response

    def get_json(self, endpoint: str, **kwargs) -> Dict[str, Any]:
        return self._json(self.request("GET", endpoint, **kwargs))

    def post_json(self, endpoint: str, payload: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        return self._json(self.request("POST", endpoint, json=payload, **kwargs))

    def close(self) -> None:
        self.session.close()

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise ServiceError(f"{self.name} returned invalid JSON", response.status_code) from e

    def _raise_for_status(self, response: requests.Response, method: str, endpoint: str) -> None:
        status = response.status_code
        detail = self._error_detail(response)
        message = f"{self.name} {method} {endpoint} failed ({status}): {detail}"

        if status == 404:
            raise NotFoundError(message, status)
        if status == 429:
            raise RateLimitedError(message, retry_after=self._retry_after(response))
        if status == 402 or "insufficient funds" in detail.lower():
            raise InsufficientFundsError(message, status)
        if status >= 500:
            raise TransportError(message)
        raise ServiceError(message, status)

    @staticmethod
    def _retry_after(response: requests.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        try:
            return float(value) if value is not None else None
        except ValueError:
            return None

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return (response.text or "").strip()[:300] or "Unknown error"
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)[:300]
        return str(body)[:300]
