"""
services/http_base.py

Shared httpx plumbing for the Question Bank, Result Store and progress clients.
"""

import logging
from typing import Any, Dict, Optional

import httpx

import config

logger = logging.getLogger(__name__)


class HttpBackend:
    """
    Thin async JSON client.

    Pass `client` to reuse a connection pool (or a MockTransport in tests);
    otherwise a short-lived AsyncClient is opened per request.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = config.HTTP_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = headers or {}
        self._client = client

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Send a request and decode the JSON body.

        Raises:
            httpx.HTTPError: transport failure or non-2xx status.
            ValueError:      body is not JSON.
        """
        url = f"{self.base_url}{path}"
        headers = {**self.headers, **kwargs.pop("headers", {})}
        if self._client is not None:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        response.raise_for_status()
        return response.json()
