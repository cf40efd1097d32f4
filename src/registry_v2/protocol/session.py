"""
Signed request pipeline shared by every protocol component.

The session owns the single mutable piece of client state, the current
Bearer token. The auth negotiator is its only writer; every other
component only reads it when signing a request.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import httpx

from ..errors import TransportError
from ..models import TokenAuth

logger = logging.getLogger(__name__)


class RegistrySession:
    """
    Request signing and transport-error mapping for one Client.

    Every outgoing request gets a User-Agent header and, when a token is
    held and the request is not explicitly anonymous, an
    `Authorization: Bearer <token>` header.
    """

    def __init__(self, http: httpx.AsyncClient, base_url: str, user_agent: str):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self._token: Optional[TokenAuth] = None

    @property
    def token(self) -> Optional[TokenAuth]:
        return self._token

    def set_token(self, token: Optional[TokenAuth]) -> None:
        """Replace the held token wholesale (None drops it)."""
        self._token = token

    def api_url(self, path: str) -> str:
        """URL for a v2 API path, keeping any path prefix of the base URL."""
        return f"{self.base_url}/{path.lstrip('/')}"

    def resolve_url(self, reference: str) -> str:
        """Resolve a server-supplied (possibly relative) URL against the base URL."""
        return str(httpx.URL(self.base_url + "/").join(reference))

    def sign(self, headers: Optional[Dict[str, str]] = None,
             authenticated: bool = True) -> Dict[str, str]:
        signed = {"User-Agent": self.user_agent}
        if headers:
            signed.update(headers)
        if authenticated and self._token is not None:
            signed["Authorization"] = f"Bearer {self._token.token}"
        return signed

    async def request(self, method: str, url: str, *,
                      headers: Optional[Dict[str, str]] = None,
                      authenticated: bool = True,
                      **kwargs) -> httpx.Response:
        """
        Send one signed request and read the full response body.

        Raises:
            TransportError: On any network/TLS/timeout failure
        """
        logger.debug(f"{method} {url}")
        try:
            return await self.http.request(
                method, url, headers=self.sign(headers, authenticated), **kwargs
            )
        except httpx.TransportError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

    @asynccontextmanager
    async def stream(self, method: str, url: str, *,
                     headers: Optional[Dict[str, str]] = None,
                     **kwargs) -> AsyncIterator[httpx.Response]:
        """
        Send one signed request without reading the body.

        Leaving the context closes the response and releases the connection,
        including when the consumer abandons iteration early.
        """
        logger.debug(f"{method} {url} (streamed)")
        try:
            async with self.http.stream(method, url, headers=self.sign(headers), **kwargs) as response:
                yield response
        except httpx.TransportError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
