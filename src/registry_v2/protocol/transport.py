"""
HTTP transport construction.

Builds the httpx.AsyncClient the protocol engine runs on: timeouts, redirect
handling and the TLS trust store (default store plus an optional custom
trust anchor).
"""
from __future__ import annotations

import logging
import ssl
from typing import Optional, Union

import httpx

from ..settings import Settings

logger = logging.getLogger(__name__)


def build_ssl_context(ca_cert_path: Optional[str] = None,
                      ca_cert_pem: Optional[Union[str, bytes]] = None) -> ssl.SSLContext:
    """
    Default-verifying SSL context with extra trust anchors.

    Args:
        ca_cert_path: PEM file added to the default trust store
        ca_cert_pem: PEM data added to the default trust store

    Returns:
        SSL context verifying hostnames and certificates
    """
    context = ssl.create_default_context()
    if ca_cert_path:
        context.load_verify_locations(cafile=ca_cert_path)
    if ca_cert_pem:
        if isinstance(ca_cert_pem, bytes):
            ca_cert_pem = ca_cert_pem.decode("ascii")
        context.load_verify_locations(cadata=ca_cert_pem)
    return context


def build_http_client(settings: Settings,
                      transport: Optional[httpx.AsyncBaseTransport] = None,
                      ca_cert_pem: Optional[Union[str, bytes]] = None) -> httpx.AsyncClient:
    """
    Create the async HTTP client for a registry.

    Authorization is never configured at this level; requests are signed
    per call so Basic credentials only ever reach the token endpoint.

    Args:
        settings: Registry configuration
        transport: Optional transport override (e.g. httpx.MockTransport in tests)
        ca_cert_pem: Optional in-memory trust anchor

    Returns:
        Configured httpx.AsyncClient
    """
    if settings.registry_insecure:
        verify: Union[bool, ssl.SSLContext] = False
    else:
        verify = build_ssl_context(settings.ca_cert_path, ca_cert_pem)

    logger.debug(f"HTTP client for {settings.base_url}: timeout={settings.http_timeout_s}s, "
                 f"connect={settings.connect_timeout_s}s, insecure={settings.registry_insecure}, "
                 f"custom_ca={bool(settings.ca_cert_path or ca_cert_pem)}")

    return httpx.AsyncClient(
        http2=False,  # Disable HTTP/2 to avoid h2 dependency
        timeout=httpx.Timeout(settings.http_timeout_s, connect=settings.connect_timeout_s),
        follow_redirects=True,
        verify=verify,
        transport=transport,
    )
