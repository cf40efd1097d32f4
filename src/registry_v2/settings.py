"""
Settings and configuration for the registry client.

Centralizes configuration values and provides validation with fail-fast behavior.
A Settings instance is an immutable snapshot; the only mutable client state
(the Bearer token) lives on the session, never here.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional

__all__ = ["Settings", "create_settings_from_env", "USER_AGENT", "__version__"]

__version__ = "0.1.0"

# Sent on every request unless Settings.user_agent overrides it
USER_AGENT = f"registry-v2/{__version__}"


@dataclass(frozen=True)
class Settings:
    """
    Configuration snapshot for a registry Client.

    Registry Settings:
        registry_url: Registry host[:port] or full http(s) URL (required)
        registry_insecure: Use plain HTTP for scheme-less URLs, skip TLS verification
        registry_user: Username for the token exchange (Basic auth)
        registry_pass: Password for the token exchange (Basic auth)
        user_agent: User-Agent header value (defaults to USER_AGENT)
        ca_cert_path: Extra PEM trust anchor added to the default certificate store

    Transport Settings:
        http_timeout_s: Read/write/pool timeout in seconds
        connect_timeout_s: Connect timeout in seconds
        chunk_retry: Resumptions allowed per chunk in push_blob (0=no retry)
    """
    registry_url: str
    registry_insecure: bool = False
    registry_user: Optional[str] = None
    registry_pass: Optional[str] = None
    user_agent: Optional[str] = None
    ca_cert_path: Optional[str] = None
    http_timeout_s: float = 30.0
    connect_timeout_s: float = 5.0
    chunk_retry: int = 0

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.registry_url:
            raise ValueError("registry_url is required")

        # host[:port] or http(s)://host[:port], optional path prefix
        url_pattern = r"^(?:https?://)?[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$"
        if not re.match(url_pattern, self.registry_url):
            raise ValueError(f"Invalid registry_url format: {self.registry_url}")

        if bool(self.registry_user) != bool(self.registry_pass):
            raise ValueError("registry_user and registry_pass must be given together")

        if self.ca_cert_path is not None and not os.path.isfile(self.ca_cert_path):
            raise ValueError(f"ca_cert_path does not exist: {self.ca_cert_path}")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.connect_timeout_s <= 0:
            raise ValueError(f"connect_timeout_s must be positive, got {self.connect_timeout_s}")

        if self.chunk_retry < 0:
            raise ValueError(f"chunk_retry must be non-negative, got {self.chunk_retry}")

    @property
    def base_url(self) -> str:
        """Scheme-qualified registry URL without trailing slash."""
        url = self.registry_url.rstrip("/")
        if url.startswith(("http://", "https://")):
            return url
        scheme = "http" if self.registry_insecure else "https"
        return f"{scheme}://{url}"

    @property
    def credentials(self) -> Optional[tuple[str, str]]:
        """(username, password) pair, or None for anonymous token requests."""
        if self.registry_user and self.registry_pass:
            return (self.registry_user, self.registry_pass)
        return None

    @property
    def effective_user_agent(self) -> str:
        return self.user_agent or USER_AGENT


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - REGV2_REGISTRY_URL (required)
        - REGV2_REGISTRY_INSECURE (default: false)
        - REGV2_REGISTRY_USERNAME (optional)
        - REGV2_REGISTRY_PASSWORD (optional)
        - REGV2_USER_AGENT (optional)
        - REGV2_CA_CERT (optional, path to PEM file)
        - REGV2_HTTP_TIMEOUT (default: 30.0)
        - REGV2_CONNECT_TIMEOUT (default: 5.0)
        - REGV2_CHUNK_RETRY (default: 0)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid or required values missing

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    registry_url = os.getenv("REGV2_REGISTRY_URL")
    if not registry_url:
        raise ValueError("REGV2_REGISTRY_URL environment variable is required")

    return Settings(
        registry_url=registry_url,
        registry_insecure=str_to_bool(os.getenv("REGV2_REGISTRY_INSECURE", "false")),
        registry_user=os.getenv("REGV2_REGISTRY_USERNAME") or None,
        registry_pass=os.getenv("REGV2_REGISTRY_PASSWORD") or None,
        user_agent=os.getenv("REGV2_USER_AGENT") or None,
        ca_cert_path=os.getenv("REGV2_CA_CERT") or None,
        http_timeout_s=get_float("REGV2_HTTP_TIMEOUT", 30.0),
        connect_timeout_s=get_float("REGV2_CONNECT_TIMEOUT", 5.0),
        chunk_retry=get_int("REGV2_CHUNK_RETRY", 0),
    )
