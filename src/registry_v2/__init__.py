"""
Docker/OCI Registry HTTP API v2 client.

Async protocol engine for talking to container registries: v2 probing,
Bearer token negotiation, paginated catalog/tag listing, verified manifest
resolution and resumable blob transfer.
"""
from __future__ import annotations

from .client import Client, create_client_from_settings
from .models import (
    BlobUploadSession,
    Digest,
    Manifest,
    Page,
    TokenAuth,
)
from .protocol.auth import AuthState, scope_for
from .protocol.blobs import verify_blob
from .settings import USER_AGENT, Settings, __version__, create_settings_from_env

__all__ = [
    "__version__",
    "USER_AGENT",
    "Client",
    "create_client_from_settings",
    "Settings",
    "create_settings_from_env",
    "AuthState",
    "scope_for",
    "verify_blob",
    "BlobUploadSession",
    "Digest",
    "Manifest",
    "Page",
    "TokenAuth",
]
