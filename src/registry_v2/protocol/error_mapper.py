"""
Response to error mapping.

Converts non-2xx responses into typed errors. A body matching the registry
error envelope always wins over a bare status error.
"""
from __future__ import annotations

from typing import Optional

import httpx
from pydantic import ValidationError

from ..errors import RegistryApiError, RegistryError, UnexpectedStatus
from ..models import Errors


def parse_error_envelope(body: bytes) -> Optional[Errors]:
    """
    Parse an {"errors": [...]} body.

    Returns:
        The envelope, or None if the body is empty, not JSON, not the
        envelope shape, or carries no entries
    """
    if not body:
        return None
    try:
        envelope = Errors.model_validate_json(body)
    except ValidationError:
        return None
    return envelope if envelope.errors else None


def error_from_response(response: httpx.Response) -> RegistryError:
    """Typed error for a non-2xx response whose body has been read."""
    envelope = parse_error_envelope(response.content)
    if envelope is not None:
        return RegistryApiError(response.status_code, envelope)
    return UnexpectedStatus(
        response.status_code,
        f"unexpected HTTP {response.status_code} from {response.request.method} {response.request.url}",
    )


def ensure_status(response: httpx.Response, *expected: int) -> httpx.Response:
    """
    Return the response if its status is one of `expected`.

    Raises:
        RegistryApiError: If the body is a registry error envelope
        UnexpectedStatus: Otherwise
    """
    if response.status_code in expected:
        return response
    raise error_from_response(response)


async def ensure_stream_status(response: httpx.Response, *expected: int) -> httpx.Response:
    """Streaming variant of ensure_status: reads the (small) error body first."""
    if response.status_code in expected:
        return response
    await response.aread()
    raise error_from_response(response)
