"""
Registry client error classes.

Provides a clear taxonomy of errors that can occur while talking to a v2
registry. Non-2xx responses and transport failures are mapped onto these
classes so callers never need to inspect raw httpx objects.
"""
from __future__ import annotations

import ssl
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .models import ApiError, Errors


class RegistryError(Exception):
    """Base class for all registry client errors."""
    pass


class AuthChallengeMalformed(RegistryError):
    """
    A WWW-Authenticate header could not be turned into a Bearer challenge.

    Raised when the scheme is not Bearer or the realm is missing/invalid.
    """
    pass


class AuthProbeFailed(RegistryError):
    """
    The anonymous GET /v2/ probe did not yield a usable outcome.

    Raised when:
    - the probe answers with a status other than 200 or 401
    - a 401 carries no WWW-Authenticate header
    - the WWW-Authenticate header is malformed (chained as __cause__)
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TokenRequestFailed(RegistryError):
    """The token endpoint answered with a non-200 status."""

    def __init__(self, status: int):
        super().__init__(f"token request failed with HTTP {status}")
        self.status = status


class TokenResponseInvalid(RegistryError):
    """The token endpoint body is not JSON or has no token field."""
    pass


class RegistryApiError(RegistryError):
    """
    Structured registry error body ({"errors": [...]}).

    Always preferred over UnexpectedStatus when the body parses.
    """

    def __init__(self, status: int, envelope: Errors):
        self.status = status
        self.envelope = envelope
        first = envelope.errors[0] if envelope.errors else None
        summary = f"{first.code}: {first.message}" if first else "empty error list"
        super().__init__(f"registry error (HTTP {status}): {summary}")

    @property
    def errors(self) -> List[ApiError]:
        return self.envelope.errors


class UnexpectedStatus(RegistryError):
    """Non-2xx response without a parseable error envelope."""

    def __init__(self, status: int, message: Optional[str] = None):
        super().__init__(message or f"unexpected HTTP status {status}")
        self.status = status


class DigestMismatch(RegistryError):
    """
    Content digest validation failed.

    Raised when:
    - a manifest body does not hash to the Docker-Content-Digest header
    - a manifest fetched by digest does not hash to that digest
    - a verified blob stream does not hash to the requested digest
    - put_manifest: server digest != locally computed digest

    Never downgraded to a warning.
    """

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class _UploadError(RegistryError):
    """Upload failure carrying the status and the optional error envelope."""

    def __init__(self, message: str, status: Optional[int] = None,
                 envelope: Optional[Errors] = None):
        super().__init__(message)
        self.status = status
        self.envelope = envelope


class UploadInitFailed(_UploadError):
    """POST .../blobs/uploads/ did not return 202 with Location and Docker-Upload-UUID."""
    pass


class ChunkUploadFailed(_UploadError):
    """A chunk PATCH failed; the session offset is left unchanged."""
    pass


class UploadFinalizeFailed(_UploadError):
    """The finalizing PUT did not return 201."""
    pass


class TransportError(RegistryError):
    """
    Network or TLS failure from the underlying connection.

    Timeouts are reported here too; they are never retried implicitly.
    """

    @property
    def is_certificate_error(self) -> bool:
        """True if the failure was a TLS certificate verification error."""
        exc: Optional[BaseException] = self.__cause__
        seen = set()
        while exc is not None and id(exc) not in seen:
            seen.add(id(exc))
            if isinstance(exc, ssl.SSLCertVerificationError):
                return True
            if "CERTIFICATE_VERIFY_FAILED" in str(exc):
                return True
            exc = exc.__cause__ or exc.__context__
        return False


class DecodeError(RegistryError, ValueError):
    """Malformed JSON/UTF-8 where valid data was expected."""
    pass


class InvalidDigest(DecodeError):
    """A digest string is not algorithm:hex or uses an unsupported algorithm."""
    pass


class UnsupportedMediaType(DecodeError):
    """A manifest media type is not one of the supported variants."""
    pass


__all__ = [
    "RegistryError",
    "AuthChallengeMalformed",
    "AuthProbeFailed",
    "TokenRequestFailed",
    "TokenResponseInvalid",
    "RegistryApiError",
    "UnexpectedStatus",
    "DigestMismatch",
    "UploadInitFailed",
    "ChunkUploadFailed",
    "UploadFinalizeFailed",
    "TransportError",
    "DecodeError",
    "InvalidDigest",
    "UnsupportedMediaType",
]
