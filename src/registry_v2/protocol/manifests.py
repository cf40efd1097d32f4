"""
Manifest resolution with content-type negotiation and digest verification.

The manifest body is small and read whole; its digest is always computed
locally. When the registry sends Docker-Content-Digest, or the reference
itself is a digest, the computed digest must match exactly or the manifest
is discarded.
"""
from __future__ import annotations

import json
import logging
from typing import Optional, Tuple

import httpx
from pydantic import ValidationError

from ..errors import DecodeError, DigestMismatch, InvalidDigest, UnexpectedStatus, UnsupportedMediaType
from ..media_types import (
    ACCEPTED_MANIFEST_TYPES,
    CONTENT_DIGEST_HEADER,
    DOCKER_MANIFEST_V1,
)
from ..models import MANIFEST_MODELS, Digest, Manifest, ManifestContent
from .error_mapper import ensure_status
from .session import RegistrySession

logger = logging.getLogger(__name__)

__all__ = ["ManifestResolver", "parse_manifest", "verify_manifest_digest"]

ACCEPT_HEADER = ", ".join(ACCEPTED_MANIFEST_TYPES)


def _content_type(response: httpx.Response) -> Optional[str]:
    value = response.headers.get("Content-Type")
    if not value:
        return None
    return value.split(";", 1)[0].strip().lower() or None


def verify_manifest_digest(raw: bytes, header_value: Optional[str],
                           reference: Optional[str] = None) -> Digest:
    """
    Compute and check the digest of a manifest body.

    The algorithm is the one named by the header (sha256 if absent). A
    digest reference is checked too.

    Returns:
        The computed digest

    Raises:
        DigestMismatch: If the header or digest reference disagrees with the body,
            or the header is not a digest this client can check
    """
    expected = None
    if header_value:
        try:
            expected = Digest.parse(header_value)
        except InvalidDigest as e:
            raise DigestMismatch(
                f"Manifest digest mismatch: header says {header_value!r}, which is not a valid digest",
                expected=header_value, actual=str(Digest.compute(raw)),
            ) from e
    computed = Digest.compute(raw, expected.algorithm if expected else "sha256")

    if expected is not None and computed != expected:
        raise DigestMismatch(
            f"Manifest digest mismatch: header says {expected}, body hashes to {computed}",
            expected=str(expected), actual=str(computed),
        )

    if reference is not None and Digest.looks_like_digest(reference):
        wanted = Digest.parse(reference)
        actual = computed if wanted.algorithm == computed.algorithm else Digest.compute(raw, wanted.algorithm)
        if actual != wanted:
            raise DigestMismatch(
                f"Manifest digest mismatch: requested {wanted}, body hashes to {actual}",
                expected=str(wanted), actual=str(actual),
            )

    return computed


def parse_manifest(raw: bytes, content_type: Optional[str] = None) -> Tuple[str, ManifestContent]:
    """
    Parse a manifest body into its variant.

    The variant is picked by the body's mediaType, then the response
    Content-Type, then schemaVersion 1.

    Returns:
        (media_type, parsed variant)

    Raises:
        DecodeError: If the body is not a JSON object or does not fit its variant
        UnsupportedMediaType: If no supported variant matches
    """
    try:
        document = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Invalid JSON in manifest: {e}") from e
    if not isinstance(document, dict):
        raise DecodeError("Manifest is not a JSON object")

    media_type = document.get("mediaType")
    if media_type not in MANIFEST_MODELS:
        if media_type is None and content_type in MANIFEST_MODELS:
            media_type = content_type
        elif media_type is None and document.get("schemaVersion") == 1:
            media_type = DOCKER_MANIFEST_V1
        else:
            raise UnsupportedMediaType(
                f"Unsupported manifest media type: {media_type or content_type}. "
                f"Expected one of: {', '.join(ACCEPTED_MANIFEST_TYPES)}"
            )

    model = MANIFEST_MODELS[media_type]
    try:
        content = model.model_validate(document)
    except ValidationError as e:
        raise DecodeError(f"Manifest does not match {media_type}: {e}") from e
    return media_type, content


class ManifestResolver:
    """GET/HEAD/PUT of manifests for one session."""

    def __init__(self, session: RegistrySession):
        self._session = session

    def _url(self, repo: str, reference: str) -> str:
        return self._session.api_url(f"/v2/{repo}/manifests/{reference}")

    async def get(self, repo: str, reference: str) -> Manifest:
        """
        Fetch and verify a manifest by tag or digest.

        Raises:
            DigestMismatch: Body does not hash to the advertised/requested digest
            RegistryApiError: Non-2xx with a registry error envelope
            UnexpectedStatus: Non-2xx without a parseable envelope
            DecodeError: Body is not a supported manifest
            TransportError: Network/TLS failure
        """
        url = self._url(repo, reference)
        response = await self._session.request("GET", url, headers={"Accept": ACCEPT_HEADER})
        ensure_status(response, 200)

        raw = response.content
        digest = verify_manifest_digest(raw, response.headers.get(CONTENT_DIGEST_HEADER), reference)
        media_type, content = parse_manifest(raw, _content_type(response))
        logger.debug(f"Resolved {repo}:{reference} -> {digest} ({media_type})")

        return Manifest(
            schema_version=content.schema_version,
            media_type=media_type,
            digest=digest,
            raw=raw,
            content=content,
        )

    async def head(self, repo: str, reference: str) -> Optional[str]:
        """
        HEAD a manifest.

        Returns:
            Docker-Content-Digest value ("" if the registry omits it), or
            None if the manifest does not exist
        """
        url = self._url(repo, reference)
        response = await self._session.request("HEAD", url, headers={"Accept": ACCEPT_HEADER})
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            # HEAD responses carry no body to map
            raise UnexpectedStatus(response.status_code, f"HEAD {url} returned {response.status_code}")
        return response.headers.get(CONTENT_DIGEST_HEADER, "")

    async def put(self, repo: str, reference: str, payload: bytes, media_type: str) -> Digest:
        """
        Upload a manifest under a tag or digest.

        The registry's Docker-Content-Digest, when present, must equal the
        locally computed digest.

        Raises:
            DigestMismatch: Server digest != local digest
            RegistryApiError / UnexpectedStatus: Non-201 response
        """
        local = Digest.compute(payload)
        url = self._url(repo, reference)
        response = await self._session.request(
            "PUT", url, content=payload, headers={"Content-Type": media_type}
        )
        ensure_status(response, 201)

        server_value = response.headers.get(CONTENT_DIGEST_HEADER)
        if server_value:
            try:
                server = Digest.parse(server_value)
            except InvalidDigest as e:
                raise DigestMismatch(
                    f"Registry digest {server_value!r} is not a valid digest for {repo}:{reference}",
                    expected=str(local), actual=server_value,
                ) from e
            if server.algorithm != local.algorithm:
                local = Digest.compute(payload, server.algorithm)
            if server != local:
                raise DigestMismatch(
                    f"Registry digest {server} != local digest {local} for {repo}:{reference}",
                    expected=str(local), actual=str(server),
                )
        logger.debug(f"Pushed manifest {repo}:{reference} -> {local}")
        return local
