"""
Data models for the registry v2 protocol.

Pydantic models cover the JSON bodies the registry sends (token responses,
error envelopes, catalog/tag pages, manifest documents). Plain frozen
dataclasses cover client-side values (digests, pages, upload sessions and
the verified manifest envelope).
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import InvalidDigest
from .media_types import (
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V1,
    DOCKER_MANIFEST_V1_SIGNED,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
)

T = TypeVar("T")

# algorithm -> hex length
SUPPORTED_DIGEST_ALGORITHMS = {"sha256": 64, "sha384": 96, "sha512": 128}

_HEX_RE = re.compile(r"^[a-fA-F0-9]+$")


# ---------------------------------------------------------------------------
# JSON payloads
# ---------------------------------------------------------------------------


class TokenAuth(BaseModel):
    """Token endpoint response. Superseded wholesale on re-login."""
    model_config = ConfigDict(frozen=True)

    token: str = Field(..., description="Bearer token presented on API calls")
    expires_in: Optional[int] = Field(default=None, description="Lifetime in seconds")
    issued_at: Optional[str] = Field(default=None, description="RFC3339 issue time")
    refresh_token: Optional[str] = Field(default=None, description="OAuth2 refresh token")

    def __repr__(self) -> str:
        # never leak the token itself into logs or tracebacks
        return f"TokenAuth(token=***, expires_in={self.expires_in!r}, issued_at={self.issued_at!r})"


class ApiError(BaseModel):
    """One entry of a registry error envelope. `detail` is optional and free-form."""
    code: str
    message: Optional[str] = None
    detail: Optional[Any] = None


class Errors(BaseModel):
    """Registry error envelope: {"errors": [{code, message, detail}]}."""
    errors: List[ApiError]


class Catalog(BaseModel):
    """Body of GET /v2/_catalog."""
    repositories: List[str]

    @field_validator("repositories", mode="before")
    @classmethod
    def null_is_empty(cls, v):
        return [] if v is None else v


class Tags(BaseModel):
    """Body of GET /v2/<repo>/tags/list."""
    name: str
    tags: List[str]

    @field_validator("tags", mode="before")
    @classmethod
    def null_is_empty(cls, v):
        return [] if v is None else v


# ---------------------------------------------------------------------------
# Manifest variants, discriminated by media type
# ---------------------------------------------------------------------------


class Platform(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    architecture: str
    os: str
    os_version: Optional[str] = Field(default=None, alias="os.version")
    variant: Optional[str] = None


class Descriptor(BaseModel):
    """Content descriptor pointing at a blob or child manifest."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    media_type: str = Field(..., alias="mediaType")
    digest: str
    size: int
    urls: Optional[List[str]] = None
    annotations: Optional[Dict[str, str]] = None
    platform: Optional[Platform] = None


class FsLayer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    blob_sum: str = Field(..., alias="blobSum")


class ManifestSchema1(BaseModel):
    """Docker image manifest, schema version 1 (signed or unsigned)."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: Literal[1] = Field(..., alias="schemaVersion")
    name: str
    tag: str
    architecture: Optional[str] = None
    fs_layers: List[FsLayer] = Field(default_factory=list, alias="fsLayers")
    history: List[Dict[str, Any]] = Field(default_factory=list)
    signatures: Optional[List[Dict[str, Any]]] = None


class ManifestSchema2(BaseModel):
    """Docker image manifest, schema version 2."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: Literal[2] = Field(..., alias="schemaVersion")
    media_type: Literal["application/vnd.docker.distribution.manifest.v2+json"] = Field(
        default=DOCKER_MANIFEST_V2, alias="mediaType"
    )
    config: Descriptor
    layers: List[Descriptor]


class OciImageManifest(BaseModel):
    """OCI image manifest."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: Literal[2] = Field(..., alias="schemaVersion")
    media_type: Literal["application/vnd.oci.image.manifest.v1+json"] = Field(
        default=OCI_IMAGE_MANIFEST, alias="mediaType"
    )
    artifact_type: Optional[str] = Field(default=None, alias="artifactType")
    config: Descriptor
    layers: List[Descriptor]
    subject: Optional[Descriptor] = None
    annotations: Optional[Dict[str, str]] = None


class ImageIndex(BaseModel):
    """OCI image index or Docker manifest list."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: Literal[2] = Field(..., alias="schemaVersion")
    media_type: Literal[
        "application/vnd.oci.image.index.v1+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
    ] = Field(default=OCI_IMAGE_INDEX, alias="mediaType")
    manifests: List[Descriptor]
    annotations: Optional[Dict[str, str]] = None


ManifestContent = Union[ManifestSchema1, ManifestSchema2, OciImageManifest, ImageIndex]

MANIFEST_MODELS: Dict[str, type] = {
    DOCKER_MANIFEST_V1: ManifestSchema1,
    DOCKER_MANIFEST_V1_SIGNED: ManifestSchema1,
    DOCKER_MANIFEST_V2: ManifestSchema2,
    DOCKER_MANIFEST_LIST: ImageIndex,
    OCI_IMAGE_MANIFEST: OciImageManifest,
    OCI_IMAGE_INDEX: ImageIndex,
}


# ---------------------------------------------------------------------------
# Client-side values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Digest:
    """
    Content digest: algorithm:hex.

    Two digests are equal iff the algorithms match and the hex strings match
    case-insensitively.
    """
    algorithm: str
    hex: str

    @classmethod
    def parse(cls, value: str) -> Digest:
        """
        Parse an algorithm:hex string.

        Raises:
            InvalidDigest: If the string is malformed or the algorithm unsupported
        """
        if not isinstance(value, str) or ":" not in value:
            raise InvalidDigest(f"Invalid digest format: {value!r}")
        algorithm, hex_part = value.split(":", 1)
        expected_len = SUPPORTED_DIGEST_ALGORITHMS.get(algorithm)
        if expected_len is None:
            raise InvalidDigest(f"Unsupported digest algorithm: {algorithm!r}")
        if len(hex_part) != expected_len or not _HEX_RE.match(hex_part):
            raise InvalidDigest(f"Invalid {algorithm} digest: {value!r}")
        return cls(algorithm=algorithm, hex=hex_part)

    @classmethod
    def compute(cls, data: bytes, algorithm: str = "sha256") -> Digest:
        """Digest of `data` using `algorithm`."""
        h = cls.new_hasher(algorithm)
        h.update(data)
        return cls(algorithm=algorithm, hex=h.hexdigest())

    @staticmethod
    def new_hasher(algorithm: str = "sha256"):
        if algorithm not in SUPPORTED_DIGEST_ALGORITHMS:
            raise InvalidDigest(f"Unsupported digest algorithm: {algorithm!r}")
        return hashlib.new(algorithm)

    def hasher(self):
        """Fresh hash object for this digest's algorithm."""
        return self.new_hasher(self.algorithm)

    @staticmethod
    def looks_like_digest(reference: str) -> bool:
        """True if a manifest reference is a digest rather than a tag."""
        return ":" in reference

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Digest):
            return NotImplemented
        return self.algorithm == other.algorithm and self.hex.lower() == other.hex.lower()

    def __hash__(self) -> int:
        return hash((self.algorithm, self.hex.lower()))

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hex}"


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a paginated listing. `next` is None on the last page."""
    items: List[T]
    next: Optional[str] = None

    @property
    def is_last(self) -> bool:
        return self.next is None


@dataclass(frozen=True)
class BlobUploadSession:
    """
    In-progress resumable upload.

    `range_sent` is the number of bytes the server has confirmed; it never
    decreases. Each chunk yields a new session value rather than mutating
    this one, so a failed chunk leaves the caller's session untouched.
    """
    repo: str
    id: str
    location: str
    range_sent: int = 0


@dataclass(frozen=True)
class Manifest:
    """
    Verified manifest envelope.

    `digest` is computed from `raw`, never copied from a response header.
    """
    schema_version: int
    media_type: str
    digest: Digest
    raw: bytes = field(repr=False)
    content: ManifestContent = field(repr=False)


__all__ = [
    "SUPPORTED_DIGEST_ALGORITHMS",
    "TokenAuth",
    "ApiError",
    "Errors",
    "Catalog",
    "Tags",
    "Platform",
    "Descriptor",
    "FsLayer",
    "ManifestSchema1",
    "ManifestSchema2",
    "OciImageManifest",
    "ImageIndex",
    "ManifestContent",
    "MANIFEST_MODELS",
    "Digest",
    "Page",
    "BlobUploadSession",
    "Manifest",
]
