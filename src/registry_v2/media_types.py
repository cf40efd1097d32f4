"""
Registry media types and protocol constants.

Single source of truth for manifest media types and v2 header names.
"""
from __future__ import annotations

# Docker manifest types
DOCKER_MANIFEST_V1 = "application/vnd.docker.distribution.manifest.v1+json"
DOCKER_MANIFEST_V1_SIGNED = "application/vnd.docker.distribution.manifest.v1+prettyjws"
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

# OCI manifest types
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"

# Accept header order, most preferred first
ACCEPTED_MANIFEST_TYPES = [
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V2,
    DOCKER_MANIFEST_V1_SIGNED,
    DOCKER_MANIFEST_V1,
]

OCTET_STREAM = "application/octet-stream"

# v2 headers
API_VERSION_HEADER = "Docker-Distribution-API-Version"
API_VERSION_VALUE = "registry/2.0"
CONTENT_DIGEST_HEADER = "Docker-Content-Digest"
UPLOAD_UUID_HEADER = "Docker-Upload-UUID"


__all__ = [
    "DOCKER_MANIFEST_V1",
    "DOCKER_MANIFEST_V1_SIGNED",
    "DOCKER_MANIFEST_V2",
    "DOCKER_MANIFEST_LIST",
    "OCI_IMAGE_MANIFEST",
    "OCI_IMAGE_INDEX",
    "ACCEPTED_MANIFEST_TYPES",
    "OCTET_STREAM",
    "API_VERSION_HEADER",
    "API_VERSION_VALUE",
    "CONTENT_DIGEST_HEADER",
    "UPLOAD_UUID_HEADER",
]
