"""
Registry Client facade.

Composes the protocol components behind one object that signs every request
(User-Agent always, `Authorization: Bearer` once logged in). This is the
only entry point callers need.

Example:
    async with Client(Settings(registry_url="registry-1.docker.io")) as client:
        await client.login([scope_for("library/alpine")])
        manifest = await client.get_manifest("library/alpine", "latest")
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, Optional, Sequence, Union

import httpx

from .media_types import API_VERSION_HEADER, API_VERSION_VALUE
from .models import BlobUploadSession, Digest, Manifest, Page, TokenAuth
from .protocol.auth import AuthNegotiator, AuthState
from .protocol.blobs import BlobTransfer, ChunkSource
from .protocol.listing import catalog_reader, parse_catalog_page, tags_parser, tags_reader
from .protocol.manifests import ManifestResolver
from .protocol.pagination import Paginator
from .protocol.session import RegistrySession
from .protocol.transport import build_http_client
from .settings import Settings, create_settings_from_env

logger = logging.getLogger(__name__)

__all__ = ["Client", "create_client_from_settings"]

DigestLike = Union[str, Digest]


class Client:
    """
    Async client for one Docker/OCI v2 registry.

    The configuration is an immutable Settings snapshot; the Bearer token is
    the only mutable state. Normal requests only read it, so independent
    operations may run concurrently; login() must be serialized by the caller.

    Args:
        settings: Registry configuration
        transport: Optional httpx transport override (tests, custom proxies)
        ca_cert_pem: Optional in-memory PEM trust anchor
        retry_wait: Optional tenacity wait strategy for chunk resumption
    """

    def __init__(self, settings: Settings,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 ca_cert_pem: Optional[Union[str, bytes]] = None,
                 retry_wait=None):
        self.settings = settings
        self._http = build_http_client(settings, transport=transport, ca_cert_pem=ca_cert_pem)
        self._session = RegistrySession(self._http, settings.base_url, settings.effective_user_agent)
        self._auth = AuthNegotiator(self._session, settings.credentials)
        self._manifests = ManifestResolver(self._session)
        self._blobs = BlobTransfer(self._session, chunk_retry=settings.chunk_retry, retry_wait=retry_wait)

    # -- lifecycle --------------------------------------------------------

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # -- state ------------------------------------------------------------

    @property
    def base_url(self) -> str:
        return self._session.base_url

    @property
    def auth_state(self) -> AuthState:
        return self._auth.state

    @property
    def token(self) -> Optional[TokenAuth]:
        return self._session.token

    # -- base endpoint ----------------------------------------------------

    async def probe(self) -> bool:
        """
        True if the registry speaks the v2 API.

        A 200 or 401 on /v2/ carrying `Docker-Distribution-API-Version:
        registry/2.0` counts as supported.

        Raises:
            TransportError: Network/TLS failure
        """
        response = await self._session.request("GET", self._session.api_url("/v2/"))
        if response.status_code not in (200, 401):
            return False
        return response.headers.get(API_VERSION_HEADER) == API_VERSION_VALUE

    async def check_auth(self) -> bool:
        """True if a signed GET /v2/ succeeds with the current credentials (or none)."""
        response = await self._session.request("GET", self._session.api_url("/v2/"))
        return response.status_code == 200

    async def login(self, scopes: Sequence[str] = ()) -> None:
        """
        Negotiate a Bearer token for `scopes`; see AuthNegotiator.login.

        A registry that answers the anonymous probe with 200 needs no token
        and login() returns without a token exchange.
        """
        await self._auth.login(scopes)

    # -- listings ---------------------------------------------------------

    def catalog(self, limit: Optional[int] = None) -> Paginator[str]:
        """Lazy, forward-only repository listing (`async for repo in client.catalog()`)."""
        return catalog_reader(self._session, limit)

    def tags(self, repo: str, limit: Optional[int] = None) -> Paginator[str]:
        """Lazy, forward-only tag listing for one repository."""
        return tags_reader(self._session, repo, limit)

    async def get_catalog(self, limit: Optional[int] = None) -> Page[str]:
        """First catalog page; follow `page.next` with get_catalog_page()."""
        return await self.catalog(limit).next_page()

    async def get_catalog_page(self, url: str) -> Page[str]:
        """Catalog page at a `next` URL from a previous page."""
        return await Paginator(self._session, url, parse_catalog_page).next_page()

    async def get_tags(self, repo: str, limit: Optional[int] = None) -> Page[str]:
        """First tags page for `repo`."""
        return await self.tags(repo, limit).next_page()

    async def get_tags_page(self, repo: str, url: str) -> Page[str]:
        """Tags page at a `next` URL from a previous page."""
        return await Paginator(self._session, url, tags_parser(repo)).next_page()

    async def iter_catalog(self, limit: Optional[int] = None) -> AsyncIterator[str]:
        async for repo in self.catalog(limit):
            yield repo

    async def iter_tags(self, repo: str, limit: Optional[int] = None) -> AsyncIterator[str]:
        async for tag in self.tags(repo, limit):
            yield tag

    # -- manifests --------------------------------------------------------

    async def get_manifest(self, repo: str, reference: str) -> Manifest:
        """Fetch and verify a manifest by tag or digest; see ManifestResolver.get."""
        return await self._manifests.get(repo, reference)

    async def has_manifest(self, repo: str, reference: str) -> Optional[str]:
        """Docker-Content-Digest of a manifest, or None if it does not exist."""
        return await self._manifests.head(repo, reference)

    async def put_manifest(self, repo: str, reference: str, payload: bytes, media_type: str) -> Digest:
        return await self._manifests.put(repo, reference, payload, media_type)

    # -- blobs ------------------------------------------------------------

    def get_blob(self, repo: str, digest: DigestLike,
                 chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        """
        Lazy blob byte stream. Nothing is requested until iteration starts.

        The stream is not verified; wrap it in verify_blob() to check the digest.
        """
        return self._blobs.download(repo, digest, chunk_size)

    async def has_blob(self, repo: str, digest: DigestLike) -> bool:
        return await self._blobs.exists(repo, digest)

    async def start_blob_upload(self, repo: str) -> BlobUploadSession:
        return await self._blobs.start_upload(repo)

    async def upload_chunk(self, session: BlobUploadSession, data: bytes) -> BlobUploadSession:
        return await self._blobs.upload_chunk(session, data)

    async def get_upload_status(self, session: BlobUploadSession) -> BlobUploadSession:
        return await self._blobs.upload_status(session)

    async def finalize_upload(self, session: BlobUploadSession, digest: DigestLike,
                              data: Optional[bytes] = None) -> None:
        await self._blobs.finalize(session, digest, data)

    async def cancel_upload(self, session: BlobUploadSession) -> None:
        await self._blobs.cancel(session)

    async def push_blob(self, repo: str, chunks: ChunkSource, digest: DigestLike) -> Digest:
        """Upload a whole blob chunk by chunk; see BlobTransfer.push."""
        return await self._blobs.push(repo, chunks, digest)


def create_client_from_settings(settings: Optional[Settings] = None, **kwargs) -> Client:
    """
    Create a Client from settings, or from the environment when none are given.

    Raises:
        ValueError: If configuration is invalid or required values missing
    """
    settings = settings or create_settings_from_env()
    logger.debug(f"Creating registry client for {settings.base_url}")
    return Client(settings, **kwargs)
