"""
Blob transfer engine.

Downloads are streamed: the body is never buffered whole, and the caller
(or verify_blob) hashes it incrementally. Uploads run as a resumable
session: POST to open, PATCH per chunk, PUT to finalize. The session
offset only ever moves to what the server confirms in its Range header;
an upload is never restarted from byte zero.
"""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import AsyncIterable, AsyncIterator, Iterable, Optional, Union

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import (
    ChunkUploadFailed,
    DigestMismatch,
    InvalidDigest,
    TransportError,
    UnexpectedStatus,
    UploadFinalizeFailed,
    UploadInitFailed,
)
from ..media_types import CONTENT_DIGEST_HEADER, OCTET_STREAM, UPLOAD_UUID_HEADER
from ..models import BlobUploadSession, Digest
from .error_mapper import ensure_status, ensure_stream_status, parse_error_envelope
from .session import RegistrySession

logger = logging.getLogger(__name__)

__all__ = ["BlobTransfer", "verify_blob", "parse_range"]

DigestLike = Union[str, Digest]
ChunkSource = Union[Iterable[bytes], AsyncIterable[bytes]]

# "0-1023", "bytes=0-1023"; "0--1" is what some registries send for an empty upload
_RANGE_RE = re.compile(r"^\s*(?:bytes=)?(\d+)-(-?\d+)\s*$")


def _as_digest(digest: DigestLike) -> Digest:
    return digest if isinstance(digest, Digest) else Digest.parse(digest)


def parse_range(header: Optional[str]) -> Optional[int]:
    """
    Number of bytes a Range response header confirms.

    >>> parse_range("0-1023")
    1024
    >>> parse_range("0--1")
    0
    >>> parse_range(None) is None
    True
    """
    if not header:
        return None
    match = _RANGE_RE.match(header)
    if not match:
        return None
    return max(int(match.group(2)) + 1, 0)


async def verify_blob(stream: AsyncIterable[bytes], digest: DigestLike) -> AsyncIterator[bytes]:
    """
    Pass chunks through while hashing them.

    Raises:
        DigestMismatch: At end of stream, if the content does not hash to `digest`
    """
    expected = _as_digest(digest)
    hasher = expected.hasher()
    async for chunk in stream:
        hasher.update(chunk)
        yield chunk
    actual = Digest(expected.algorithm, hasher.hexdigest())
    if actual != expected:
        raise DigestMismatch(
            f"Blob digest mismatch: expected {expected}, got {actual}",
            expected=str(expected), actual=str(actual),
        )


async def _iter_chunks(chunks: ChunkSource) -> AsyncIterator[bytes]:
    if hasattr(chunks, "__aiter__"):
        async for chunk in chunks:
            yield chunk
    else:
        for chunk in chunks:
            yield chunk


class BlobTransfer:
    """
    Blob download and resumable upload for one session.

    Args:
        session: Signed request pipeline
        chunk_retry: How many times push() may resume a failed chunk
        retry_wait: tenacity wait strategy between resumptions
    """

    def __init__(self, session: RegistrySession, chunk_retry: int = 0, retry_wait=None):
        self._session = session
        self._chunk_retry = chunk_retry
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

    def _blob_url(self, repo: str, digest: Digest) -> str:
        return self._session.api_url(f"/v2/{repo}/blobs/{digest}")

    # -- download ---------------------------------------------------------

    async def download(self, repo: str, digest: DigestLike,
                       chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        """
        Stream a blob's bytes.

        Closing the iterator early releases the connection.

        Raises:
            RegistryApiError / UnexpectedStatus: Non-200 response
            TransportError: Network/TLS failure (also mid-stream)
        """
        url = self._blob_url(repo, _as_digest(digest))
        async with self._session.stream("GET", url) as response:
            await ensure_stream_status(response, 200)
            async for chunk in response.aiter_bytes(chunk_size):
                yield chunk

    async def exists(self, repo: str, digest: DigestLike) -> bool:
        url = self._blob_url(repo, _as_digest(digest))
        response = await self._session.request("HEAD", url)
        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False
        raise UnexpectedStatus(response.status_code, f"HEAD {url} returned {response.status_code}")

    # -- upload -----------------------------------------------------------

    async def start_upload(self, repo: str) -> BlobUploadSession:
        """
        Open an upload session.

        Raises:
            UploadInitFailed: Status other than 202, or missing Location /
                Docker-Upload-UUID
        """
        url = self._session.api_url(f"/v2/{repo}/blobs/uploads/")
        response = await self._session.request("POST", url, content=b"")
        if response.status_code != 202:
            raise UploadInitFailed(
                f"Upload init for {repo} returned HTTP {response.status_code}",
                status=response.status_code,
                envelope=parse_error_envelope(response.content),
            )

        location = response.headers.get("Location")
        upload_id = response.headers.get(UPLOAD_UUID_HEADER)
        if not location or not upload_id:
            raise UploadInitFailed(
                f"Upload init for {repo} is missing "
                f"{'Location' if not location else UPLOAD_UUID_HEADER} header",
                status=response.status_code,
            )

        session = BlobUploadSession(
            repo=repo,
            id=upload_id,
            location=self._session.resolve_url(location),
            range_sent=0,
        )
        logger.debug(f"Opened upload {session.id} for {repo}")
        return session

    async def upload_chunk(self, upload: BlobUploadSession, data: bytes) -> BlobUploadSession:
        """
        PATCH one chunk at the session's confirmed offset.

        Returns:
            A new session value advanced to the server-confirmed offset,
            which may be short of what was sent (partial accept)

        Raises:
            ChunkUploadFailed: Non-2xx response or an inconsistent Range;
                the passed-in session stays valid for a retry
            TransportError: Network/TLS failure
        """
        if not data:
            raise ValueError("chunk must not be empty")

        start = upload.range_sent
        sent_to = start + len(data)
        headers = {
            "Content-Range": f"{start}-{sent_to - 1}",
            "Content-Type": OCTET_STREAM,
        }
        response = await self._session.request("PATCH", upload.location, content=data, headers=headers)
        if not response.is_success:
            raise ChunkUploadFailed(
                f"Chunk {start}-{sent_to - 1} of upload {upload.id} returned HTTP {response.status_code}",
                status=response.status_code,
                envelope=parse_error_envelope(response.content),
            )

        confirmed = parse_range(response.headers.get("Range"))
        if confirmed is None:
            confirmed = sent_to
        if confirmed < start or confirmed > sent_to:
            raise ChunkUploadFailed(
                f"Upload {upload.id}: server confirmed {confirmed} bytes, "
                f"expected between {start} and {sent_to}",
                status=response.status_code,
            )

        location = response.headers.get("Location")
        if confirmed < sent_to:
            logger.debug(f"Upload {upload.id}: partial accept {confirmed}/{sent_to}")
        return replace(
            upload,
            location=self._session.resolve_url(location) if location else upload.location,
            range_sent=confirmed,
        )

    async def upload_status(self, upload: BlobUploadSession) -> BlobUploadSession:
        """Session at the offset the server currently holds (GET <location>)."""
        response = await self._session.request("GET", upload.location)
        ensure_status(response, 200, 204)

        confirmed = parse_range(response.headers.get("Range"))
        location = response.headers.get("Location")
        return replace(
            upload,
            location=self._session.resolve_url(location) if location else upload.location,
            range_sent=confirmed if confirmed is not None else upload.range_sent,
        )

    async def finalize(self, upload: BlobUploadSession, digest: DigestLike,
                       data: Optional[bytes] = None) -> None:
        """
        Close the session with `PUT <location>?digest=<digest>`.

        Args:
            upload: Session whose chunks are all confirmed
            digest: Digest of the complete blob
            data: Optional final chunk sent with the PUT

        Raises:
            UploadFinalizeFailed: Status other than 201
            DigestMismatch: Registry reports a different Docker-Content-Digest
        """
        expected = _as_digest(digest)
        headers = {"Content-Type": OCTET_STREAM} if data else None
        response = await self._session.request(
            "PUT",
            upload.location,
            params={"digest": str(expected)},
            content=data or b"",
            headers=headers,
        )
        if response.status_code != 201:
            raise UploadFinalizeFailed(
                f"Finalize of upload {upload.id} returned HTTP {response.status_code}",
                status=response.status_code,
                envelope=parse_error_envelope(response.content),
            )

        server_value = response.headers.get(CONTENT_DIGEST_HEADER)
        if server_value:
            try:
                stored = Digest.parse(server_value)
            except InvalidDigest as e:
                raise DigestMismatch(
                    f"Registry stored unparseable digest {server_value!r} for upload {upload.id}",
                    expected=str(expected), actual=server_value,
                ) from e
            if stored != expected:
                raise DigestMismatch(
                    f"Registry stored {server_value} for upload {upload.id}, expected {expected}",
                    expected=str(expected), actual=server_value,
                )
        logger.debug(f"Finalized upload {upload.id} as {expected}")

    async def cancel(self, upload: BlobUploadSession) -> None:
        """Abandon a session server-side (DELETE <location>). Unknown sessions are ignored."""
        response = await self._session.request("DELETE", upload.location)
        if response.status_code == 404:
            return
        ensure_status(response, 200, 202, 204)

    # -- whole-blob push --------------------------------------------------

    async def _send_remaining(self, upload: BlobUploadSession, chunk: bytes,
                              base: int) -> BlobUploadSession:
        """Send what is left of `chunk` (which starts at offset `base`)."""
        current = upload
        end = base + len(chunk)
        while current.range_sent < end:
            before = current.range_sent
            current = await self.upload_chunk(current, chunk[before - base:])
            if current.range_sent == before:
                raise ChunkUploadFailed(f"Upload {upload.id}: registry accepted no bytes at offset {before}")
        return current

    async def _send_chunk(self, upload: BlobUploadSession, chunk: bytes) -> BlobUploadSession:
        base = upload.range_sent
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._chunk_retry + 1),
            wait=self._retry_wait,
            retry=retry_if_exception_type((ChunkUploadFailed, TransportError)),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    # resume from whatever the server holds, never from zero
                    upload = await self.upload_status(upload)
                    logger.debug(f"Resuming upload {upload.id} at offset {upload.range_sent}")
                    if not base <= upload.range_sent <= base + len(chunk):
                        raise ChunkUploadFailed(
                            f"Upload {upload.id}: server offset {upload.range_sent} is outside "
                            f"the chunk being resent ({base}-{base + len(chunk)})"
                        )
                upload = await self._send_remaining(upload, chunk, base)
        return upload

    async def push(self, repo: str, chunks: ChunkSource, digest: DigestLike) -> Digest:
        """
        Upload a whole blob: open, PATCH every chunk, finalize.

        Content is hashed while it is sent; a mismatch with `digest` is
        raised before the session is finalized. On failure the session is
        left open server-side.
        """
        expected = _as_digest(digest)
        hasher = expected.hasher()
        upload = await self.start_upload(repo)

        async for chunk in _iter_chunks(chunks):
            if not chunk:
                continue
            hasher.update(chunk)
            upload = await self._send_chunk(upload, chunk)

        actual = Digest(expected.algorithm, hasher.hexdigest())
        if actual != expected:
            raise DigestMismatch(
                f"Pushed content hashes to {actual}, expected {expected}",
                expected=str(expected), actual=str(actual),
            )

        await self.finalize(upload, expected)
        return expected
