"""
Fake v2 registry for testing.

An in-memory registry (plus token server) exposed as an httpx transport
handler, so the real Client runs its full request pipeline against it.
This is a test double; not for production use.
"""
from __future__ import annotations

import base64
import hashlib
import json
import re
import uuid
from typing import Dict, List, Optional, Tuple

import httpx

REGISTRY_HOST = "registry.example.test"
AUTH_HOST = "auth.example.test"
REALM = f"https://{AUTH_HOST}/token"
SERVICE = "registry.example.test"

API_HEADERS = {"Docker-Distribution-API-Version": "registry/2.0"}

__all__ = ["FakeRegistry", "REGISTRY_HOST", "REALM", "SERVICE", "sha256_digest", "error_body"]


def sha256_digest(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def error_body(code: str, message: str, detail=None) -> bytes:
    entry = {"code": code, "message": message}
    if detail is not None:
        entry["detail"] = detail
    return json.dumps({"errors": [entry]}).encode()


class FakeRegistry:
    """
    In-memory registry speaking enough of the v2 API for client tests.

    Knobs:
        require_token: Resource endpoints answer 401 + challenge without a token
        credentials: (user, pass) the token server demands, None for anonymous
        token: Token string the token server issues
        accept_limit: Max bytes accepted per PATCH (partial accepts)
        fail_patches: Number of upcoming PATCHes answered with 500
        digest_override: {(repo, ref): header value} forced Docker-Content-Digest
    """

    def __init__(self, require_token: bool = False,
                 credentials: Optional[Tuple[str, str]] = None,
                 token: str = "fake-token-123"):
        self.require_token = require_token
        self.credentials = credentials
        self.token = token
        self.token_status = 200
        self.token_body: Optional[bytes] = None
        self.accept_limit: Optional[int] = None
        self.fail_patches = 0
        self.digest_override: Dict[Tuple[str, str], str] = {}

        self.repositories: List[str] = []
        self.tags: Dict[str, List[str]] = {}
        self.manifests: Dict[str, Dict[str, Tuple[bytes, str]]] = {}
        self.blobs: Dict[str, Dict[str, bytes]] = {}
        self.uploads: Dict[str, bytearray] = {}

        self.requests: List[httpx.Request] = []

    # -- seeding ----------------------------------------------------------

    def add_repo(self, repo: str, tags: Optional[List[str]] = None) -> None:
        if repo not in self.repositories:
            self.repositories.append(repo)
        self.tags.setdefault(repo, [])
        self.manifests.setdefault(repo, {})
        self.blobs.setdefault(repo, {})
        for tag in tags or []:
            self.tags[repo].append(tag)

    def add_manifest(self, repo: str, tag: str, payload: bytes, media_type: str) -> str:
        self.add_repo(repo)
        digest = sha256_digest(payload)
        self.manifests[repo][tag] = (payload, media_type)
        self.manifests[repo][digest] = (payload, media_type)
        if tag not in self.tags[repo]:
            self.tags[repo].append(tag)
        return digest

    def add_blob(self, repo: str, data: bytes) -> str:
        self.add_repo(repo)
        digest = sha256_digest(data)
        self.blobs[repo][digest] = data
        return digest

    # -- request log helpers ----------------------------------------------

    def requests_to(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def token_requests(self) -> List[httpx.Request]:
        return self.requests_to(AUTH_HOST)

    # -- transport --------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == AUTH_HOST:
            return self._token_endpoint(request)
        if request.url.host != REGISTRY_HOST:
            return httpx.Response(502)

        if self.require_token and not self._has_token(request):
            return httpx.Response(
                401,
                headers={
                    **API_HEADERS,
                    "WWW-Authenticate": f'Bearer realm="{REALM}",service="{SERVICE}"',
                },
                content=error_body("UNAUTHORIZED", "authentication required"),
            )

        path = request.url.path
        if path == "/v2/":
            return httpx.Response(200, headers=API_HEADERS, json={})
        if path == "/v2/_catalog":
            return self._paginate(request, "/v2/_catalog", "repositories", self.repositories)

        match = re.match(r"^/v2/(.+)/tags/list$", path)
        if match:
            repo = match.group(1)
            if repo not in self.tags:
                return self._error(404, "NAME_UNKNOWN", "repository name not known to registry")
            return self._paginate(request, path, "tags", self.tags[repo], name=repo)

        match = re.match(r"^/v2/(.+)/manifests/([^/]+)$", path)
        if match:
            return self._manifest(request, match.group(1), match.group(2))

        match = re.match(r"^/v2/(.+)/blobs/uploads/([^/]*)$", path)
        if match:
            return self._upload(request, match.group(1), match.group(2))

        match = re.match(r"^/v2/(.+)/blobs/([^/]+)$", path)
        if match:
            return self._blob(request, match.group(1), match.group(2))

        return self._error(404, "NOT_FOUND", "unknown endpoint")

    # -- endpoints --------------------------------------------------------

    def _has_token(self, request: httpx.Request) -> bool:
        return request.headers.get("Authorization") == f"Bearer {self.token}"

    def _token_endpoint(self, request: httpx.Request) -> httpx.Response:
        if self.credentials is not None:
            expected = base64.b64encode(":".join(self.credentials).encode()).decode()
            if request.headers.get("Authorization") != f"Basic {expected}":
                return httpx.Response(401, content=error_body("UNAUTHORIZED", "bad credentials"))
        if self.token_status != 200:
            return httpx.Response(self.token_status)
        if self.token_body is not None:
            return httpx.Response(200, content=self.token_body)
        return httpx.Response(200, json={"token": self.token, "expires_in": 300,
                                         "issued_at": "2024-01-01T00:00:00Z"})

    def _error(self, status: int, code: str, message: str) -> httpx.Response:
        return httpx.Response(status, headers=API_HEADERS, content=error_body(code, message))

    def _paginate(self, request: httpx.Request, path: str, key: str,
                  items: List[str], name: Optional[str] = None) -> httpx.Response:
        ordered = sorted(items)
        last = request.url.params.get("last")
        if last is not None:
            ordered = [i for i in ordered if i > last]
        n = request.url.params.get("n")
        headers = dict(API_HEADERS)
        if n is not None:
            size = int(n)
            page, rest = ordered[:size], ordered[size:]
            if rest:
                headers["Link"] = f'<{path}?last={page[-1]}&n={size}>; rel="next"'
        else:
            page = ordered
        body = {key: page}
        if name is not None:
            body = {"name": name, key: page}
        return httpx.Response(200, headers=headers, json=body)

    def _manifest(self, request: httpx.Request, repo: str, ref: str) -> httpx.Response:
        if request.method == "PUT":
            media_type = request.headers.get("Content-Type", "")
            digest = self.add_manifest(repo, ref, request.content, media_type)
            header = self.digest_override.get((repo, ref), digest)
            return httpx.Response(201, headers={**API_HEADERS, "Docker-Content-Digest": header,
                                                "Location": f"/v2/{repo}/manifests/{digest}"})

        stored = self.manifests.get(repo, {}).get(ref)
        if stored is None:
            return self._error(404, "MANIFEST_UNKNOWN", "manifest unknown")
        payload, media_type = stored
        header = self.digest_override.get((repo, ref), sha256_digest(payload))
        headers = {**API_HEADERS, "Content-Type": media_type}
        if header:
            headers["Docker-Content-Digest"] = header
        if request.method == "HEAD":
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, headers=headers, content=payload)

    def _blob(self, request: httpx.Request, repo: str, digest: str) -> httpx.Response:
        data = self.blobs.get(repo, {}).get(digest)
        if data is None:
            if request.method == "HEAD":
                return httpx.Response(404, headers=API_HEADERS)
            return self._error(404, "BLOB_UNKNOWN", "blob unknown to registry")
        headers = {**API_HEADERS, "Docker-Content-Digest": digest,
                   "Content-Type": "application/octet-stream"}
        if request.method == "HEAD":
            return httpx.Response(200, headers={**headers, "Content-Length": str(len(data))})
        return httpx.Response(200, headers=headers, content=data)

    def _upload(self, request: httpx.Request, repo: str, upload_id: str) -> httpx.Response:
        if request.method == "POST" and not upload_id:
            self.add_repo(repo)
            new_id = str(uuid.uuid4())
            self.uploads[new_id] = bytearray()
            return httpx.Response(202, headers={
                **API_HEADERS,
                "Location": f"/v2/{repo}/blobs/uploads/{new_id}",
                "Docker-Upload-UUID": new_id,
                "Range": "0-0",
            })

        buf = self.uploads.get(upload_id)
        if buf is None:
            return self._error(404, "BLOB_UPLOAD_UNKNOWN", "blob upload unknown to registry")

        if request.method == "GET":
            return httpx.Response(204, headers=self._upload_headers(repo, upload_id))

        if request.method == "DELETE":
            del self.uploads[upload_id]
            return httpx.Response(204, headers=API_HEADERS)

        if request.method == "PATCH":
            if self.fail_patches > 0:
                self.fail_patches -= 1
                return httpx.Response(500, headers=API_HEADERS)
            start = int(request.headers["Content-Range"].split("-")[0])
            if start != len(buf):
                return self._error(416, "BLOB_UPLOAD_INVALID", "range not satisfiable")
            data = request.content
            if self.accept_limit is not None:
                data = data[:self.accept_limit]
            buf.extend(data)
            return httpx.Response(202, headers=self._upload_headers(repo, upload_id))

        if request.method == "PUT":
            buf.extend(request.content)
            digest = request.url.params.get("digest")
            if digest != sha256_digest(bytes(buf)):
                return self._error(400, "DIGEST_INVALID", "provided digest did not match uploaded content")
            self.blobs.setdefault(repo, {})[digest] = bytes(buf)
            del self.uploads[upload_id]
            return httpx.Response(201, headers={
                **API_HEADERS,
                "Location": f"/v2/{repo}/blobs/{digest}",
                "Docker-Content-Digest": digest,
            })

        return httpx.Response(405, headers=API_HEADERS)

    def _upload_headers(self, repo: str, upload_id: str) -> Dict[str, str]:
        size = len(self.uploads[upload_id])
        return {
            **API_HEADERS,
            "Location": f"/v2/{repo}/blobs/uploads/{upload_id}?_state=s{size}",
            "Docker-Upload-UUID": upload_id,
            "Range": f"0-{size - 1}",
        }
