"""
WWW-Authenticate challenge parser.

Parses `Bearer realm="...",service="...",scope="..."[,scope="..."]*` into an
AuthChallenge. Commas inside quoted values (e.g. `repository:foo:pull,push`)
do not split items.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import httpx

from ..errors import AuthChallengeMalformed

__all__ = ["AuthChallenge", "parse_challenge"]

_SCHEME = "bearer"


@dataclass(frozen=True)
class AuthChallenge:
    """Parsed Bearer challenge. Transient; lives only during negotiation."""
    realm: str
    service: Optional[str] = None
    scope: Tuple[str, ...] = field(default_factory=tuple)
    error: Optional[str] = None


def _split_params(params: str) -> List[str]:
    """Split on commas outside double quotes."""
    items: List[str] = []
    buf: List[str] = []
    in_quotes = False
    escaped = False
    for ch in params:
        if escaped:
            buf.append(ch)
            escaped = False
        elif ch == "\\" and in_quotes:
            buf.append(ch)
            escaped = True
        elif ch == '"':
            in_quotes = not in_quotes
            buf.append(ch)
        elif ch == "," and not in_quotes:
            items.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
    if in_quotes:
        raise AuthChallengeMalformed(f"Unterminated quoted value in challenge: {params!r}")
    items.append("".join(buf))
    return [item.strip() for item in items if item.strip()]


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        value = value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


def parse_challenge(header: str) -> AuthChallenge:
    """
    Parse a WWW-Authenticate header value.

    Unknown keys are skipped; items without `=` are skipped. Scope values
    keep their order of appearance; a space-separated scope value yields
    one scope per entry.

    Args:
        header: Raw header value

    Returns:
        Parsed AuthChallenge

    Raises:
        AuthChallengeMalformed: If the scheme is not Bearer, quoting is broken,
            or the realm is missing or not an absolute http(s) URL
    """
    if header is None:
        raise AuthChallengeMalformed("Missing WWW-Authenticate header")

    text = header.strip()
    scheme, _, params = text.partition(" ")
    if scheme.lower() != _SCHEME:
        raise AuthChallengeMalformed(f"Unsupported auth scheme: {scheme!r}")

    realm: Optional[str] = None
    service: Optional[str] = None
    error: Optional[str] = None
    scopes: List[str] = []

    for item in _split_params(params):
        key, sep, raw_value = item.partition("=")
        if not sep:
            continue
        key = key.strip().lower()
        value = _unquote(raw_value)
        if key == "realm":
            realm = value
        elif key == "service":
            service = value
        elif key == "scope":
            scopes.extend(value.split())
        elif key == "error":
            error = value

    if not realm:
        raise AuthChallengeMalformed(f"Challenge has no realm: {header!r}")

    try:
        realm_url = httpx.URL(realm)
    except httpx.InvalidURL as e:
        raise AuthChallengeMalformed(f"Invalid realm URL: {realm!r}") from e
    if realm_url.scheme not in ("http", "https") or not realm_url.host:
        raise AuthChallengeMalformed(f"Realm is not an absolute http(s) URL: {realm!r}")

    return AuthChallenge(realm=realm, service=service, scope=tuple(scopes), error=error)
