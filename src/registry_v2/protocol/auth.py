"""
Bearer token negotiation.

Implements the two-request handshake: an anonymous `GET /v2/` probe whose
401 challenge names the token endpoint, then a token exchange against that
endpoint with optional Basic credentials.

States: ANONYMOUS -> CHALLENGED -> AUTHENTICATED. A new login() always
restarts from ANONYMOUS. A later 401 on a resource is never answered with
an automatic re-login; callers invoke login() again.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError

from ..errors import (
    AuthChallengeMalformed,
    AuthProbeFailed,
    TokenRequestFailed,
    TokenResponseInvalid,
)
from ..models import TokenAuth
from .challenge import AuthChallenge, parse_challenge
from .session import RegistrySession

logger = logging.getLogger(__name__)

__all__ = ["AuthState", "AuthNegotiator", "scope_for", "token_request_params"]


class AuthState(str, Enum):
    ANONYMOUS = "anonymous"
    CHALLENGED = "challenged"
    AUTHENTICATED = "authenticated"


def scope_for(repo: str, *actions: str) -> str:
    """
    Token scope for a repository.

    >>> scope_for("library/alpine")
    'repository:library/alpine:pull'
    >>> scope_for("me/app", "pull", "push")
    'repository:me/app:pull,push'
    """
    return f"repository:{repo}:{','.join(actions or ('pull',))}"


def token_request_params(challenge: AuthChallenge,
                         scopes: Sequence[str]) -> List[Tuple[str, str]]:
    """
    Query parameters for the token request.

    `service` first (if the challenge has one), then one `scope` pair per
    requested scope in the given order. Repeated keys, never merged.
    """
    params: List[Tuple[str, str]] = []
    if challenge.service:
        params.append(("service", challenge.service))
    for scope in scopes:
        params.append(("scope", scope))
    return params


def _find_bearer_challenge(response: httpx.Response) -> Optional[str]:
    values = response.headers.get_list("WWW-Authenticate")
    for value in values:
        if value.strip().lower().startswith("bearer"):
            return value
    return values[0] if values else None


class AuthNegotiator:
    """
    Owns the login handshake and is the only writer of the session token.

    Concurrent login() calls on one negotiator are not supported; callers
    serialize re-login.
    """

    def __init__(self, session: RegistrySession,
                 credentials: Optional[Tuple[str, str]] = None):
        self._session = session
        self._credentials = credentials
        self.state = AuthState.AUTHENTICATED if session.token else AuthState.ANONYMOUS
        self.challenge: Optional[AuthChallenge] = None

    async def login(self, scopes: Sequence[str] = ()) -> None:
        """
        Run the probe + token exchange.

        Args:
            scopes: Requested scopes, sent in this order. When empty, the
                scopes named by the challenge itself are requested.

        Raises:
            AuthProbeFailed: Probe status not 200/401, 401 without challenge,
                or malformed challenge
            TokenRequestFailed: Token endpoint answered non-200
            TokenResponseInvalid: Token body not JSON or without `token`
            TransportError: Network/TLS failure
        """
        self.state = AuthState.ANONYMOUS
        self.challenge = None

        probe_url = self._session.api_url("/v2/")
        response = await self._session.request("GET", probe_url, authenticated=False)

        if response.status_code == 200:
            logger.debug(f"{probe_url} requires no authentication")
            self._session.set_token(None)
            return

        if response.status_code != 401:
            raise AuthProbeFailed(
                f"Unexpected probe status {response.status_code} from {probe_url}",
                status=response.status_code,
            )

        header = _find_bearer_challenge(response)
        if not header:
            raise AuthProbeFailed(f"401 without WWW-Authenticate from {probe_url}", status=401)

        try:
            challenge = parse_challenge(header)
        except AuthChallengeMalformed as e:
            raise AuthProbeFailed(f"Malformed challenge from {probe_url}: {e}", status=401) from e

        self.challenge = challenge
        self.state = AuthState.CHALLENGED
        logger.debug(f"Challenged: realm={challenge.realm} service={challenge.service}")

        token = await self._exchange(challenge, list(scopes) or list(challenge.scope))
        self._session.set_token(token)
        self.state = AuthState.AUTHENTICATED
        logger.debug(f"Authenticated against {challenge.realm} (expires_in={token.expires_in})")

    async def _exchange(self, challenge: AuthChallenge, scopes: Sequence[str]) -> TokenAuth:
        auth = httpx.BasicAuth(*self._credentials) if self._credentials else None
        response = await self._session.request(
            "GET",
            challenge.realm,
            params=token_request_params(challenge, scopes),
            authenticated=False,
            auth=auth,
        )
        if response.status_code != 200:
            raise TokenRequestFailed(response.status_code)

        try:
            return TokenAuth.model_validate_json(response.content)
        except ValidationError as e:
            raise TokenResponseInvalid(f"Invalid token response from {challenge.realm}") from e
