"""
Link-header pagination.

A Paginator walks `Link: <url>; rel="next"` headers one page per request.
It is forward-only: it cannot be rewound mid-stream, but a fresh Paginator
restarts from the first page. A page that fails (transport, status or
parse) does not advance the cursor, so the same page can be retried.
"""
from __future__ import annotations

import logging
import re
from typing import AsyncIterator, Callable, Generic, List, Optional, TypeVar

from ..models import Page
from .error_mapper import ensure_status
from .session import RegistrySession

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = ["Paginator", "parse_next_link"]

_LINK_RE = re.compile(r"<([^>]*)>([^<]*)")
_REL_RE = re.compile(r"""rel\s*=\s*(?:"([^"]*)"|([^\s;,]+))""", re.IGNORECASE)


def parse_next_link(header: Optional[str]) -> Optional[str]:
    """
    Extract the rel="next" target from a Link header.

    >>> parse_next_link('</v2/_catalog?last=b&n=2>; rel="next"')
    '/v2/_catalog?last=b&n=2'
    >>> parse_next_link(None) is None
    True
    """
    if not header:
        return None
    for match in _LINK_RE.finditer(header):
        target, params = match.group(1), match.group(2)
        for rel in _REL_RE.finditer(params):
            rels = (rel.group(1) or rel.group(2) or "").lower().split()
            if "next" in rels:
                return target.strip()
    return None


class Paginator(Generic[T]):
    """
    Lazy, forward-only cursor over a paginated JSON listing.

    Args:
        session: Signed request pipeline (each page reuses the current token)
        first_url: Absolute URL of the first page
        parse: Turns one page body into its items; raises DecodeError
        limit: Sent as `n=<limit>` on the first request only; later pages
            follow the server's next link verbatim
    """

    def __init__(self, session: RegistrySession, first_url: str,
                 parse: Callable[[bytes], List[T]], limit: Optional[int] = None):
        if limit is not None and limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        self._session = session
        self._parse = parse
        self._next_url: Optional[str] = first_url
        self._params = {"n": str(limit)} if limit is not None else None
        self.pages_fetched = 0

    @property
    def exhausted(self) -> bool:
        return self._next_url is None

    @property
    def next_url(self) -> Optional[str]:
        return self._next_url

    async def next_page(self) -> Page[T]:
        """
        Fetch the page at the cursor and advance past it.

        Raises:
            RuntimeError: If the previous page had no next link
            RegistryApiError / UnexpectedStatus: On a non-200 page
            DecodeError: If the page body does not parse
            TransportError: On network/TLS failure
        """
        if self._next_url is None:
            raise RuntimeError("pagination already exhausted")

        url = self._next_url
        response = await self._session.request("GET", url, params=self._params)
        ensure_status(response, 200)
        items = self._parse(response.content)

        link = parse_next_link(response.headers.get("Link"))
        next_url = self._session.resolve_url(link) if link else None

        # advance only once the page is fully accepted
        self._params = None
        self._next_url = next_url
        self.pages_fetched += 1
        logger.debug(f"Page {self.pages_fetched} from {url}: {len(items)} items, next={next_url}")
        return Page(items=items, next=next_url)

    async def pages(self) -> AsyncIterator[Page[T]]:
        while not self.exhausted:
            yield await self.next_page()

    async def _items(self) -> AsyncIterator[T]:
        async for page in self.pages():
            for item in page.items:
                yield item

    def __aiter__(self) -> AsyncIterator[T]:
        return self._items()
