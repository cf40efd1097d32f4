"""
Catalog and tag listing readers built on the Paginator.
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import ValidationError

from ..errors import DecodeError
from ..models import Catalog, Tags
from .pagination import Paginator
from .session import RegistrySession

__all__ = ["parse_catalog_page", "parse_tags_page", "tags_parser", "catalog_reader", "tags_reader"]


def parse_catalog_page(body: bytes) -> List[str]:
    try:
        return Catalog.model_validate_json(body).repositories
    except ValidationError as e:
        raise DecodeError(f"Invalid catalog page: {e}") from e


def tags_parser(repo: str):
    def parse(body: bytes) -> List[str]:
        return parse_tags_page(body, repo)
    return parse


def parse_tags_page(body: bytes, repo: Optional[str] = None) -> List[str]:
    """
    Tag names from one tags/list page.

    The listing is bound to one repository; a page naming another
    repository is rejected. Names compare case-insensitively.
    """
    try:
        page = Tags.model_validate_json(body)
    except ValidationError as e:
        raise DecodeError(f"Invalid tags page: {e}") from e
    if repo is not None and page.name.lower() != repo.lower():
        raise DecodeError(f"Tags page for {page.name!r} while listing {repo!r}")
    return page.tags


def catalog_reader(session: RegistrySession, limit: Optional[int] = None) -> Paginator[str]:
    """Lazy repository-name listing from GET /v2/_catalog."""
    return Paginator(session, session.api_url("/v2/_catalog"), parse_catalog_page, limit=limit)


def tags_reader(session: RegistrySession, repo: str,
                limit: Optional[int] = None) -> Paginator[str]:
    """Lazy tag-name listing from GET /v2/<repo>/tags/list."""
    return Paginator(session, session.api_url(f"/v2/{repo}/tags/list"), tags_parser(repo), limit=limit)
