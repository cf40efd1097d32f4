"""
registry-v2 CLI

Thin Typer front end over the Client facade. Connection settings come from
REGV2_* environment variables (see settings.create_settings_from_env):
- probe: Check v2 support and anonymous reachability
- catalog: List repositories
- tags: List tags of a repository
- manifest: Fetch and verify a manifest
- pull-blob: Download a blob with digest verification
- push-blob: Upload a file as a blob through a chunked session
"""
from __future__ import annotations

import asyncio
import hashlib
import os
from pathlib import Path
from typing import AsyncIterator, Iterator, List, Optional

import typer

from .client import create_client_from_settings
from .models import Digest
from .operations import run_and_exit
from .operations.printers import print_manifest, print_names, print_probe, print_transfer
from .protocol.auth import scope_for
from .protocol.blobs import verify_blob

app = typer.Typer(name="regv2", help="Docker/OCI Registry v2 client")

CATALOG_SCOPE = "registry:catalog:*"
DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024


def _read_chunks(path: Path, chunk_size: int) -> Iterator[bytes]:
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk


def _file_digest(path: Path) -> Digest:
    h = hashlib.sha256()
    for chunk in _read_chunks(path, DEFAULT_CHUNK_SIZE):
        h.update(chunk)
    return Digest("sha256", h.hexdigest())


async def _stream_chunks(path: Path, chunk_size: int) -> AsyncIterator[bytes]:
    """File chunks read off the event loop."""
    chunks = _read_chunks(path, chunk_size)
    try:
        while True:
            chunk = await asyncio.to_thread(next, chunks, None)
            if chunk is None:
                break
            yield chunk
    finally:
        chunks.close()


@app.command()
def probe() -> None:
    """Check that the registry speaks the v2 API."""

    async def _probe() -> bool:
        async with create_client_from_settings() as client:
            supported = await client.probe()
            anonymous_ok = await client.check_auth()
            print_probe(client.base_url, supported, anonymous_ok)
            return supported

    if not run_and_exit(lambda: asyncio.run(_probe())):
        raise typer.Exit(code=1)


@app.command()
def catalog(
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Page size hint"),
    scope: List[str] = typer.Option([], "--scope", help="Extra token scopes"),
) -> None:
    """List repositories."""

    async def _catalog() -> None:
        async with create_client_from_settings() as client:
            await client.login([CATALOG_SCOPE, *scope])
            print_names([repo async for repo in client.iter_catalog(limit)])

    run_and_exit(lambda: asyncio.run(_catalog()))


@app.command()
def tags(
    repo: str = typer.Argument(..., help="Repository name, e.g. library/alpine"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Page size hint"),
) -> None:
    """List tags of a repository."""

    async def _tags() -> None:
        async with create_client_from_settings() as client:
            await client.login([scope_for(repo, "pull")])
            print_names([tag async for tag in client.iter_tags(repo, limit)])

    run_and_exit(lambda: asyncio.run(_tags()))


@app.command()
def manifest(
    repo: str = typer.Argument(..., help="Repository name"),
    reference: str = typer.Argument(..., help="Tag or digest"),
    raw: bool = typer.Option(False, "--raw", help="Print the raw manifest body"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output"),
) -> None:
    """Fetch and verify a manifest."""

    async def _manifest() -> None:
        async with create_client_from_settings() as client:
            await client.login([scope_for(repo, "pull")])
            result = await client.get_manifest(repo, reference)
            if raw:
                typer.echo(result.raw.decode("utf-8"))
            else:
                print_manifest(result, verbose=verbose)

    run_and_exit(lambda: asyncio.run(_manifest()))


@app.command("pull-blob")
def pull_blob(
    repo: str = typer.Argument(..., help="Repository name"),
    digest: str = typer.Argument(..., help="Blob digest (algorithm:hex)"),
    out: Path = typer.Argument(..., help="Output file"),
) -> None:
    """Download a blob, verifying its digest while streaming."""

    async def _pull() -> None:
        async with create_client_from_settings() as client:
            await client.login([scope_for(repo, "pull")])
            tmp = out.with_name(f".{out.name}.part")
            size = 0
            try:
                with open(tmp, "wb") as f:
                    async for chunk in verify_blob(client.get_blob(repo, digest), digest):
                        await asyncio.to_thread(f.write, chunk)
                        size += len(chunk)
                os.replace(tmp, out)
            finally:
                if tmp.exists():
                    tmp.unlink()
            print_transfer("Pulled", digest, size, str(out))

    run_and_exit(lambda: asyncio.run(_pull()))


@app.command("push-blob")
def push_blob(
    repo: str = typer.Argument(..., help="Repository name"),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload"),
    chunk_size: int = typer.Option(DEFAULT_CHUNK_SIZE, "--chunk-size", min=1, help="Bytes per PATCH"),
) -> None:
    """Upload a file as a blob through a chunked upload session."""

    async def _push() -> None:
        digest = await asyncio.to_thread(_file_digest, path)
        async with create_client_from_settings() as client:
            await client.login([scope_for(repo, "pull", "push")])
            if await client.has_blob(repo, digest):
                print_transfer("Exists", str(digest), path.stat().st_size)
                return
            await client.push_blob(repo, _stream_chunks(path, chunk_size), digest)
            print_transfer("Pushed", str(digest), path.stat().st_size)

    run_and_exit(lambda: asyncio.run(_push()))


if __name__ == "__main__":
    app()
