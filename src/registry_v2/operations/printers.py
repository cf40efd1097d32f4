"""
Human-readable output formatting.

Centralizes all CLI output so the protocol engine itself never prints.
"""
from __future__ import annotations

from typing import Iterable, Optional

from rich.console import Console
from rich.table import Table

from ..errors import RegistryApiError
from ..models import Descriptor, ImageIndex, Manifest, ManifestSchema1

_console = Console()
_err_console = Console(stderr=True)


def print_probe(base_url: str, supported: bool, anonymous_ok: bool) -> None:
    status = "[green]yes[/]" if supported else "[red]no[/]"
    _console.print(f"[bold]Registry:[/] {base_url}")
    _console.print(f"[bold]v2 API:[/] {status}")
    _console.print(f"[bold]Anonymous access:[/] {'yes' if anonymous_ok else 'no'}")


def print_names(names: Iterable[str]) -> None:
    """One repository or tag name per line."""
    for name in names:
        _console.print(name, highlight=False)


def print_manifest(manifest: Manifest, verbose: bool = False) -> None:
    """
    Print manifest summary.

    Shows digest, media type and the referenced blobs or child manifests.
    """
    _console.print(f"[bold]Digest:[/] [dim]{manifest.digest}[/]")
    _console.print(f"[bold]Media type:[/] {manifest.media_type}")
    _console.print(f"[bold]Schema version:[/] {manifest.schema_version}")

    content = manifest.content
    if isinstance(content, ManifestSchema1):
        table = Table(title="Layers (schema 1)")
        table.add_column("Blob", style="cyan")
        for layer in content.fs_layers:
            table.add_row(layer.blob_sum)
        _console.print(table)
        return

    if isinstance(content, ImageIndex):
        table = Table(title="Manifests")
        table.add_column("Digest", style="cyan")
        table.add_column("Platform", style="yellow")
        table.add_column("Size", justify="right")
        for child in content.manifests:
            platform = f"{child.platform.os}/{child.platform.architecture}" if child.platform else "-"
            table.add_row(child.digest, platform, _format_bytes(child.size))
        _console.print(table)
        return

    _console.print(f"[bold]Config:[/] {content.config.digest}")
    _print_descriptors("Layers", content.layers, verbose)


def _print_descriptors(title: str, descriptors: Iterable[Descriptor], verbose: bool) -> None:
    table = Table(title=title)
    table.add_column("Digest", style="cyan")
    table.add_column("Size", justify="right")
    if verbose:
        table.add_column("Media type", style="dim")
    for d in descriptors:
        row = [d.digest, _format_bytes(d.size)]
        if verbose:
            row.append(d.media_type)
        table.add_row(*row)
    _console.print(table)


def print_transfer(action: str, digest: str, size: int, dest: Optional[str] = None) -> None:
    target = f" -> {dest}" if dest else ""
    _console.print(f"{action} [cyan]{digest}[/] ({_format_bytes(size)}){target}")


def print_error(exc: BaseException) -> None:
    """Print an error, including every entry of a registry error envelope."""
    _err_console.print(f"[bold red]Error:[/] {exc}")
    if isinstance(exc, RegistryApiError):
        for entry in exc.errors:
            detail = f" ({entry.detail})" if entry.detail else ""
            _err_console.print(f"  {entry.code}: {entry.message or ''}{detail}")


def _format_bytes(size: int) -> str:
    """Format byte count as human-readable string."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} TB"
