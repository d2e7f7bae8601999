"""Command line interface for inspecting the vanillameta cache."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from vanillameta.config import AppConfig
from vanillameta.errors import VanillaMetaError
from vanillameta.models import ApplicationRecord
from vanillameta.plugin import VanillaMetaPlugin

console = Console()
app = typer.Typer(help="vanillameta - Apx app metadata cache")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _build_config(cache_dir: Path | None, url: str | None) -> AppConfig:
    defaults = AppConfig()
    return AppConfig(
        cache_dir=cache_dir if cache_dir is not None else defaults.cache_dir,
        metadata_url=url if url is not None else defaults.metadata_url,
    )


def _render_records(records: list[ApplicationRecord]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("App")
    table.add_column("Name")
    table.add_column("Package")
    table.add_column("Container")
    table.add_column("Summary")

    for record in records:
        name = record.name or record.id
        if record.wildcard:
            name = f"{name} [dim](suggestion)[/dim]"
        table.add_row(
            record.id,
            name,
            record.default_source or "",
            record.container_binding or "",
            record.summary[:80],
        )
    return table


@app.command()
def refresh(
    max_age: int = typer.Option(86400, "--max-age", help="Maximum cache age in seconds"),
    url: str = typer.Option(None, "--url", help="Metadata feed URL"),
    cache_dir: Path = typer.Option(None, "--cache-dir", help="Cache directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Download the metadata feed if needed and rebuild the silo."""
    _setup_logging(verbose)
    config = _build_config(cache_dir, url)

    with VanillaMetaPlugin(config) as plugin:
        console.print(f"Refreshing into [bold]{plugin.store.cache_dir}[/bold]...")
        try:
            result = plugin.refresh(max_age).result()
        except VanillaMetaError as exc:
            console.print(f"[red]Refresh failed:[/red] {exc}")
            raise typer.Exit(code=1) from exc

    entries = len(result.index) if result.index is not None else 0
    console.print(
        f"Downloaded: {'yes' if result.fetched else 'no'}, "
        f"compiled: {'yes' if result.compiled else 'no'}, apps: {entries}"
    )


@app.command()
def search(
    query: str = typer.Argument(..., help="Keywords to search for"),
    cache_dir: Path = typer.Option(None, "--cache-dir", help="Cache directory"),
    refine: bool = typer.Option(True, help="Resolve container bindings for the results"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search the compiled silo."""
    _setup_logging(verbose)
    config = _build_config(cache_dir, None)

    with VanillaMetaPlugin(config) as plugin:
        try:
            records = plugin.list_apps(query).result()
            if refine and records:
                plugin.refine(records).result()
        except VanillaMetaError as exc:
            console.print(f"[red]Search failed:[/red] {exc}")
            raise typer.Exit(code=1) from exc

    if not records:
        console.print("[yellow]No matches found.[/yellow]")
        return
    console.print(_render_records(records))


@app.command()
def show(
    package: str = typer.Argument(..., help="Package identifier"),
    cache_dir: Path = typer.Option(None, "--cache-dir", help="Cache directory"),
) -> None:
    """Refine a single package and show its install parameters."""
    config = _build_config(cache_dir, None)

    with VanillaMetaPlugin(config) as plugin:
        record = ApplicationRecord(id=package, sources=[package])
        plugin.reconciler.claim([record])
        try:
            plugin.refine([record]).result()
        except VanillaMetaError as exc:
            console.print(f"[red]Refine failed:[/red] {exc}")
            raise typer.Exit(code=1) from exc

    if record.container_binding is None:
        console.print(f"[yellow]{package} is not provided by any Apx container.[/yellow]")
        raise typer.Exit(code=1)
    console.print(_render_records([record]))
