"""Command line interface for docroute."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from docroute.config import BuildConfig
from docroute.errors import (
    ConfigError,
    DuplicateSourceError,
    EmptyCorpusError,
    RouteCollisionError,
)
from docroute.index.builder import BuildResult, build_from_directory
from docroute.index.taxonomy import category_key, tag_key

console = Console()
err_console = Console(stderr=True)
app = typer.Typer(help="docroute - permalinks and taxonomies for a Markdown corpus")

SOURCE_OPTION = typer.Option(
    ...,
    "--source",
    "-s",
    help="Directory containing the Markdown corpus.",
    exists=True,
    file_okay=False,
    dir_okay=True,
    resolve_path=True,
)
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Jekyll-style _config.yml", exists=True)
TEMPLATE_OPTION = typer.Option(None, "--permalink-template", "-p", help="Permalink template or style")
TRAILING_OPTION = typer.Option(None, "--trailing-slash", help="Trailing slash policy: always|never")
DATE_FALLBACK_OPTION = typer.Option(None, "--date-fallback", help="Date fallback: filename|none")
WORKERS_OPTION = typer.Option(None, "--workers", "-w", help="Worker threads (default: CPU count)")
TIMEOUT_OPTION = typer.Option(None, "--timeout", help="Per-document timeout in seconds")
UNPUBLISHED_OPTION = typer.Option(False, "--unpublished", help="Include 'published: false' documents")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose logging")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(
    config_path: Optional[Path],
    *,
    permalink_template: Optional[str] = None,
    trailing_slash: Optional[str] = None,
    date_fallback: Optional[str] = None,
    workers: Optional[int] = None,
    timeout: Optional[float] = None,
    unpublished: bool = False,
) -> BuildConfig:
    """Merge the optional config file with command line overrides."""
    try:
        base = BuildConfig.from_yaml(config_path) if config_path is not None else BuildConfig()
        return base.replace(
            permalink_template=permalink_template,
            trailing_slash=trailing_slash,
            date_fallback=date_fallback,
            workers=workers,
            document_timeout=timeout,
            include_unpublished=True if unpublished else None,
        )
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _run_build(source: Path, config: BuildConfig) -> BuildResult:
    try:
        result = build_from_directory(source, config)
    except RouteCollisionError as exc:
        err_console.print("[red]Build failed: route collision[/red]")
        for route, sources in sorted(exc.collisions.items()):
            err_console.print(f"  {escape(route)} <- {escape(', '.join(sources))}")
        raise typer.Exit(code=1)
    except (DuplicateSourceError, EmptyCorpusError) as exc:
        err_console.print(f"[red]Build failed: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    for error in result.errors:
        err_console.print(f"[yellow]warning:[/yellow] {escape(str(error))}")
    return result


@app.command()
def build(
    source: Path = SOURCE_OPTION,
    config_path: Optional[Path] = CONFIG_OPTION,
    permalink_template: Optional[str] = TEMPLATE_OPTION,
    trailing_slash: Optional[str] = TRAILING_OPTION,
    date_fallback: Optional[str] = DATE_FALLBACK_OPTION,
    workers: Optional[int] = WORKERS_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    unpublished: bool = UNPUBLISHED_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Resolve every document under SOURCE and print the route table."""
    _setup_logging(verbose)
    config = _load_config(
        config_path,
        permalink_template=permalink_template,
        trailing_slash=trailing_slash,
        date_fallback=date_fallback,
        workers=workers,
        timeout=timeout,
        unpublished=unpublished,
    )
    result = _run_build(source, config)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Route")
    table.add_column("Source")
    table.add_column("Date")
    table.add_column("Title")
    for item in result.registry.all_documents():
        document = item.document
        table.add_row(
            escape(item.route),
            escape(document.source),
            document.date.date().isoformat() if document.date else "-",
            escape(document.title),
        )
    console.print(table)

    stats = result.stats
    console.print(f"Resolved: {stats.resolved}, failed: {stats.failed}, skipped: {stats.skipped}")


@app.command()
def routes(
    source: Path = SOURCE_OPTION,
    config_path: Optional[Path] = CONFIG_OPTION,
    permalink_template: Optional[str] = TEMPLATE_OPTION,
    trailing_slash: Optional[str] = TRAILING_OPTION,
    date_fallback: Optional[str] = DATE_FALLBACK_OPTION,
    workers: Optional[int] = WORKERS_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    unpublished: bool = UNPUBLISHED_OPTION,
    category: Optional[str] = typer.Option(None, "--category", help="Only list this category"),
    tag: Optional[str] = typer.Option(None, "--tag", help="Only list this tag"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List routes newest first, optionally restricted to one category or tag."""
    if category is not None and tag is not None:
        raise typer.BadParameter("Use either --category or --tag, not both")
    _setup_logging(verbose)
    config = _load_config(
        config_path,
        permalink_template=permalink_template,
        trailing_slash=trailing_slash,
        date_fallback=date_fallback,
        workers=workers,
        timeout=timeout,
        unpublished=unpublished,
    )
    registry = _run_build(source, config).registry

    if category is not None or tag is not None:
        key = category_key(category) if category is not None else tag_key(tag or "")
        sources = registry.taxonomy(key)
        if sources is None:
            console.print(f"[yellow]No documents in {escape(key)}.[/yellow]")
            return
        items = [registry.get(name) for name in sources]
    else:
        items = list(registry.all_documents())

    for item in items:
        if item is not None:
            console.print(f"{escape(item.route)}  {escape(item.source)}")


@app.command()
def serve(
    source: Path = SOURCE_OPTION,
    config_path: Optional[Path] = CONFIG_OPTION,
    permalink_template: Optional[str] = TEMPLATE_OPTION,
    trailing_slash: Optional[str] = TRAILING_OPTION,
    date_fallback: Optional[str] = DATE_FALLBACK_OPTION,
    workers: Optional[int] = WORKERS_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    unpublished: bool = UNPUBLISHED_OPTION,
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Build the corpus and serve the registry read-only over HTTP."""
    try:
        import uvicorn

        from docroute.web.app import create_app
    except ImportError as exc:  # pragma: no cover - depends on extras
        raise typer.BadParameter(
            "The web extras are not installed. Install them with \"python -m pip install '.[web]'\""
        ) from exc

    _setup_logging(verbose)
    config = _load_config(
        config_path,
        permalink_template=permalink_template,
        trailing_slash=trailing_slash,
        date_fallback=date_fallback,
        workers=workers,
        timeout=timeout,
        unpublished=unpublished,
    )
    registry = _run_build(source, config).registry

    console.print(f"Serving {len(registry)} documents on http://{host}:{port}")
    uvicorn.run(create_app(registry), host=host, port=port, reload=False, log_level="info")


if __name__ == "__main__":  # pragma: no cover
    app()
