"""Typer-based CLI for component-rag."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.syntax import Syntax
from rich.table import Table

from . import __version__, config, config_manager
from .embeddings import build_embedder
from .errors import ComponentRagError, EmbeddingError, GenerationError, IndexLoadError, QueryError
from .indexer import ComponentIndexer
from .llm import create_provider
from .service import ComponentSearchService
from .store import ComponentIndex

app = typer.Typer(
    help="Index React components and query them with semantic search.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
config_app = typer.Typer(help="Show or change the saved configuration.", no_args_is_help=True)
app.add_typer(config_app, name="config")

console = Console()
err_console = Console(stderr=True)

EMBEDDING_PROVIDERS = ("auto", "ollama", "openai", "hash")
LLM_PROVIDERS = ("ollama", "openai")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"component-rag v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress and fallbacks."),
):
    """Local semantic search and answers over a React codebase."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ===================================================================
# Helpers
# ===================================================================

def _settings() -> config.Settings:
    try:
        return config.load_settings()
    except ValueError as exc:
        _fail(f"Cannot read {config.CONFIG_FILE}: {exc}")


def _fail(message: str):
    err_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code=1)


def _open_service(settings: config.Settings, index_path: Optional[Path], need_generator: bool = False) -> ComponentSearchService:
    path = index_path or settings.index_path
    try:
        index = ComponentIndex.load(path)
    except IndexLoadError as exc:
        _fail(str(exc))
    try:
        embedder = build_embedder(settings.embedding)
        generator = create_provider(settings.generation) if need_generator else None
    except ValueError as exc:
        _fail(str(exc))
    return ComponentSearchService(index, embedder, generator, settings)


def _print_json(payload) -> None:
    typer.echo(json.dumps(asdict(payload), indent=2))


# ===================================================================
# Commands
# ===================================================================

@app.command("index")
def index_project(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Root of the React codebase."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Index file to write."),
    sort: bool = typer.Option(True, "--sort/--no-sort", help="Order components by name before embedding."),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Embedding provider: auto, ollama, openai, hash."),
):
    """Extract components, embed them, and write a fresh index."""
    settings = _settings()
    settings.extraction = replace(settings.extraction, sort_by_name=sort)
    if provider:
        if provider.lower() not in EMBEDDING_PROVIDERS:
            _fail(f"Unknown provider '{provider}'. Choose from: {', '.join(EMBEDDING_PROVIDERS)}")
        settings.embedding = replace(settings.embedding, provider=provider.lower())
    target = output or settings.index_path

    embedder = build_embedder(settings.embedding)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Parsing sources", total=None)

        def on_progress(stage: str, done: int, total: int) -> None:
            label = "Parsing sources" if stage == "extract" else f"Embedding with {embedder.model_key}"
            progress.update(task, description=label, completed=done, total=total)

        indexer = ComponentIndexer(settings, embedder, progress=on_progress)
        stats = indexer.run(project_path, target)

    console.print(f"[green]Indexed[/green] {project_path.resolve()} -> {target}")
    console.print(
        f"Files: {stats.files_scanned} ({stats.files_skipped} skipped) | "
        f"Components: {stats.components} | Fallback embeddings: {stats.fallback_embeddings}"
    )


@app.command("search")
def search(
    query: str = typer.Argument(..., help="Natural language query."),
    scope: str = typer.Option("all", "--scope", "-s", help="Named path scope (all, examples, src, ...)."),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of results."),
    index_path: Optional[Path] = typer.Option(None, "--index", "-i", help="Index file to query."),
    as_json: bool = typer.Option(False, "--json", help="Print the response as JSON."),
):
    """Rank indexed components by similarity to QUERY."""
    settings = _settings()
    service = _open_service(settings, index_path)
    try:
        response = service.search(query, scope=scope, top_k=top_k)
    except QueryError as exc:
        _fail(str(exc))
    except EmbeddingError as exc:
        _fail(f"Query embedding failed: {exc}")

    if as_json:
        _print_json(response)
        return
    if not response.results:
        typer.echo("No components in scope.")
        return

    table = Table(title=f"Top {len(response.results)} of {response.count} for '{query}' ({scope})")
    table.add_column("#", justify="right")
    table.add_column("Component", style="cyan")
    table.add_column("File")
    table.add_column("Score", justify="right")
    for i, hit in enumerate(response.results, 1):
        table.add_row(str(i), hit.name, hit.file, f"{hit.score:.3f}")
    console.print(table)


@app.command("answer")
def answer(
    query: str = typer.Argument(..., help="Question about the codebase."),
    scope: str = typer.Option("all", "--scope", "-s", help="Named path scope (all, examples, src, ...)."),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Components used as context."),
    index_path: Optional[Path] = typer.Option(None, "--index", "-i", help="Index file to query."),
    as_json: bool = typer.Option(False, "--json", help="Print the response as JSON."),
):
    """Answer QUERY using the most relevant components as context."""
    settings = _settings()
    service = _open_service(settings, index_path, need_generator=True)
    try:
        response = service.answer(query, scope=scope, top_k=top_k)
    except (QueryError, EmbeddingError, GenerationError, ValueError) as exc:
        _fail(str(exc))

    if as_json:
        _print_json(response)
        return
    console.print(response.answer, markup=False)
    console.print("")
    console.print("[bold]Sources[/bold]")
    for src in response.used:
        console.print(f"  {src.name} [dim]{src.file}[/dim] ({src.score:.3f})")


@app.command("show")
def show(
    name: str = typer.Argument(..., help="Component name."),
    file_path: str = typer.Argument(..., help="File path relative to the indexed root."),
    index_path: Optional[Path] = typer.Option(None, "--index", "-i", help="Index file to read."),
):
    """Print one indexed component's metadata and snippet."""
    settings = _settings()
    service = _open_service(settings, index_path)
    record = service.component(name, file_path)
    if record is None:
        _fail(f"No component '{name}' in {file_path}")

    console.print(f"[bold cyan]{record.name}[/bold cyan] ({record.kind}) [dim]{record.file_path}[/dim]")
    console.print(record.summary, markup=False)
    console.print(Syntax(record.code_snippet, "tsx", line_numbers=True))


# ===================================================================
# Configuration commands
# ===================================================================

@config_app.command("show")
def config_show():
    """Show the effective configuration."""
    settings = _settings()
    emb, gen = settings.embedding, settings.generation
    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Config file", str(config.CONFIG_FILE))
    table.add_row("Index", str(settings.index_path))
    table.add_row("Embeddings", f"{emb.provider} ({emb.ollama_model} @ {emb.ollama_url})")
    table.add_row("LLM", f"{gen.provider} ({gen.model} @ {gen.endpoint})")
    key = gen.api_key or emb.api_key
    table.add_row("API key", key[:4] + "…" if key else "(not set)")
    table.add_row("Scopes", ", ".join(sorted(settings.retrieval.scopes)))
    console.print(table)


@config_app.command("set-embedding")
def set_embedding(
    provider: str = typer.Argument(..., help="auto, ollama, openai or hash."),
    model: str = typer.Option("", "--model", "-m", help="Embedding model name."),
    url: str = typer.Option("", "--url", "-u", help="Server or API URL."),
):
    """Save the embedding backend."""
    provider = provider.lower().strip()
    if provider not in EMBEDDING_PROVIDERS:
        _fail(f"Unknown provider '{provider}'. Choose from: {', '.join(EMBEDDING_PROVIDERS)}")
    path = config_manager.save_embedding_config(provider, model=model, url=url)
    console.print(f"[green]Embedding provider set to {provider}[/green] ({path})")
    console.print("Re-index so stored vectors match the new backend.")


@config_app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help="ollama or openai."),
    model: str = typer.Option("", "--model", "-m", help="Model name (provider default if not set)."),
    endpoint: str = typer.Option("", "--endpoint", "-e", help="Custom endpoint URL."),
    api_key: str = typer.Option("", "--api-key", "-k", help="API key for hosted providers."),
):
    """Save the generation backend."""
    provider = provider.lower().strip()
    if provider not in LLM_PROVIDERS:
        _fail(f"Unknown provider '{provider}'. Choose from: {', '.join(LLM_PROVIDERS)}")
    path = config_manager.save_llm_config(provider, model=model, endpoint=endpoint, api_key=api_key)
    console.print(f"[green]LLM provider set to {provider}[/green] ({path})")


def run():
    """Console entry point that reports library errors without a traceback."""
    try:
        app()
    except ComponentRagError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1)


if __name__ == "__main__":
    run()
