"""
Command-line interface for the AI milestone timeline pipeline.

Uses Typer to expose the pipeline stages. Supports loading .env files for
API keys and the feed URL. Fatal errors (unusable store, missing
configuration, failed side effects) exit with status 1.
"""

from __future__ import annotations

from contextlib import contextmanager
import json
from pathlib import Path
from typing import Iterator

import typer
from rich.console import Console

from .config import AppConfig, load_config
from .errors import MilestoneFeedError
from .extractor import EventExtractor
from .feed import read_local_file
from .llm.providers.factory import create_provider
from .logging_utils import setup_llm_logger, setup_logging
from .runner import approve as approve_document
from .runner import evaluate as evaluate_store
from .runner import run_pipeline
from .store import load_store, locate_current_file
from .tracing import flush, setup_langfuse

try:
    from dotenv import load_dotenv
except Exception:  # noqa: BLE001
    load_dotenv = None

app = typer.Typer(add_completion=False, help="Curate the AI model release timeline from newsletters.")
console = Console()
err_console = Console(stderr=True)


def _load(config: Path | None, data_dir: Path | None, log_level: str | None) -> AppConfig:
    if load_dotenv is not None:
        load_dotenv()
    cfg = load_config(str(config) if config else None)
    if data_dir is not None:
        cfg.store.data_dir = str(data_dir)
    if log_level:
        cfg.logging.level = log_level
    return cfg


@contextmanager
def _fatal_errors() -> Iterator[None]:
    try:
        yield
    except MilestoneFeedError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        flush()


@app.command()
def run(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d", help="Directory holding the timeline data file."),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True, help="YAML config file."),
    mode: str = typer.Option("auto", "--mode", "-m", help="auto: insert directly; issue: publish for review."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute but do not persist or publish."),
    full: bool = typer.Option(False, "--full", help="Ignore the as_of cursor and process every item."),
    limit: int | None = typer.Option(None, "--limit", "-n", min=0, help="Process at most N items."),
    file: Path | None = typer.Option(None, "--file", "-f", exists=True, readable=True, help="Read a local feed or text file."),
    feed_url: str | None = typer.Option(None, "--feed-url", help="Override the feed URL (or set RSS_FEED_URL)."),
    publish: bool | None = typer.Option(None, "--publish/--no-publish", help="Create issues / PRs via gh and git."),
    evaluate: bool = typer.Option(False, "--evaluate/--no-evaluate", help="Re-score significance after inserting."),
    skip_validation: bool = typer.Option(
        False, "--skip-validation", "--skip-trends", help="Promote every nomination without external checks."
    ),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
):
    """Fetch new newsletter items, extract events and insert or propose them."""
    if mode not in ("auto", "issue"):
        console.print(f"[red]Error:[/red] unknown mode {mode!r}, expected auto or issue")
        raise typer.Exit(code=2)
    cfg = _load(config, data_dir, log_level)
    if feed_url:
        cfg.feed.url = feed_url
    if publish is not None:
        cfg.publish.enabled = publish

    with _fatal_errors():
        summary = run_pipeline(
            cfg,
            data_dir=Path(cfg.store.data_dir),
            mode=mode,
            dry_run=dry_run,
            full=full,
            limit=limit,
            input_file=file,
            evaluate_after=evaluate,
            skip_validation=skip_validation,
            console=console,
            show_progress=progress,
        )
    console.print(
        f"Items: {summary.items_processed}/{summary.items_fetched}  "
        f"extracted: {summary.extracted}  skipped invalid: {summary.skipped_invalid}  "
        f"merged: {summary.merged_away}  already known: {summary.duplicates_existing}  "
        f"failed calls: {summary.failed_calls}"
    )
    console.print(summary.message)
    for url in (summary.issue_url, summary.pr_url):
        if url:
            console.print(url)


@app.command()
def approve(
    file: Path | None = typer.Option(None, "--file", "-f", exists=True, readable=True, help="Approved review document."),
    issue: int | None = typer.Option(None, "--issue", help="Approved candidate issue number."),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
    dry_run: bool = typer.Option(False, "--dry-run"),
    publish: bool | None = typer.Option(None, "--publish/--no-publish", help="Open a PR and comment on the issue."),
    log_level: str | None = typer.Option(None, "--log-level"),
):
    """Insert the events of an approved review document."""
    if file is None and issue is None:
        console.print("[red]Error:[/red] pass --file or --issue")
        raise typer.Exit(code=2)
    cfg = _load(config, data_dir, log_level)
    if publish is not None:
        cfg.publish.enabled = publish

    with _fatal_errors():
        summary = approve_document(
            cfg,
            data_dir=Path(cfg.store.data_dir),
            document_text=file.read_text(encoding="utf-8") if file else None,
            issue_number=issue,
            dry_run=dry_run,
            console=console,
        )
    if summary.skipped_invalid:
        console.print(f"[yellow]Skipped {summary.skipped_invalid} invalid event(s)[/yellow]")
    console.print(summary.message)
    if summary.pr_url:
        console.print(summary.pr_url)


@app.command()
def evaluate(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
    dry_run: bool = typer.Option(False, "--dry-run", help="Write the audit log only."),
    skip_validation: bool = typer.Option(
        False, "--skip-validation", "--skip-trends", help="Promote every nomination without external checks."
    ),
    log_level: str | None = typer.Option(None, "--log-level"),
):
    """Re-score significance: LLM nomination, then Hacker News / Wikipedia corroboration."""
    cfg = _load(config, data_dir, log_level)
    with _fatal_errors():
        result = evaluate_store(
            cfg,
            data_dir=Path(cfg.store.data_dir),
            dry_run=dry_run,
            skip_validation=skip_validation,
            console=console,
        )
    high = result.audit.result
    console.print(f"High: {high['high_count']}/{high['total_count']} ({high['high_ratio']})")
    console.print(f"Audit log: {result.audit_path}")


@app.command()
def extract(
    file: Path = typer.Option(..., "--file", "-f", exists=True, readable=True, help="Newsletter text or HTML."),
    published: str | None = typer.Option(None, "--date", help="Newsletter date (YYYY-MM-DD), defaults to the file date."),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
    log_level: str | None = typer.Option(None, "--log-level"),
):
    """Print the events extracted from one file as JSON. Writes nothing."""
    cfg = _load(config, data_dir, log_level)
    logs_dir = Path(cfg.store.logs_dir)
    setup_logging(cfg.logging, logs_dir)
    setup_langfuse(cfg.langfuse)

    with _fatal_errors():
        store = load_store(locate_current_file(Path(cfg.store.data_dir)))
        provider = create_provider(cfg.provider, cfg.logging, setup_llm_logger(cfg.logging, logs_dir))
        items = read_local_file(file)
        if published:
            for item in items:
                item.pub_date = published
        result = EventExtractor(provider, cfg.extract, cfg.feed).extract_batch(items, store)
    print(json.dumps([event.to_json_dict() for event in result.events], ensure_ascii=False, indent=2))
    err_console.print(
        f"[dim]status: {result.status}, extracted: {len(result.events)}, skipped: {result.skipped_count}[/dim]"
    )


if __name__ == "__main__":
    app()
