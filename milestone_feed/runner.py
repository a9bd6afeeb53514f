"""
Pipeline orchestration for the AI milestone timeline.

Three entry points share the same building blocks:
1. run_pipeline: fetch new newsletter items, extract candidate events,
   merge near-duplicates, drop known events, then insert them (auto mode)
   or hand them off for human review (issue mode)
2. approve: ingest an approved review document
3. evaluate: re-score significance of the whole timeline

The store is only rewritten after every in-memory step succeeded, and dry
runs never write data (evaluation audit logs excepted).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import logging
from pathlib import Path
from typing import Callable, Sequence

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .config import AppConfig, require_feed_url
from .core.dedup import deduplicate_against_existing, merge_duplicates
from .core.types import Event, NewsletterItem, TimelineStore
from .extractor import EventExtractor
from .feed import fetch_items, filter_new_items, group_items, read_local_file
from .llm.providers.base import CompletionProvider
from .llm.providers.factory import create_provider
from .logging_utils import log_event, setup_llm_logger, setup_logging, warn_event
from .publish import Publisher
from .review import ReviewDocument, parse_review_document, render_review_document
from .significance.audit import write_audit_log
from .significance.corroboration import Corroborator
from .significance.evaluator import EvaluationResult, SignificanceEvaluator
from .significance.nomination import Nominator
from .store import (
    all_events,
    insert_events,
    load_store,
    local_today,
    locate_current_file,
    persist_store,
)
from .tracing import set_span_output, setup_langfuse, start_span

FeedLoader = Callable[[str], list[NewsletterItem]]


@dataclass
class RunSummary:
    """What a pipeline or approval run did.

    Attributes:
        mode: "auto", "issue" or "approve"
        dry_run: Whether persistence and publishing were suppressed
        items_fetched: Newsletter items considered after the cursor filter
        items_processed: Items sent to extraction (after --limit)
        extraction_calls: LLM extraction calls made
        failed_calls: Calls that produced no usable response
        extracted: Valid events returned by extraction
        skipped_invalid: Elements dropped by schema validation
        merged_away: Candidates collapsed into near-duplicates
        duplicates_existing: Candidates already present in the store
        new_events: Events inserted (or proposed, in issue mode)
        data_file: Data file written, if any
        renamed: Whether the data file name changed
        review_path: Review document written locally, if any
        issue_url: Candidate issue created, if any
        pr_url: Pull request opened, if any
        evaluation: Significance evaluation run as part of the pipeline
        message: Short human-readable outcome
    """

    mode: str
    dry_run: bool
    items_fetched: int = 0
    items_processed: int = 0
    extraction_calls: int = 0
    failed_calls: int = 0
    extracted: int = 0
    skipped_invalid: int = 0
    merged_away: int = 0
    duplicates_existing: int = 0
    new_events: list[Event] = field(default_factory=list)
    data_file: Path | None = None
    renamed: bool = False
    review_path: Path | None = None
    issue_url: str | None = None
    pr_url: str | None = None
    evaluation: EvaluationResult | None = None
    message: str = ""


@dataclass
class _Session:
    cfg: AppConfig
    data_dir: Path
    logs_dir: Path
    logger: logging.Logger
    llm_logger: logging.Logger | None
    console: Console


def _open_session(cfg: AppConfig, data_dir: Path | None, console: Console | None) -> _Session:
    data_dir = data_dir or Path(cfg.store.data_dir)
    logs_dir = Path(cfg.store.logs_dir)
    logger = setup_logging(cfg.logging, logs_dir)
    llm_logger = setup_llm_logger(cfg.logging, logs_dir)
    setup_langfuse(cfg.langfuse)
    return _Session(cfg, data_dir, logs_dir, logger, llm_logger, console or Console())


def _build_provider(session: _Session) -> CompletionProvider:
    return create_provider(session.cfg.provider, session.cfg.logging, session.llm_logger)


def run_pipeline(
    cfg: AppConfig,
    data_dir: Path | None = None,
    mode: str = "auto",
    dry_run: bool = False,
    full: bool = False,
    limit: int | None = None,
    input_file: Path | None = None,
    evaluate_after: bool = False,
    skip_validation: bool = False,
    provider: CompletionProvider | None = None,
    publisher: Publisher | None = None,
    corroborator: Corroborator | None = None,
    feed_loader: FeedLoader | None = None,
    console: Console | None = None,
    today: date | None = None,
    show_progress: bool = True,
) -> RunSummary:
    """Run fetch, extract and dedup, then insert or publish for review.

    Raises:
        StoreNotFoundError, StoreValidationError: The canonical store is unusable
        ConfigurationError: Feed URL or API key missing
        FeedError: The feed could not be fetched
        PublishError: A git / gh side effect failed
    """
    if mode not in ("auto", "issue"):
        raise ValueError(f"Unknown mode: {mode}")

    session = _open_session(cfg, data_dir, console)
    logger = session.logger
    summary = RunSummary(mode=mode, dry_run=dry_run)

    current_path = locate_current_file(session.data_dir)
    store = load_store(current_path)
    run_day = today or local_today(store.timezone)

    feed_url = None if input_file else require_feed_url(cfg.feed)
    provider = provider or _build_provider(session)

    with start_span(
        "milestone_feed.run",
        kind="chain",
        input_value={"data_file": str(current_path), "mode": mode, "dry_run": dry_run},
    ) as run_span:
        log_event(
            logger,
            "Pipeline start",
            event="pipeline_start",
            data_file=str(current_path),
            as_of=store.as_of,
            mode=mode,
            dry_run=dry_run,
            full=full,
        )

        if input_file is not None:
            items = read_local_file(input_file)
        else:
            items = (feed_loader or (lambda url: fetch_items(url, cfg.feed)))(feed_url)
            if not full:
                items = filter_new_items(items, store.as_of)
        summary.items_fetched = len(items)
        if limit is not None:
            items = items[: max(limit, 0)]
        summary.items_processed = len(items)

        if not items:
            summary.message = f"No new newsletter items after {store.as_of}"
            log_event(logger, summary.message, event="pipeline_no_items")
            return summary

        extractor = EventExtractor(provider, cfg.extract, cfg.feed)
        candidates = _extract_all(extractor, items, store, summary, session, show_progress)
        summary.extracted = len(candidates)

        merged = candidates
        if cfg.dedup.enabled:
            merged = merge_duplicates(candidates, cfg.dedup.strong_overlap, cfg.dedup.weak_overlap)
        summary.merged_away = len(candidates) - len(merged)
        new_events = deduplicate_against_existing(merged, all_events(store))
        summary.duplicates_existing = len(merged) - len(new_events)
        summary.new_events = new_events
        log_event(
            logger,
            "Candidates deduplicated",
            event="dedup_done",
            extracted=len(candidates),
            merged_away=summary.merged_away,
            existing_duplicates=summary.duplicates_existing,
            new=len(new_events),
        )

        if not new_events:
            summary.message = "All extracted events already exist"
            return summary

        if mode == "issue":
            document = render_review_document(new_events, run_day.isoformat(), items)
            _hand_off_for_review(document, summary, session, publisher, dry_run, run_day)
        else:
            _insert_and_persist(
                store,
                current_path,
                new_events,
                summary,
                session,
                run_day,
                provider,
                publisher,
                corroborator,
                dry_run,
                evaluate_after,
                skip_validation,
            )
        set_span_output(run_span, {"new_events": len(new_events), "message": summary.message})
        return summary


def approve(
    cfg: AppConfig,
    data_dir: Path | None = None,
    document_text: str | None = None,
    issue_number: int | None = None,
    dry_run: bool = False,
    publisher: Publisher | None = None,
    console: Console | None = None,
    today: date | None = None,
) -> RunSummary:
    """Ingest an approved review document into the store.

    The document comes from `document_text` or, when only an issue number
    is given, from the issue body.
    """
    session = _open_session(cfg, data_dir, console)
    logger = session.logger
    summary = RunSummary(mode="approve", dry_run=dry_run)
    publishing = cfg.publish.enabled and issue_number is not None and not dry_run
    if (publishing or document_text is None) and publisher is None:
        publisher = Publisher(cfg.publish, Path.cwd())

    if document_text is None:
        if issue_number is None:
            raise ValueError("approve needs a document or an issue number")
        document_text = publisher.fetch_issue_body(issue_number)

    events, skipped = parse_review_document(document_text, logger)
    summary.extracted = len(events)
    summary.skipped_invalid = skipped
    log_event(logger, "Approved events parsed", event="approve_parsed", valid=len(events), skipped=skipped)

    if not events:
        summary.message = "No valid events found in the JSON block. No changes made."
        if publishing:
            publisher.comment_on_issue(issue_number, summary.message)
        return summary

    current_path = locate_current_file(session.data_dir)
    store = load_store(current_path)
    new_events = deduplicate_against_existing(events, all_events(store))
    summary.duplicates_existing = len(events) - len(new_events)
    summary.new_events = new_events
    if not new_events:
        summary.message = "All events already exist in the timeline. No changes made."
        if publishing:
            publisher.comment_on_issue(issue_number, summary.message)
        return summary

    updated = insert_events(store, new_events, today=today)
    if dry_run:
        _print_events(session.console, "Would add", new_events)
        summary.message = f"Dry run: {len(new_events)} event(s) would be added"
        return summary

    if publishing:
        publisher.start_branch(publisher.branch_for_issue(issue_number))
    write = persist_store(updated, current_path, keep_previous=publishing)
    summary.data_file = write.path
    summary.renamed = write.renamed
    log_event(
        logger,
        "Store updated",
        event="store_written",
        data_file=str(write.path),
        renamed=write.renamed,
        added=len(new_events),
    )

    if publishing:
        summary.pr_url = publisher.commit_and_open_pr(
            publisher.branch_for_issue(issue_number),
            write,
            new_events,
            origin=f"issue #{issue_number}",
            closes_issue=issue_number,
        )
        publisher.comment_on_issue(issue_number, f"PR created: {summary.pr_url}")
    summary.message = f"Added {len(new_events)} event(s) to {write.path.name}"
    return summary


def evaluate(
    cfg: AppConfig,
    data_dir: Path | None = None,
    dry_run: bool = False,
    skip_validation: bool = False,
    provider: CompletionProvider | None = None,
    corroborator: Corroborator | None = None,
    console: Console | None = None,
) -> EvaluationResult:
    """Re-score significance of every month event and persist the labels.

    The audit log is written even on dry runs.
    """
    session = _open_session(cfg, data_dir, console)
    current_path = locate_current_file(session.data_dir)
    store = load_store(current_path)
    provider = provider or _build_provider(session)

    result = _evaluate_store(store, session, provider, corroborator, dry_run, skip_validation)
    if dry_run:
        _print_events(session.console, "High significance (dry run)", _high_events(result.store))
        return result

    write = persist_store(result.store, current_path)
    log_event(session.logger, "Significance labels written", event="store_written", data_file=str(write.path))
    return result


def _extract_all(
    extractor: EventExtractor,
    items: Sequence[NewsletterItem],
    store: TimelineStore,
    summary: RunSummary,
    session: _Session,
    show_progress: bool,
) -> list[Event]:
    cfg = session.cfg
    groups = group_items(items, cfg.feed.short_item_chars, cfg.feed.max_batch_items)
    candidates: list[Event] = []

    def _one(group: list[NewsletterItem]) -> None:
        result = extractor.extract_batch(group, store)
        summary.extraction_calls += 1
        summary.skipped_invalid += result.skipped_count
        if result.status != "ok":
            summary.failed_calls += 1
        candidates.extend(result.events)
        log_event(
            session.logger,
            "Items extracted",
            event="extract_group",
            titles=[item.title for item in group],
            status=result.status,
            extracted=len(result.events),
            skipped=result.skipped_count,
        )

    if not show_progress:
        for group in groups:
            _one(group)
        return candidates

    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=session.console,
    )
    with progress:
        task = progress.add_task("Extract", total=len(groups))
        for group in groups:
            _one(group)
            progress.advance(task, 1)
    return candidates


def _insert_and_persist(
    store: TimelineStore,
    current_path: Path,
    new_events: list[Event],
    summary: RunSummary,
    session: _Session,
    run_day: date,
    provider: CompletionProvider,
    publisher: Publisher | None,
    corroborator: Corroborator | None,
    dry_run: bool,
    evaluate_after: bool,
    skip_validation: bool,
) -> None:
    cfg = session.cfg
    updated = insert_events(store, new_events, today=run_day)
    if evaluate_after:
        summary.evaluation = _evaluate_store(updated, session, provider, corroborator, dry_run, skip_validation)
        updated = summary.evaluation.store

    if dry_run:
        _print_events(session.console, "Would add", new_events)
        summary.message = f"Dry run: {len(new_events)} event(s) would be added"
        return

    publishing = cfg.publish.enabled
    if publishing:
        publisher = publisher or Publisher(cfg.publish, Path.cwd())
        branch = f"{cfg.publish.run_branch_prefix}{run_day.isoformat()}"
        publisher.start_branch(branch)

    write = persist_store(updated, current_path, keep_previous=publishing)
    summary.data_file = write.path
    summary.renamed = write.renamed
    log_event(
        session.logger,
        "Store updated",
        event="store_written",
        data_file=str(write.path),
        renamed=write.renamed,
        added=len(new_events),
    )
    if publishing:
        summary.pr_url = publisher.commit_and_open_pr(
            branch, write, new_events, origin=f"feed run {run_day.isoformat()}"
        )
    summary.message = f"Added {len(new_events)} event(s) to {write.path.name}"


def _hand_off_for_review(
    document: ReviewDocument,
    summary: RunSummary,
    session: _Session,
    publisher: Publisher | None,
    dry_run: bool,
    run_day: date,
) -> None:
    cfg = session.cfg
    if dry_run:
        _print_events(session.console, "Would propose", summary.new_events)
        summary.message = f"Dry run: {len(summary.new_events)} candidate(s) would be proposed"
        return

    if cfg.publish.enabled:
        publisher = publisher or Publisher(cfg.publish, Path.cwd())
        number, url = publisher.create_candidate_issue(document)
        summary.issue_url = url
        summary.message = f"Created issue #{number} with {len(summary.new_events)} candidate(s)"
        return

    review_dir = Path(cfg.store.review_dir)
    review_dir.mkdir(parents=True, exist_ok=True)
    path = review_dir / f"candidates-{run_day.isoformat()}.md"
    path.write_text(document.body, encoding="utf-8")
    summary.review_path = path
    summary.message = f"Wrote {len(summary.new_events)} candidate(s) to {path}"
    log_event(session.logger, "Review document written", event="review_written", path=str(path))


def _evaluate_store(
    store: TimelineStore,
    session: _Session,
    provider: CompletionProvider,
    corroborator: Corroborator | None,
    dry_run: bool,
    skip_validation: bool,
) -> EvaluationResult:
    cfg = session.cfg
    skip = skip_validation or not cfg.corroboration.enabled
    if not skip and corroborator is None:
        corroborator = Corroborator(cfg.corroboration)

    evaluator = SignificanceEvaluator(
        Nominator(provider, cfg.nomination),
        None if skip else corroborator,
        model=getattr(provider, "model", cfg.provider.model),
        skip_validation=skip,
        dry_run=dry_run,
    )
    with start_span("milestone_feed.evaluate", kind="chain", input_value={"dry_run": dry_run, "skip": skip}):
        result = evaluator.evaluate(store)
    result.audit_path = write_audit_log(result.audit, session.logs_dir)
    if skip:
        warn_event(session.logger, "Corroboration skipped, all nominations promoted", event="corroboration_skipped")
    log_event(
        session.logger,
        "Audit log written",
        event="audit_written",
        path=str(result.audit_path),
        promoted=len(result.promoted_keys),
    )
    return result


def _high_events(store: TimelineStore) -> list[Event]:
    return [event for bucket in store.months for event in bucket.events if event.significance == "high"]


def _print_events(console: Console, title: str, events: Sequence[Event]) -> None:
    table = Table(title=f"{title}: {len(events)} event(s)")
    table.add_column("Date")
    table.add_column("Organization")
    table.add_column("Title")
    table.add_column("Impact")
    table.add_column("Significance")
    for event in events:
        table.add_row(
            event.date,
            event.organization,
            event.title,
            event.network_impact.level,
            event.significance or "-",
        )
    console.print(table)
