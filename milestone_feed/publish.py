"""
git / GitHub side effects.

All commands go through the `gh` and `git` CLIs in the repository working
tree. Bodies are passed through temporary files to avoid shell quoting, and
every invocation carries a timeout.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import os
from pathlib import Path
import subprocess
import tempfile
from typing import Callable, Iterator, Sequence

from .config import PublishConfig
from .core.types import Event
from .errors import PublishError
from .logging_utils import get_logger, log_event, warn_event
from .review import ReviewDocument
from .store import StoreWrite

CommandRunner = Callable[[Sequence[str]], str]


def rewrite_import_reference(path: Path, old_name: str, new_name: str) -> bool:
    """Point `@/data/<old_name>` references in `path` at `new_name`.

    Returns True when the file changed.
    """
    if old_name == new_name or not path.is_file():
        return False
    content = path.read_text(encoding="utf-8")
    updated = content.replace(f"@/data/{old_name}", f"@/data/{new_name}")
    if updated == content:
        return False
    path.write_text(updated, encoding="utf-8")
    return True


def issue_number_from_url(url: str) -> int:
    try:
        return int(url.rstrip("/").rsplit("/", 1)[-1])
    except ValueError as exc:
        raise PublishError(f"Unexpected issue URL from gh: {url!r}") from exc


class Publisher:
    """Creates issues, branches, commits and pull requests."""

    def __init__(
        self,
        cfg: PublishConfig,
        repo_dir: Path,
        runner: CommandRunner | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg
        self.repo_dir = repo_dir
        self._runner = runner or self._subprocess_runner
        self.logger = logger or get_logger("publish")

    def run(self, *args: str) -> str:
        return self._runner(list(args))

    def create_candidate_issue(self, document: ReviewDocument) -> tuple[int, str]:
        """Open a review issue and return its number and URL."""
        with _body_file(document.body) as body_path:
            url = self.run(
                "gh", "issue", "create",
                "--title", document.title,
                "--label", self.cfg.issue_label,
                "--body-file", body_path,
            )
        number = issue_number_from_url(url)
        log_event(self.logger, "Created candidate issue", event="issue_created", issue=number, url=url)
        return number, url

    def fetch_issue_body(self, issue_number: int) -> str:
        return self.run("gh", "issue", "view", str(issue_number), "--json", "body", "--jq", ".body")

    def comment_on_issue(self, issue_number: int, body: str) -> None:
        with _body_file(body) as body_path:
            self.run("gh", "issue", "comment", str(issue_number), "--body-file", body_path)

    def start_branch(self, name: str) -> None:
        self.run("git", "checkout", "-b", name)

    def branch_for_issue(self, issue_number: int) -> str:
        return f"{self.cfg.branch_prefix}{issue_number}"

    def commit_and_open_pr(
        self,
        branch: str,
        write: StoreWrite,
        events: Sequence[Event],
        origin: str,
        closes_issue: int | None = None,
    ) -> str:
        """Stage the rewritten data file, commit, push and open a PR.

        A renamed data file is removed through git and the import reference
        is updated. Returns the PR URL.
        """
        import_path = self.repo_dir / self.cfg.import_file
        paths = [self._relative(write.path)]
        if write.renamed:
            self.run("git", "rm", "--quiet", self._relative(write.previous_path))
            if rewrite_import_reference(import_path, write.previous_path.name, write.path.name):
                paths.append(self.cfg.import_file)
            else:
                warn_event(
                    self.logger,
                    "Import reference not found",
                    event="import_not_rewritten",
                    import_file=str(import_path),
                    old=write.previous_path.name,
                )

        self.run("git", "add", *paths)
        titles = "\n".join(f"- {event.title}" for event in events)
        self.run("git", "commit", "-m", f"feat: add {len(events)} AI timeline event(s) from {origin}\n\n{titles}")
        self.run("git", "push", "-u", "origin", branch)

        closes = f"\n\nCloses #{closes_issue}" if closes_issue is not None else ""
        pr_body = (
            "## AI Timeline Update\n\n"
            f"Adds {len(events)} event(s) from {origin}.\n\n"
            f"### Events Added\n{titles}{closes}\n"
        )
        with _body_file(pr_body) as body_path:
            pr_url = self.run(
                "gh", "pr", "create",
                "--title", f"feat: add AI timeline events from {origin}",
                "--body-file", body_path,
            )
        log_event(self.logger, "Opened pull request", event="pr_created", branch=branch, url=pr_url)
        return pr_url

    def _relative(self, path: Path) -> str:
        try:
            return str(path.resolve().relative_to(self.repo_dir.resolve()))
        except ValueError:
            return str(path)

    def _subprocess_runner(self, args: Sequence[str]) -> str:
        try:
            completed = subprocess.run(
                list(args),
                cwd=self.repo_dir,
                capture_output=True,
                text=True,
                timeout=self.cfg.command_timeout_seconds,
                check=True,
            )
        except FileNotFoundError as exc:
            raise PublishError(f"Command not found: {args[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise PublishError(f"Command timed out: {' '.join(args[:3])}") from exc
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip()
            raise PublishError(f"Command failed ({exc.returncode}): {' '.join(args[:3])}: {detail}") from exc
        return completed.stdout.strip()


@contextmanager
def _body_file(body: str) -> Iterator[str]:
    """Temporary markdown file holding an issue / PR / comment body."""
    fd, path = tempfile.mkstemp(prefix="milestone-feed-", suffix=".md")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(body)
        yield path
    finally:
        Path(path).unlink(missing_ok=True)
