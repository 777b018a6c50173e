"""Review orchestration: run lifecycle, background execution and read models.

start_review() returns as soon as the run record exists. The review itself runs
on a thread pool; a done-callback on each future writes any escaped exception
to the run as FAILED, so a run never stays active after its task ends. Every
read goes through the store, never through in-process state.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Optional

from meiwei_core.aggregator import SummaryView, summarize, top_issues
from meiwei_core.engine import AnalysisEngine
from meiwei_core.errors import ConflictError, NotFoundError
from meiwei_store.base import check_sort_key
from meiwei_store.models import (
    Finding,
    Page,
    RepositoryRecord,
    ReviewRun,
    ReviewStatus,
    mark_completed,
    mark_failed,
    mark_running,
    utcnow,
    with_checkout,
)

if TYPE_CHECKING:
    from meiwei_core.git.sync import RepositorySynchronizer
    from meiwei_store.base import BaseStore

logger = logging.getLogger(__name__)

SUMMARY_TOP_ISSUES = 10


@dataclass
class ProgressView:
    run_id: int
    status: ReviewStatus
    percent: int
    current_file: Optional[str]
    processed_files: int
    total_files: int
    found_issues: int
    elapsed_seconds: int
    eta_seconds: Optional[int]
    error_message: Optional[str] = None


@dataclass
class RunHistoryView:
    run_id: int
    repository_id: int
    repository_name: Optional[str]
    status: ReviewStatus
    commit_hash: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime]
    total_files: Optional[int]
    total_issues: Optional[int]
    error_message: Optional[str]
    duration_minutes: Optional[int]


@dataclass
class RepositoryStatistics:
    repository_id: int
    total_runs: int
    completed_runs: int
    failed_runs: int
    average_issues: float
    last_run_at: Optional[datetime]


def progress_of(run: ReviewRun, now: Optional[datetime] = None) -> ProgressView:
    """Derive a progress view from a persisted run record alone."""
    total = run.total_files or 0
    reviewed = run.reviewed_files or 0
    end = run.completed_at or now or utcnow()
    elapsed = max(int((end - run.started_at).total_seconds()), 0)

    percent = reviewed * 100 // total if total > 0 else 0
    eta = None
    if 0 < reviewed < total:
        eta = int(elapsed * (total - reviewed) / reviewed)

    return ProgressView(
        run_id=run.id,
        status=run.status,
        percent=percent,
        current_file=run.current_file,
        processed_files=reviewed,
        total_files=total,
        found_issues=run.total_issues or 0,
        elapsed_seconds=elapsed,
        eta_seconds=eta,
        error_message=run.error_message,
    )


class ReviewOrchestrator:
    def __init__(
        self,
        store: BaseStore,
        synchronizer: RepositorySynchronizer,
        engine: Optional[AnalysisEngine] = None,
        max_workers: int = 4,
    ):
        self._store = store
        self._synchronizer = synchronizer
        self._engine = engine or AnalysisEngine()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="meiwei-review")
        self._lock = threading.Lock()
        self._finished: dict[int, threading.Event] = {}

    # ------------------------------------------------------------------ #
    # Commands                                                             #
    # ------------------------------------------------------------------ #

    def start_review(self, repository_id: int, force_pull: bool = False) -> int:
        """Create a PENDING run and schedule it. Returns the run id immediately.

        Raises NotFoundError for an unknown repository and ConflictError when
        the repository already has a PENDING or RUNNING run.
        """
        repository = self._require_repository(repository_id)

        run = self._store.create_run_if_idle(ReviewRun(repository_id=repository_id))
        if run is None:
            active = self._store.latest_run(repository_id)
            active_id = active.id if active is not None else "?"
            raise ConflictError(f"Repository {repository.name!r} already has an active review (run {active_id}).")

        logger.info("Scheduled review run %d for %s@%s", run.id, repository.name, repository.branch)
        finished = threading.Event()
        with self._lock:
            self._finished[run.id] = finished

        try:
            future = self._executor.submit(self._execute, run, repository, force_pull)
        except RuntimeError as e:
            # A PENDING run nobody will pick up would block the repository for good.
            self._store.save_run(mark_failed(run, f"Could not schedule review: {e}"))
            with self._lock:
                self._finished.pop(run.id, None)
            raise
        future.add_done_callback(partial(self._on_done, run.id))
        return run.id

    def wait(self, run_id: int, timeout: Optional[float] = None) -> ReviewRun:
        """Block until a run started by this orchestrator has finished, then return it.

        Runs started elsewhere are returned as currently stored. Raises
        TimeoutError if the run is still going after ``timeout`` seconds.
        """
        with self._lock:
            finished = self._finished.get(run_id)
        if finished is not None and not finished.wait(timeout):
            raise TimeoutError(f"Review run {run_id} did not finish within {timeout}s")
        return self._require_run(run_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------ #
    # Background task                                                      #
    # ------------------------------------------------------------------ #

    def _execute(self, run: ReviewRun, repository: RepositoryRecord, force_pull: bool) -> None:
        run = self._store.save_run(mark_running(run))
        logger.info("Run %d started for %s", run.id, repository.name)

        work_dir = self._synchronizer.sync(repository.clone_url, repository.branch, force_pull)
        commit_hash = self._synchronizer.current_commit_hash(work_dir)

        exclusions = self._store.list_active_exclusions(repository.id)
        files = self._synchronizer.discover_source_files(work_dir, exclusions)
        logger.info("Run %d: %d source file(s) to review at %s", run.id, len(files), commit_hash[:12])

        run = self._store.save_run(with_checkout(run, commit_hash, len(files)))
        totals = self._engine.analyze_files(run, files, self._store)

        run = self._require_run(run.id)
        self._store.save_run(mark_completed(run, totals.reviewed_files, totals.total_issues))
        logger.info("Run %d completed: %d issue(s) in %d file(s)", run.id, totals.total_issues, totals.reviewed_files)

    def _on_done(self, run_id: int, future: Future) -> None:
        try:
            if future.cancelled():
                self._record_failure(run_id, "Review was cancelled before it started")
                return
            error = future.exception()
            if error is not None:
                logger.error("Run %d failed", run_id, exc_info=error)
                self._record_failure(run_id, str(error) or type(error).__name__)
        finally:
            with self._lock:
                finished = self._finished.pop(run_id, None)
            if finished is not None:
                finished.set()

    def _record_failure(self, run_id: int, message: str) -> None:
        run = self._store.get_run(run_id)
        if run is None or run.status.is_terminal:
            return
        self._store.save_run(mark_failed(run, message))

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    def get_progress(self, run_id: int) -> ProgressView:
        return progress_of(self._require_run(run_id))

    def get_status(self, run_id: int) -> ReviewStatus:
        return self._require_run(run_id).status

    def get_results(
        self,
        run_id: int,
        page: int = 0,
        page_size: int = 20,
        sort_by: str = "file_path",
        sort_dir: str = "asc",
    ) -> Page[Finding]:
        _check_paging(page, page_size)
        check_sort_key(sort_by)
        if sort_dir not in ("asc", "desc"):
            raise ValueError(f"Unknown sort direction {sort_dir!r}. Choose 'asc' or 'desc'.")
        self._require_run(run_id)

        items = self._store.list_findings(
            run_id,
            offset=page * page_size,
            limit=page_size,
            sort_by=sort_by,
            descending=sort_dir == "desc",
        )
        return Page(items=items, total=self._store.count_findings(run_id), page=page, page_size=page_size)

    def get_histories(
        self, repository_id: Optional[int] = None, page: int = 0, page_size: int = 20
    ) -> Page[RunHistoryView]:
        _check_paging(page, page_size)
        if repository_id is not None:
            self._require_repository(repository_id)

        runs = self._store.list_runs(repository_id, offset=page * page_size, limit=page_size)
        names: dict[int, Optional[str]] = {}
        items = []
        for run in runs:
            if run.repository_id not in names:
                repository = self._store.get_repository(run.repository_id)
                names[run.repository_id] = repository.name if repository else None
            items.append(_history_view(run, names[run.repository_id]))
        return Page(items=items, total=self._store.count_runs(repository_id), page=page, page_size=page_size)

    def get_summary(self, run_id: int) -> SummaryView:
        run = self._require_run(run_id)
        summary = summarize(self._store, run_id)
        summary.top_issues = top_issues(self._store, run.repository_id, SUMMARY_TOP_ISSUES)
        return summary

    def repository_statistics(self, repository_id: int) -> RepositoryStatistics:
        self._require_repository(repository_id)
        runs = self._store.list_runs(repository_id)

        completed = [r for r in runs if r.status == ReviewStatus.COMPLETED]
        failed = sum(1 for r in runs if r.status == ReviewStatus.FAILED)
        issues = [r.total_issues for r in completed if r.total_issues is not None]
        return RepositoryStatistics(
            repository_id=repository_id,
            total_runs=len(runs),
            completed_runs=len(completed),
            failed_runs=failed,
            average_issues=sum(issues) / len(issues) if issues else 0.0,
            last_run_at=runs[0].started_at if runs else None,
        )

    # ------------------------------------------------------------------ #
    # Lookups                                                              #
    # ------------------------------------------------------------------ #

    def _require_repository(self, repository_id: int) -> RepositoryRecord:
        repository = self._store.get_repository(repository_id)
        if repository is None:
            raise NotFoundError(f"Repository {repository_id} not found")
        return repository

    def _require_run(self, run_id: int) -> ReviewRun:
        run = self._store.get_run(run_id)
        if run is None:
            raise NotFoundError(f"Review run {run_id} not found")
        return run


def _check_paging(page: int, page_size: int) -> None:
    if page < 0:
        raise ValueError("page must be >= 0")
    if page_size < 1:
        raise ValueError("page_size must be >= 1")


def _history_view(run: ReviewRun, repository_name: Optional[str]) -> RunHistoryView:
    duration = None
    if run.completed_at is not None:
        duration = int((run.completed_at - run.started_at).total_seconds() // 60)
    return RunHistoryView(
        run_id=run.id,
        repository_id=run.repository_id,
        repository_name=repository_name,
        status=run.status,
        commit_hash=run.commit_hash,
        started_at=run.started_at,
        completed_at=run.completed_at,
        total_files=run.total_files,
        total_issues=run.total_issues,
        error_message=run.error_message,
        duration_minutes=duration,
    )
