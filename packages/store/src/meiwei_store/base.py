"""Abstract store interface.

The orchestrator and aggregator depend on BaseStore, never on a concrete
backend, so SQLite and in-memory storage are interchangeable. The persisted
ReviewRun is the single source of truth for progress: pollers read it through
this interface from any thread or process.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from meiwei_store.models import ExclusionRule, Finding, RepositoryRecord, ReviewRun

# Columns a caller may sort findings by; anything else is rejected.
FINDING_SORT_KEYS = ("file_path", "line", "severity", "rule_id", "created_at")


class RecordNotFound(LookupError):
    """Raised when an update targets a record that does not exist."""


class BaseStore(ABC):
    """Persistence for repositories, exclusion rules, review runs and findings.

    Implementations must be safe to call concurrently from the background
    review threads and from pollers.
    """

    # ------------------------------------------------------------------ #
    # Repositories                                                         #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def add_repository(self, record: RepositoryRecord) -> RepositoryRecord:
        """Insert a repository and return it with its assigned id."""

    @abstractmethod
    def get_repository(self, repository_id: int) -> RepositoryRecord | None:
        """Return the repository or None if it does not exist."""

    @abstractmethod
    def list_repositories(self, active_only: bool = True) -> list[RepositoryRecord]:
        """Return repositories ordered by id."""

    @abstractmethod
    def update_repository(self, record: RepositoryRecord) -> RepositoryRecord:
        """Replace a stored repository. Raises RecordNotFound if absent."""

    # ------------------------------------------------------------------ #
    # Exclusion rules                                                      #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def add_exclusion(self, rule: ExclusionRule) -> ExclusionRule:
        """Insert an exclusion rule and return it with its assigned id."""

    @abstractmethod
    def list_active_exclusions(self, repository_id: int) -> list[ExclusionRule]:
        """Return active rules for a repository ordered by type, then path."""

    @abstractmethod
    def deactivate_exclusion(self, exclusion_id: int) -> None:
        """Mark a rule inactive. Raises RecordNotFound if absent."""

    # ------------------------------------------------------------------ #
    # Review runs                                                          #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def create_run_if_idle(self, run: ReviewRun) -> ReviewRun | None:
        """Atomically insert ``run`` unless its repository already has an active run.

        A run is active while PENDING or RUNNING. Returns the stored run with
        its id, or None when an active run already exists.
        """

    @abstractmethod
    def get_run(self, run_id: int) -> ReviewRun | None:
        """Return the run or None if it does not exist."""

    @abstractmethod
    def save_run(self, run: ReviewRun) -> ReviewRun:
        """Replace the stored run with ``run``. Raises RecordNotFound if absent."""

    @abstractmethod
    def list_runs(self, repository_id: int | None = None, offset: int = 0, limit: int | None = None) -> list[ReviewRun]:
        """Return runs newest first, optionally restricted to one repository."""

    @abstractmethod
    def count_runs(self, repository_id: int | None = None) -> int:
        """Return the number of runs, optionally restricted to one repository."""

    def latest_run(self, repository_id: int) -> ReviewRun | None:
        runs = self.list_runs(repository_id, limit=1)
        return runs[0] if runs else None

    # ------------------------------------------------------------------ #
    # Findings                                                             #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def add_findings(self, findings: list[Finding]) -> list[Finding]:
        """Persist findings in the given order and return them with ids."""

    @abstractmethod
    def list_findings(
        self,
        run_id: int,
        offset: int = 0,
        limit: int | None = None,
        sort_by: str = "file_path",
        descending: bool = False,
    ) -> list[Finding]:
        """Return findings of a run.

        Ties on ``sort_by`` fall back to file path, line and insertion order so
        that pages are stable.
        """

    @abstractmethod
    def count_findings(self, run_id: int) -> int:
        """Return the number of findings recorded for a run."""

    @abstractmethod
    def iter_repository_findings(self, repository_id: int) -> Iterator[Finding]:
        """Yield the findings of every run of a repository."""

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """


def check_sort_key(sort_by: str) -> str:
    if sort_by not in FINDING_SORT_KEYS:
        raise ValueError(f"Cannot sort findings by {sort_by!r}. Choose one of: {', '.join(FINDING_SORT_KEYS)}.")
    return sort_by
