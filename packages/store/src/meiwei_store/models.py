"""Review data models.

Every record is a frozen dataclass. Mutation goes through the pure helpers at
the bottom of this module, which return a new value; the caller then writes it
back with ``BaseStore.save_run``. No two code paths ever share a half-updated
record.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExclusionType(str, Enum):
    FILE = "FILE"
    DIRECTORY = "DIRECTORY"
    PATTERN = "PATTERN"
    EXTENSION = "EXTENSION"


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    # Declared for completeness; nothing transitions into it.
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (ReviewStatus.COMPLETED, ReviewStatus.FAILED, ReviewStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        return self in (ReviewStatus.PENDING, ReviewStatus.RUNNING)


class Severity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2, Severity.CRITICAL: 3}


@dataclass(frozen=True)
class RepositoryRecord:
    """A remote repository registered for review."""

    name: str
    clone_url: str
    branch: str = "main"
    description: str | None = None
    active: bool = True
    id: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ExclusionRule:
    """A repository-scoped rule that removes files from a review.

    ``path`` holds the file path, directory prefix or bare extension depending
    on ``type``; ``pattern`` is only consulted for PATTERN rules.
    """

    repository_id: int
    type: ExclusionType
    path: str
    pattern: str | None = None
    description: str | None = None
    active: bool = True
    id: int | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ReviewRun:
    """One review attempt against a repository."""

    repository_id: int
    status: ReviewStatus = ReviewStatus.PENDING
    id: int | None = None
    commit_hash: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    total_files: int | None = None
    reviewed_files: int | None = None
    total_issues: int | None = None
    current_file: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class Finding:
    """A single issue detected in one file by one analyzer rule."""

    run_id: int
    file_path: str
    severity: Severity
    message: str
    line: int | None = None
    column: int | None = None
    rule_id: str | None = None
    suggestion: str | None = None
    code_snippet: str | None = None
    id: int | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Page(Generic[T]):
    """One page of a sorted listing. ``page`` is zero-based."""

    items: list[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 0


# --------------------------------------------------------------------------- #
# Run transitions                                                              #
# --------------------------------------------------------------------------- #

_ALLOWED_TRANSITIONS = {
    ReviewStatus.PENDING: {ReviewStatus.RUNNING, ReviewStatus.FAILED},
    ReviewStatus.RUNNING: {ReviewStatus.COMPLETED, ReviewStatus.FAILED},
}


def _transition(run: ReviewRun, target: ReviewStatus, **changes) -> ReviewRun:
    if target not in _ALLOWED_TRANSITIONS.get(run.status, set()):
        raise ValueError(f"Illegal run transition {run.status.value} -> {target.value} (run {run.id})")
    return replace(run, status=target, **changes)


def mark_running(run: ReviewRun) -> ReviewRun:
    return _transition(run, ReviewStatus.RUNNING)


def with_checkout(run: ReviewRun, commit_hash: str, total_files: int) -> ReviewRun:
    """Record the synchronized commit and the number of files about to be analysed."""
    return replace(run, commit_hash=commit_hash, total_files=total_files, reviewed_files=0, total_issues=0)


def with_progress(run: ReviewRun, reviewed_files: int, total_issues: int, current_file: str | None = None) -> ReviewRun:
    if run.total_files is not None and reviewed_files > run.total_files:
        raise ValueError(f"reviewed_files={reviewed_files} exceeds total_files={run.total_files}")
    return replace(run, reviewed_files=reviewed_files, total_issues=total_issues, current_file=current_file)


def mark_completed(
    run: ReviewRun, reviewed_files: int, total_issues: int, completed_at: datetime | None = None
) -> ReviewRun:
    return _transition(
        run,
        ReviewStatus.COMPLETED,
        reviewed_files=reviewed_files,
        total_issues=total_issues,
        current_file=None,
        completed_at=completed_at or utcnow(),
    )


def mark_failed(run: ReviewRun, error_message: str, completed_at: datetime | None = None) -> ReviewRun:
    return _transition(
        run,
        ReviewStatus.FAILED,
        error_message=error_message,
        current_file=None,
        completed_at=completed_at or utcnow(),
    )
