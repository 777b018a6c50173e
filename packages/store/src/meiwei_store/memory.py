"""In-memory store. Process-local; nothing survives a restart.

Same contract as SQLiteStore, guarded by a single lock. Useful for tests and
one-shot reviews where history is not wanted.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from typing import Iterator

from meiwei_store.base import BaseStore, RecordNotFound, check_sort_key
from meiwei_store.models import ExclusionRule, Finding, RepositoryRecord, ReviewRun


def _nulls_first(value):
    return (0, "") if value is None else (1, value)


def _finding_sort_value(finding: Finding, sort_by: str):
    if sort_by == "severity":
        return finding.severity.rank
    if sort_by == "line":
        return _nulls_first(finding.line)
    if sort_by == "rule_id":
        return _nulls_first(finding.rule_id)
    return getattr(finding, sort_by)


class InMemoryStore(BaseStore):
    """Keeps every record in dictionaries keyed by id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._repositories: dict[int, RepositoryRecord] = {}
        self._exclusions: dict[int, ExclusionRule] = {}
        self._runs: dict[int, ReviewRun] = {}
        self._findings: dict[int, Finding] = {}

    def add_repository(self, record: RepositoryRecord) -> RepositoryRecord:
        with self._lock:
            stored = replace(record, id=next(self._ids))
            self._repositories[stored.id] = stored
        return stored

    def get_repository(self, repository_id: int) -> RepositoryRecord | None:
        with self._lock:
            return self._repositories.get(repository_id)

    def list_repositories(self, active_only: bool = True) -> list[RepositoryRecord]:
        with self._lock:
            records = sorted(self._repositories.values(), key=lambda r: r.id)
        return [r for r in records if r.active or not active_only]

    def update_repository(self, record: RepositoryRecord) -> RepositoryRecord:
        with self._lock:
            if record.id not in self._repositories:
                raise RecordNotFound(f"Repository {record.id} does not exist")
            self._repositories[record.id] = record
        return record

    def add_exclusion(self, rule: ExclusionRule) -> ExclusionRule:
        with self._lock:
            stored = replace(rule, id=next(self._ids))
            self._exclusions[stored.id] = stored
        return stored

    def list_active_exclusions(self, repository_id: int) -> list[ExclusionRule]:
        with self._lock:
            rules = [r for r in self._exclusions.values() if r.repository_id == repository_id and r.active]
        return sorted(rules, key=lambda r: (r.type.value, r.path))

    def deactivate_exclusion(self, exclusion_id: int) -> None:
        with self._lock:
            rule = self._exclusions.get(exclusion_id)
            if rule is None:
                raise RecordNotFound(f"Exclusion rule {exclusion_id} does not exist")
            self._exclusions[exclusion_id] = replace(rule, active=False)

    def create_run_if_idle(self, run: ReviewRun) -> ReviewRun | None:
        with self._lock:
            if any(r.repository_id == run.repository_id and r.status.is_active for r in self._runs.values()):
                return None
            stored = replace(run, id=next(self._ids))
            self._runs[stored.id] = stored
        return stored

    def get_run(self, run_id: int) -> ReviewRun | None:
        with self._lock:
            return self._runs.get(run_id)

    def save_run(self, run: ReviewRun) -> ReviewRun:
        with self._lock:
            if run.id not in self._runs:
                raise RecordNotFound(f"Review run {run.id} does not exist")
            self._runs[run.id] = run
        return run

    def list_runs(self, repository_id: int | None = None, offset: int = 0, limit: int | None = None) -> list[ReviewRun]:
        with self._lock:
            runs = [r for r in self._runs.values() if repository_id is None or r.repository_id == repository_id]
        runs.sort(key=lambda r: (r.started_at, r.id), reverse=True)
        end = None if limit is None else offset + limit
        return runs[offset:end]

    def count_runs(self, repository_id: int | None = None) -> int:
        with self._lock:
            return sum(1 for r in self._runs.values() if repository_id is None or r.repository_id == repository_id)

    def add_findings(self, findings: list[Finding]) -> list[Finding]:
        stored = []
        with self._lock:
            for f in findings:
                item = replace(f, id=next(self._ids))
                self._findings[item.id] = item
                stored.append(item)
        return stored

    def list_findings(
        self,
        run_id: int,
        offset: int = 0,
        limit: int | None = None,
        sort_by: str = "file_path",
        descending: bool = False,
    ) -> list[Finding]:
        check_sort_key(sort_by)
        with self._lock:
            items = [f for f in self._findings.values() if f.run_id == run_id]
        # Two stable passes: tie-breakers ascending, then the requested key.
        items.sort(key=lambda f: (f.file_path, _nulls_first(f.line), f.id))
        items.sort(key=lambda f: _finding_sort_value(f, sort_by), reverse=descending)
        end = None if limit is None else offset + limit
        return items[offset:end]

    def count_findings(self, run_id: int) -> int:
        with self._lock:
            return sum(1 for f in self._findings.values() if f.run_id == run_id)

    def iter_repository_findings(self, repository_id: int) -> Iterator[Finding]:
        with self._lock:
            run_ids = {r.id for r in self._runs.values() if r.repository_id == repository_id}
            items = [f for f in self._findings.values() if f.run_id in run_ids]
        yield from sorted(items, key=lambda f: f.id)
