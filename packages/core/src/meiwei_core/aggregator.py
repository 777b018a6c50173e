"""Result aggregation over persisted findings."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from meiwei_store.models import Severity

if TYPE_CHECKING:
    from meiwei_store.base import BaseStore


@dataclass
class FileStatistic:
    file_path: str
    count: int
    max_severity: Severity


@dataclass
class IssueStatistic:
    rule_id: str
    message: str
    count: int


@dataclass
class SummaryView:
    run_id: int
    total_findings: int
    severity_counts: dict[Severity, int]
    files: list[FileStatistic]
    top_issues: list[IssueStatistic] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)


def summarize(store: BaseStore, run_id: int) -> SummaryView:
    """Group a run's findings by severity and by file in one pass.

    Files are ordered by finding count descending, then path.
    """
    severity_counts: Counter[Severity] = Counter()
    file_counts: Counter[str] = Counter()
    file_max: dict[str, Severity] = {}

    for finding in store.list_findings(run_id):
        severity_counts[finding.severity] += 1
        file_counts[finding.file_path] += 1
        current = file_max.get(finding.file_path)
        if current is None or finding.severity.rank > current.rank:
            file_max[finding.file_path] = finding.severity

    files = [
        FileStatistic(file_path=path, count=count, max_severity=file_max[path])
        for path, count in sorted(file_counts.items(), key=lambda item: (-item[1], item[0]))
    ]
    return SummaryView(
        run_id=run_id,
        total_findings=sum(severity_counts.values()),
        severity_counts=dict(severity_counts),
        files=files,
    )


def top_issues(store: BaseStore, repository_id: int, limit: int = 10) -> list[IssueStatistic]:
    """Most frequent (rule_id, message) pairs across every run of a repository.

    Findings without a rule id are not counted.
    """
    counts: Counter[tuple[str, str]] = Counter()
    for finding in store.iter_repository_findings(repository_id):
        if finding.rule_id:
            counts[(finding.rule_id, finding.message)] += 1

    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0][0], item[0][1]))
    return [
        IssueStatistic(rule_id=rule_id, message=message, count=count) for (rule_id, message), count in ranked[:limit]
    ]
