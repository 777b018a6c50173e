"""Tests for result aggregation."""

from __future__ import annotations

from meiwei_core.aggregator import summarize, top_issues
from meiwei_store.memory import InMemoryStore
from meiwei_store.models import Finding, RepositoryRecord, ReviewRun, Severity, mark_failed


def _finding(run_id, file_path, severity, rule_id="R", message="m"):
    return Finding(run_id=run_id, file_path=file_path, severity=severity, message=message, rule_id=rule_id)


def _setup():
    store = InMemoryStore()
    repo = store.add_repository(RepositoryRecord(name="r", clone_url="u"))
    run = store.create_run_if_idle(ReviewRun(repository_id=repo.id))
    return store, repo, run


class TestSummarize:
    def test_severity_and_file_grouping(self):
        store, _, run = _setup()
        store.add_findings(
            [
                _finding(run.id, "A.cs", Severity.WARNING),
                _finding(run.id, "A.cs", Severity.WARNING),
                _finding(run.id, "B.cs", Severity.WARNING),
                _finding(run.id, "B.cs", Severity.INFO),
                _finding(run.id, "A.cs", Severity.INFO),
            ]
        )

        summary = summarize(store, run.id)

        assert summary.severity_counts == {Severity.WARNING: 3, Severity.INFO: 2}
        assert summary.total_findings == 5
        assert summary.file_count == 2
        assert [(f.file_path, f.count, f.max_severity) for f in summary.files] == [
            ("A.cs", 3, Severity.WARNING),
            ("B.cs", 2, Severity.WARNING),
        ]

    def test_max_severity_uses_rank_not_name(self):
        store, _, run = _setup()
        store.add_findings([_finding(run.id, "A.cs", Severity.WARNING), _finding(run.id, "A.cs", Severity.CRITICAL)])
        (stat,) = summarize(store, run.id).files
        assert stat.max_severity == Severity.CRITICAL

    def test_files_with_equal_counts_ordered_by_path(self):
        store, _, run = _setup()
        store.add_findings([_finding(run.id, "Z.cs", Severity.INFO), _finding(run.id, "M.cs", Severity.INFO)])
        assert [f.file_path for f in summarize(store, run.id).files] == ["M.cs", "Z.cs"]

    def test_empty_run(self):
        store, _, run = _setup()
        summary = summarize(store, run.id)
        assert summary.severity_counts == {}
        assert summary.files == []
        assert summary.total_findings == 0


class TestTopIssues:
    def test_counts_across_all_runs_of_repository(self):
        store, repo, first = _setup()
        store.add_findings([_finding(first.id, "A.cs", Severity.INFO, "R1", "one")])
        store.save_run(mark_failed(first, "done"))
        second = store.create_run_if_idle(ReviewRun(repository_id=repo.id))
        store.add_findings(
            [
                _finding(second.id, "A.cs", Severity.INFO, "R1", "one"),
                _finding(second.id, "B.cs", Severity.INFO, "R2", "two"),
            ]
        )

        issues = top_issues(store, repo.id, limit=10)
        assert [(i.rule_id, i.message, i.count) for i in issues] == [("R1", "one", 2), ("R2", "two", 1)]

    def test_ties_broken_by_rule_then_message(self):
        store, repo, run = _setup()
        store.add_findings(
            [
                _finding(run.id, "A.cs", Severity.INFO, "B_RULE", "x"),
                _finding(run.id, "A.cs", Severity.INFO, "A_RULE", "z"),
                _finding(run.id, "A.cs", Severity.INFO, "A_RULE", "y"),
            ]
        )
        issues = top_issues(store, repo.id, limit=10)
        assert [(i.rule_id, i.message) for i in issues] == [("A_RULE", "y"), ("A_RULE", "z"), ("B_RULE", "x")]

    def test_limit_and_findings_without_rule(self):
        store, repo, run = _setup()
        store.add_findings(
            [
                _finding(run.id, "A.cs", Severity.INFO, None, "anonymous"),
                _finding(run.id, "A.cs", Severity.INFO, "R1", "one"),
                _finding(run.id, "A.cs", Severity.INFO, "R2", "two"),
            ]
        )
        issues = top_issues(store, repo.id, limit=1)
        assert [i.rule_id for i in issues] == ["R1"]

    def test_other_repositories_not_counted(self):
        store, repo, run = _setup()
        other = store.add_repository(RepositoryRecord(name="other", clone_url="u2"))
        other_run = store.create_run_if_idle(ReviewRun(repository_id=other.id))
        store.add_findings([_finding(other_run.id, "A.cs", Severity.INFO, "R9", "elsewhere")])
        assert top_issues(store, repo.id) == []
