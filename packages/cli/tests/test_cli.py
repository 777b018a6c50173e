"""Tests for the CLI entry point."""

from __future__ import annotations

from datetime import datetime, timezone

import click
import pytest
from click.testing import CliRunner
from rich.console import Console

from meiwei_cli.cli import _build_store, main
from meiwei_core.aggregator import FileStatistic, IssueStatistic, SummaryView
from meiwei_core.errors import ConflictError, NotFoundError
from meiwei_core.orchestrator import ProgressView, ReviewOrchestrator, RunHistoryView
from meiwei_store.memory import InMemoryStore
from meiwei_store.models import ExclusionType, Finding, Page, RepositoryRecord, ReviewStatus, Severity
from meiwei_store.sqlite import SQLiteStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _view(status=ReviewStatus.RUNNING, percent=50, error=None):
    return ProgressView(
        run_id=7,
        status=status,
        percent=percent,
        current_file="Assets/Player.cs" if status == ReviewStatus.RUNNING else None,
        processed_files=percent // 10,
        total_files=10,
        found_issues=3,
        elapsed_seconds=12,
        eta_seconds=12 if status == ReviewStatus.RUNNING else None,
        error_message=error,
    )


def _summary():
    return SummaryView(
        run_id=7,
        total_findings=3,
        severity_counts={Severity.ERROR: 1, Severity.INFO: 2},
        files=[FileStatistic("Assets/Player.cs", 3, Severity.ERROR)],
        top_issues=[IssueStatistic("PERF_FIND_IN_UPDATE", "GameObject.Find() in Update", 4)],
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def orchestrator(mocker):
    return mocker.MagicMock(spec=ReviewOrchestrator)


@pytest.fixture
def invoke(mocker, store, orchestrator, tmp_path):
    """Run the CLI against an in-memory store and a mocked orchestrator."""
    for module in ("exclude", "history", "progress", "repo", "results", "review", "stats"):
        mocker.patch(f"meiwei_cli.commands.{module}.console", Console(width=200))
    mocker.patch("meiwei_cli.cli._build_store", return_value=store)
    build_orchestrator = mocker.patch("meiwei_cli.cli._build_orchestrator", return_value=orchestrator)

    def _invoke(*args):
        result = CliRunner().invoke(main, ["--config", str(tmp_path / "missing.yml"), *args])
        result.build_orchestrator = build_orchestrator
        return result

    return _invoke


class TestBuildStore:
    def test_memory(self):
        assert isinstance(_build_store({"store": "memory"}), InMemoryStore)

    def test_sqlite(self, tmp_path):
        store = _build_store({"store": "sqlite", "store_path": str(tmp_path / "x.db")})
        assert isinstance(store, SQLiteStore)
        assert (tmp_path / "x.db").exists()

    def test_unknown_store_rejected(self):
        with pytest.raises(click.UsageError, match="Unknown store type"):
            _build_store({"store": "gist"})


class TestConfigHandling:
    def test_invalid_config_file_is_a_usage_error(self, tmp_path, mocker):
        mocker.patch("meiwei_cli.cli._build_store", return_value=InMemoryStore())
        cfg = tmp_path / ".meiwei.yml"
        cfg.write_text("- not a mapping\n")
        result = CliRunner().invoke(main, ["--config", str(cfg), "repo", "list"])
        assert result.exit_code != 0
        assert "YAML mapping" in result.output


class TestRepoCommands:
    def test_add_then_list(self, invoke, store):
        result = invoke("repo", "add", "game-client", "https://git.example.com/game-client.git", "--branch", "develop")
        assert result.exit_code == 0, result.output
        assert "Registered repository 1" in result.output

        (record,) = store.list_repositories()
        assert record.branch == "develop"

        listing = invoke("repo", "list")
        assert "game-client" in listing.output
        assert "develop" in listing.output

    def test_list_empty(self, invoke):
        assert "No repositories registered" in invoke("repo", "list").output

    def test_update_branch_and_retire(self, invoke, store):
        repo = store.add_repository(RepositoryRecord(name="game-client", clone_url="u"))

        result = invoke("repo", "update", str(repo.id), "--branch", "release", "--inactive")

        assert result.exit_code == 0, result.output
        assert "Updated repository" in result.output
        stored = store.get_repository(repo.id)
        assert (stored.branch, stored.active) == ("release", False)
        assert stored.updated_at >= repo.updated_at
        assert store.list_repositories() == []
        assert "game-client" in invoke("repo", "list", "--all").output

    def test_update_unknown_repository_fails(self, invoke):
        result = invoke("repo", "update", "42", "--branch", "release")
        assert result.exit_code != 0
        assert "Repository 42 not found" in result.output

    def test_update_without_changes_is_a_usage_error(self, invoke, store):
        repo = store.add_repository(RepositoryRecord(name="game-client", clone_url="u"))
        result = invoke("repo", "update", str(repo.id))
        assert result.exit_code == 2
        assert "Nothing to update" in result.output

    def test_repo_commands_do_not_build_orchestrator(self, invoke):
        result = invoke("repo", "list")
        result.build_orchestrator.assert_not_called()


class TestExcludeCommands:
    def test_add_to_unknown_repository_fails(self, invoke):
        result = invoke("exclude", "add", "42", "FILE", "Assets/A.cs")
        assert result.exit_code != 0
        assert "Repository 42 not found" in result.output

    def test_pattern_defaults_to_path(self, invoke, store):
        repo = store.add_repository(RepositoryRecord(name="r", clone_url="u"))
        result = invoke("exclude", "add", str(repo.id), "pattern", "Assets/*.g.cs")
        assert result.exit_code == 0, result.output

        (rule,) = store.list_active_exclusions(repo.id)
        assert rule.type is ExclusionType.PATTERN
        assert rule.pattern == "Assets/*.g.cs"

    def test_list_and_remove(self, invoke, store):
        repo = store.add_repository(RepositoryRecord(name="r", clone_url="u"))
        invoke("exclude", "add", str(repo.id), "DIRECTORY", "Assets/Generated")
        assert "Assets/Generated" in invoke("exclude", "list", str(repo.id)).output

        (rule,) = store.list_active_exclusions(repo.id)
        assert invoke("exclude", "remove", str(rule.id)).exit_code == 0
        assert store.list_active_exclusions(repo.id) == []

    def test_remove_unknown_rule_fails(self, invoke):
        assert invoke("exclude", "remove", "99").exit_code != 0

    def test_invalid_type_rejected(self, invoke):
        assert invoke("exclude", "add", "1", "GLOB", "x").exit_code != 0


class TestReviewCommand:
    def test_no_wait_prints_run_id_only(self, invoke, orchestrator):
        orchestrator.start_review.return_value = 7

        result = invoke("review", "3", "--no-wait", "--force-pull")

        assert result.exit_code == 0, result.output
        assert "Started review run 7" in result.output
        orchestrator.start_review.assert_called_once_with(3, force_pull=True)
        orchestrator.get_progress.assert_not_called()

    def test_follows_progress_then_prints_summary(self, invoke, orchestrator, mocker):
        mocker.patch("meiwei_cli.commands.review.time.sleep")
        orchestrator.start_review.return_value = 7
        orchestrator.get_progress.side_effect = [
            _view(ReviewStatus.PENDING, 0),
            _view(ReviewStatus.RUNNING, 50),
            _view(ReviewStatus.COMPLETED, 100),
        ]
        orchestrator.get_summary.return_value = _summary()

        result = invoke("review", "3")

        assert result.exit_code == 0, result.output
        assert orchestrator.get_progress.call_count == 3
        assert "Review run 7 completed" in result.output
        assert "PERF_FIND_IN_UPDATE" in result.output
        assert "Assets/Player.cs" in result.output

    def test_failed_run_exits_non_zero(self, invoke, orchestrator, mocker):
        mocker.patch("meiwei_cli.commands.review.time.sleep")
        orchestrator.start_review.return_value = 7
        orchestrator.get_progress.return_value = _view(ReviewStatus.FAILED, 30, error="git clone failed: denied")

        result = invoke("review", "3")

        assert result.exit_code != 0
        assert "git clone failed: denied" in result.output
        orchestrator.get_summary.assert_not_called()

    def test_conflict_is_reported(self, invoke, orchestrator):
        orchestrator.start_review.side_effect = ConflictError("Repository 'r' already has an active review (run 5).")
        result = invoke("review", "3")
        assert result.exit_code != 0
        assert "already has an active review" in result.output

    def test_unknown_repository_is_reported(self, invoke, orchestrator):
        orchestrator.start_review.side_effect = NotFoundError("Repository 3 not found")
        result = invoke("review", "3")
        assert result.exit_code != 0
        assert "Repository 3 not found" in result.output

    def test_orchestrator_is_shut_down_on_exit(self, invoke, orchestrator):
        orchestrator.start_review.return_value = 7
        invoke("review", "3", "--no-wait")
        orchestrator.shutdown.assert_called_once()


class TestReadCommands:
    def test_progress(self, invoke, orchestrator):
        orchestrator.get_progress.return_value = _view(ReviewStatus.RUNNING, 50)
        result = invoke("progress", "7")
        assert result.exit_code == 0, result.output
        assert "RUNNING" in result.output
        assert "50%" in result.output
        assert "5/10" in result.output
        assert "Assets/Player.cs" in result.output

    def test_progress_unknown_run(self, invoke, orchestrator):
        orchestrator.get_progress.side_effect = NotFoundError("Review run 7 not found")
        result = invoke("progress", "7")
        assert result.exit_code != 0
        assert "Review run 7 not found" in result.output

    def test_results_converts_page_and_sort(self, invoke, orchestrator):
        finding = Finding(
            run_id=7,
            file_path="Assets/Ui.cs",
            severity=Severity.WARNING,
            message="concat",
            line=4,
            rule_id="PERF_STRING_CONCAT",
        )
        orchestrator.get_results.return_value = Page(items=[finding], total=21, page=1, page_size=20)

        result = invoke("results", "7", "--page", "2", "--sort-by", "severity", "--desc")

        assert result.exit_code == 0, result.output
        orchestrator.get_results.assert_called_once_with(7, page=1, page_size=20, sort_by="severity", sort_dir="desc")
        assert "Assets/Ui.cs" in result.output
        assert "PERF_STRING_CONCAT" in result.output

    def test_results_rejects_unknown_sort_key(self, invoke):
        assert invoke("results", "7", "--sort-by", "message").exit_code != 0

    def test_history(self, invoke, orchestrator):
        view = RunHistoryView(
            run_id=7,
            repository_id=3,
            repository_name="game-client",
            status=ReviewStatus.COMPLETED,
            commit_hash="0123456789abcdef",
            started_at=T0,
            completed_at=T0,
            total_files=10,
            total_issues=3,
            error_message=None,
            duration_minutes=2,
        )
        orchestrator.get_histories.return_value = Page(items=[view], total=1, page=0, page_size=20)

        result = invoke("history")

        assert result.exit_code == 0, result.output
        orchestrator.get_histories.assert_called_once_with(None, page=0, page_size=20)
        orchestrator.repository_statistics.assert_not_called()
        assert "game-client" in result.output
        assert "0123456" in result.output

    def test_history_empty(self, invoke, orchestrator):
        orchestrator.get_histories.return_value = Page(items=[], total=0, page=0, page_size=20)
        assert "No review runs found" in invoke("history").output

    def test_stats(self, invoke, orchestrator):
        orchestrator.get_summary.return_value = _summary()
        result = invoke("stats", "7", "--top", "5")
        assert result.exit_code == 0, result.output
        assert "Severity Breakdown" in result.output
        assert "Assets/Player.cs" in result.output
        assert "PERF_FIND_IN_UPDATE" in result.output
