"""SQLiteStore: a local file-based store shared by the CLI, workers and pollers.

Schema mirrors the four review entities:
  repositories       — registered remote repositories
  review_exclusions  — per-repository exclusion rules
  review_runs        — one row per review attempt, the persisted progress record
  findings           — one row per detected issue, owned by a run

A fresh connection is opened for every operation. Background review threads
write progress while pollers read it, and a sqlite3 connection must not be
shared across threads. WAL journaling keeps those reads from blocking writers.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator

from meiwei_store.base import BaseStore, RecordNotFound, check_sort_key
from meiwei_store.models import (
    ExclusionRule,
    ExclusionType,
    Finding,
    RepositoryRecord,
    ReviewRun,
    ReviewStatus,
    Severity,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS repositories (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    clone_url    TEXT NOT NULL,
    branch_name  TEXT NOT NULL DEFAULT 'main',
    description  TEXT,
    is_active    INTEGER NOT NULL DEFAULT 1,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS review_exclusions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id   INTEGER NOT NULL REFERENCES repositories (id),
    exclusion_type  TEXT NOT NULL,
    path            TEXT NOT NULL,
    pattern         TEXT,
    description     TEXT,
    is_active       INTEGER NOT NULL DEFAULT 1,
    created_at      TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS review_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id   INTEGER NOT NULL REFERENCES repositories (id),
    commit_hash     TEXT,
    status          TEXT NOT NULL,
    started_at      TEXT NOT NULL,
    completed_at    TEXT,
    total_files     INTEGER,
    reviewed_files  INTEGER,
    total_issues    INTEGER,
    current_file    TEXT,
    error_message   TEXT
);
CREATE TABLE IF NOT EXISTS findings (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id         INTEGER NOT NULL REFERENCES review_runs (id),
    file_path      TEXT NOT NULL,
    line_number    INTEGER,
    column_number  INTEGER,
    severity       TEXT NOT NULL,
    rule_id        TEXT,
    message        TEXT NOT NULL,
    suggestion     TEXT,
    code_snippet   TEXT,
    created_at     TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_exclusions_repo ON review_exclusions (repository_id, is_active);
CREATE INDEX IF NOT EXISTS idx_runs_repo ON review_runs (repository_id, started_at);
CREATE UNIQUE INDEX IF NOT EXISTS idx_runs_one_active
    ON review_runs (repository_id) WHERE status IN ('PENDING', 'RUNNING');
CREATE INDEX IF NOT EXISTS idx_findings_run ON findings (run_id, file_path, line_number);
"""

_FINDING_ORDER_COLUMNS = {
    "file_path": "file_path",
    "line": "line_number",
    "severity": "CASE severity WHEN 'INFO' THEN 0 WHEN 'WARNING' THEN 1 WHEN 'ERROR' THEN 2 ELSE 3 END",
    "rule_id": "rule_id",
    "created_at": "created_at",
}


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteStore(BaseStore):
    """Stores review data in a local SQLite database file.

    The database file path defaults to `.meiwei.db` in the current working
    directory. Configure via .meiwei.yml: `store_path: /path/to/meiwei.db`.
    """

    def __init__(self, db_path: str = ".meiwei.db"):
        if db_path == ":memory:":
            raise ValueError("SQLiteStore needs a file path; use InMemoryStore for throwaway data.")
        self._db_path = db_path
        conn = self._open()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        finally:
            conn.close()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """Run the body inside one IMMEDIATE transaction (takes the write lock up front)."""
        conn = self._open()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    # ------------------------------------------------------------------ #
    # Repositories                                                         #
    # ------------------------------------------------------------------ #

    def add_repository(self, record: RepositoryRecord) -> RepositoryRecord:
        with self._write() as conn:
            cur = conn.execute(
                """
                INSERT INTO repositories
                  (name, clone_url, branch_name, description, is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.name,
                    record.clone_url,
                    record.branch,
                    record.description,
                    int(record.active),
                    _ts(record.created_at),
                    _ts(record.updated_at),
                ),
            )
        return replace(record, id=cur.lastrowid)

    def get_repository(self, repository_id: int) -> RepositoryRecord | None:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM repositories WHERE id=?", (repository_id,)).fetchone()
        return self._row_to_repository(row) if row else None

    def list_repositories(self, active_only: bool = True) -> list[RepositoryRecord]:
        sql = "SELECT * FROM repositories"
        if active_only:
            sql += " WHERE is_active=1"
        with self._read() as conn:
            rows = conn.execute(sql + " ORDER BY id").fetchall()
        return [self._row_to_repository(r) for r in rows]

    def update_repository(self, record: RepositoryRecord) -> RepositoryRecord:
        with self._write() as conn:
            cur = conn.execute(
                """
                UPDATE repositories
                   SET name=?, clone_url=?, branch_name=?, description=?, is_active=?, updated_at=?
                 WHERE id=?
                """,
                (
                    record.name,
                    record.clone_url,
                    record.branch,
                    record.description,
                    int(record.active),
                    _ts(record.updated_at),
                    record.id,
                ),
            )
            if cur.rowcount == 0:
                raise RecordNotFound(f"Repository {record.id} does not exist")
        return record

    # ------------------------------------------------------------------ #
    # Exclusion rules                                                      #
    # ------------------------------------------------------------------ #

    def add_exclusion(self, rule: ExclusionRule) -> ExclusionRule:
        with self._write() as conn:
            cur = conn.execute(
                """
                INSERT INTO review_exclusions
                  (repository_id, exclusion_type, path, pattern, description, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule.repository_id,
                    rule.type.value,
                    rule.path,
                    rule.pattern,
                    rule.description,
                    int(rule.active),
                    _ts(rule.created_at),
                ),
            )
        return replace(rule, id=cur.lastrowid)

    def list_active_exclusions(self, repository_id: int) -> list[ExclusionRule]:
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT * FROM review_exclusions
                 WHERE repository_id=? AND is_active=1
                 ORDER BY exclusion_type, path
                """,
                (repository_id,),
            ).fetchall()
        return [self._row_to_exclusion(r) for r in rows]

    def deactivate_exclusion(self, exclusion_id: int) -> None:
        with self._write() as conn:
            cur = conn.execute("UPDATE review_exclusions SET is_active=0 WHERE id=?", (exclusion_id,))
            if cur.rowcount == 0:
                raise RecordNotFound(f"Exclusion rule {exclusion_id} does not exist")

    # ------------------------------------------------------------------ #
    # Review runs                                                          #
    # ------------------------------------------------------------------ #

    def create_run_if_idle(self, run: ReviewRun) -> ReviewRun | None:
        with self._write() as conn:
            active = conn.execute(
                "SELECT id FROM review_runs WHERE repository_id=? AND status IN ('PENDING', 'RUNNING') LIMIT 1",
                (run.repository_id,),
            ).fetchone()
            if active is not None:
                logger.debug("Repository %s already has active run %s", run.repository_id, active["id"])
                return None
            cur = conn.execute(
                """
                INSERT INTO review_runs
                  (repository_id, commit_hash, status, started_at, completed_at, total_files,
                   reviewed_files, total_issues, current_file, error_message)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._run_values(run),
            )
        return replace(run, id=cur.lastrowid)

    def get_run(self, run_id: int) -> ReviewRun | None:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM review_runs WHERE id=?", (run_id,)).fetchone()
        return self._row_to_run(row) if row else None

    def save_run(self, run: ReviewRun) -> ReviewRun:
        with self._write() as conn:
            cur = conn.execute(
                """
                UPDATE review_runs
                   SET repository_id=?, commit_hash=?, status=?, started_at=?, completed_at=?, total_files=?,
                       reviewed_files=?, total_issues=?, current_file=?, error_message=?
                 WHERE id=?
                """,
                (*self._run_values(run), run.id),
            )
            if cur.rowcount == 0:
                raise RecordNotFound(f"Review run {run.id} does not exist")
        return run

    def list_runs(self, repository_id: int | None = None, offset: int = 0, limit: int | None = None) -> list[ReviewRun]:
        sql = "SELECT * FROM review_runs"
        params: list = []
        if repository_id is not None:
            sql += " WHERE repository_id=?"
            params.append(repository_id)
        sql += " ORDER BY started_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit if limit is not None else -1, offset])
        with self._read() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_run(r) for r in rows]

    def count_runs(self, repository_id: int | None = None) -> int:
        with self._read() as conn:
            if repository_id is None:
                row = conn.execute("SELECT COUNT(*) FROM review_runs").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM review_runs WHERE repository_id=?", (repository_id,)
                ).fetchone()
        return row[0]

    # ------------------------------------------------------------------ #
    # Findings                                                             #
    # ------------------------------------------------------------------ #

    def add_findings(self, findings: list[Finding]) -> list[Finding]:
        if not findings:
            return []
        stored = []
        with self._write() as conn:
            for f in findings:
                cur = conn.execute(
                    """
                    INSERT INTO findings
                      (run_id, file_path, line_number, column_number, severity, rule_id,
                       message, suggestion, code_snippet, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        f.run_id,
                        f.file_path,
                        f.line,
                        f.column,
                        f.severity.value,
                        f.rule_id,
                        f.message,
                        f.suggestion,
                        f.code_snippet,
                        _ts(f.created_at),
                    ),
                )
                stored.append(replace(f, id=cur.lastrowid))
        return stored

    def list_findings(
        self,
        run_id: int,
        offset: int = 0,
        limit: int | None = None,
        sort_by: str = "file_path",
        descending: bool = False,
    ) -> list[Finding]:
        order = _FINDING_ORDER_COLUMNS[check_sort_key(sort_by)]
        direction = "DESC" if descending else "ASC"
        sql = (
            f"SELECT * FROM findings WHERE run_id=? "
            f"ORDER BY {order} {direction}, file_path ASC, line_number ASC, id ASC LIMIT ? OFFSET ?"
        )
        with self._read() as conn:
            rows = conn.execute(sql, (run_id, limit if limit is not None else -1, offset)).fetchall()
        return [self._row_to_finding(r) for r in rows]

    def count_findings(self, run_id: int) -> int:
        with self._read() as conn:
            row = conn.execute("SELECT COUNT(*) FROM findings WHERE run_id=?", (run_id,)).fetchone()
        return row[0]

    def iter_repository_findings(self, repository_id: int) -> Iterator[Finding]:
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT f.* FROM findings f
                  JOIN review_runs r ON r.id = f.run_id
                 WHERE r.repository_id=?
                 ORDER BY f.id
                """,
                (repository_id,),
            ).fetchall()
        for row in rows:
            yield self._row_to_finding(row)

    # ------------------------------------------------------------------ #
    # Row mapping                                                          #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _run_values(run: ReviewRun) -> tuple:
        return (
            run.repository_id,
            run.commit_hash,
            run.status.value,
            _ts(run.started_at),
            _ts(run.completed_at),
            run.total_files,
            run.reviewed_files,
            run.total_issues,
            run.current_file,
            run.error_message,
        )

    @staticmethod
    def _row_to_repository(row: sqlite3.Row) -> RepositoryRecord:
        return RepositoryRecord(
            id=row["id"],
            name=row["name"],
            clone_url=row["clone_url"],
            branch=row["branch_name"],
            description=row["description"],
            active=bool(row["is_active"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_exclusion(row: sqlite3.Row) -> ExclusionRule:
        return ExclusionRule(
            id=row["id"],
            repository_id=row["repository_id"],
            type=ExclusionType(row["exclusion_type"]),
            path=row["path"],
            pattern=row["pattern"],
            description=row["description"],
            active=bool(row["is_active"]),
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_run(row: sqlite3.Row) -> ReviewRun:
        return ReviewRun(
            id=row["id"],
            repository_id=row["repository_id"],
            commit_hash=row["commit_hash"],
            status=ReviewStatus(row["status"]),
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
            total_files=row["total_files"],
            reviewed_files=row["reviewed_files"],
            total_issues=row["total_issues"],
            current_file=row["current_file"],
            error_message=row["error_message"],
        )

    @staticmethod
    def _row_to_finding(row: sqlite3.Row) -> Finding:
        return Finding(
            id=row["id"],
            run_id=row["run_id"],
            file_path=row["file_path"],
            line=row["line_number"],
            column=row["column_number"],
            severity=Severity(row["severity"]),
            rule_id=row["rule_id"],
            message=row["message"],
            suggestion=row["suggestion"],
            code_snippet=row["code_snippet"],
            created_at=_parse_ts(row["created_at"]),
        )
