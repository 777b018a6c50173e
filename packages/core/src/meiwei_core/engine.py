"""Analysis engine: runs the registered analyzers over discovered source files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from meiwei_core.analyzers.base import AnalysisResult, Analyzer
from meiwei_core.analyzers.quality import QualityAnalyzer
from meiwei_core.analyzers.unity import UnityAnalyzer
from meiwei_store.models import Finding, ReviewRun, with_progress

if TYPE_CHECKING:
    from meiwei_core.git.sync import SourceFile
    from meiwei_store.base import BaseStore

logger = logging.getLogger(__name__)


def default_analyzers() -> list[Analyzer]:
    return [QualityAnalyzer(), UnityAnalyzer()]


@dataclass
class EngineTotals:
    reviewed_files: int = 0
    total_issues: int = 0


class AnalysisEngine:
    """Holds an ordered analyzer registry and applies it file by file."""

    def __init__(self, analyzers: Optional[Iterable[Analyzer]] = None):
        self._analyzers: list[Analyzer] = list(analyzers) if analyzers is not None else default_analyzers()

    @property
    def analyzers(self) -> list[Analyzer]:
        return list(self._analyzers)

    def register(self, analyzer: Analyzer) -> None:
        if not isinstance(analyzer, Analyzer):
            raise TypeError(f"{analyzer!r} does not provide name and analyze(content, lines)")
        self._analyzers.append(analyzer)

    def analyze_text(self, content: str) -> list[AnalysisResult]:
        """Run every analyzer in registry order and concatenate their results."""
        lines = content.splitlines()
        results: list[AnalysisResult] = []
        for analyzer in self._analyzers:
            results.extend(analyzer.analyze(content, lines))
        return results

    def analyze_files(self, run: ReviewRun, files: list[SourceFile], store: BaseStore) -> EngineTotals:
        """Analyse ``files`` for ``run``, persisting findings and progress after each file.

        A file that cannot be read or analysed is logged and counted as reviewed
        with no findings. Returns the final counters.
        """
        totals = EngineTotals(reviewed_files=run.reviewed_files or 0, total_issues=run.total_issues or 0)

        for source in files:
            findings = self._analyze_file(run.id, source)
            if findings:
                store.add_findings(findings)

            totals.reviewed_files += 1
            totals.total_issues += len(findings)
            run = store.save_run(with_progress(run, totals.reviewed_files, totals.total_issues, source.relative_path))

            logger.debug(
                "Run %s: %s -> %d finding(s) [%d/%s]",
                run.id,
                source.relative_path,
                len(findings),
                totals.reviewed_files,
                run.total_files,
            )

        return totals

    def _analyze_file(self, run_id: int, source: SourceFile) -> list[Finding]:
        try:
            content = source.path.read_text(encoding="utf-8-sig", errors="replace")
            results = self.analyze_text(content)
        except Exception as e:
            logger.warning("Analysis failed for %s; recording no findings: %s", source.relative_path, e)
            return []

        return [
            Finding(
                run_id=run_id,
                file_path=source.relative_path,
                severity=r.severity,
                message=r.message,
                line=r.line,
                column=r.column,
                rule_id=r.rule_id,
                suggestion=r.suggestion,
                code_snippet=r.snippet,
            )
            for r in results
        ]
