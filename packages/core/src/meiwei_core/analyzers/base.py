"""Analyzer capability and shared line-scanning helpers.

An analyzer is anything with a ``name`` and an ``analyze(content, lines)``
method returning AnalysisResults in detection order. The engine holds an
ordered list of them; new rule sets are added by registering another
analyzer, not by subclassing an existing one.

Every rule here is a textual heuristic over raw lines. There is no parsing,
so several rules depend on nearby lines rather than structural scope.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from meiwei_store.models import Severity


@dataclass(frozen=True)
class AnalysisResult:
    """One rule hit inside a file. ``line`` and ``column`` are 1-based."""

    line: int
    column: int
    severity: Severity
    rule_id: str
    message: str
    suggestion: str
    snippet: str


@runtime_checkable
class Analyzer(Protocol):
    name: str

    def analyze(self, content: str, lines: list[str]) -> list[AnalysisResult]: ...


@dataclass(frozen=True)
class Rule:
    """Static description of a rule; ``message`` may contain str.format fields."""

    rule_id: str
    severity: Severity
    message: str
    suggestion: str

    def hit(self, line_number: int, column: int, line: str, **fields) -> AnalysisResult:
        return AnalysisResult(
            line=line_number,
            column=max(column, 0) + 1,
            severity=self.severity,
            rule_id=self.rule_id,
            message=self.message.format(**fields) if fields else self.message,
            suggestion=self.suggestion,
            snippet=line.strip(),
        )


def in_comment(line: str) -> bool:
    """True for lines carrying a comment; such lines are skipped by most rules."""
    stripped = line.lstrip()
    return "//" in line or stripped.startswith("/*") or stripped.startswith("*")


# Leading words that make "word (...)" a statement rather than a declaration.
_STATEMENT_KEYWORDS = frozenset(
    {
        "if", "else", "while", "for", "foreach", "switch", "catch", "using", "lock",
        "return", "new", "await", "throw", "yield", "case", "when", "fixed", "typeof",
        "nameof", "sizeof", "default", "delegate", "is", "as", "in", "out", "ref",
    }
)  # fmt: skip

_METHOD_SIGNATURE_RE = re.compile(r"^\s*(?:\[[^\]]*\]\s*)*((?:[\w<>\[\],.?]+\s+)+)(\w+)\s*\([^()]*\)\s*(?:\{.*)?$")

PER_FRAME_METHODS = frozenset({"Update", "FixedUpdate", "LateUpdate"})


def method_signature_name(line: str) -> str | None:
    """Return the method name if ``line`` looks like a method declaration, else None."""
    match = _METHOD_SIGNATURE_RE.match(line)
    if match is None:
        return None
    words = match.group(1).split()
    name = match.group(2)
    if name in _STATEMENT_KEYWORDS or any(w in _STATEMENT_KEYWORDS for w in words):
        return None
    return name


def is_in_per_frame_method(lines: list[str], index: int) -> bool:
    """Scan upward from ``index``: the first method signature found decides."""
    for i in range(index, -1, -1):
        name = method_signature_name(lines[i])
        if name is not None:
            return name in PER_FRAME_METHODS
    return False
