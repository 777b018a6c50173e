"""General-purpose language-quality analyzer for C#-family sources.

Detectors run in a fixed order (string concatenation, declarations, bulk
collection calls, exception handling, event subscriptions) and each scans the
file top to bottom, so output order is fully determined by the text.
"""

from __future__ import annotations

import re

from meiwei_core.analyzers.base import AnalysisResult, Rule, in_comment
from meiwei_store.models import Severity

STRING_CONCAT = Rule(
    "PERF_STRING_CONCAT",
    Severity.WARNING,
    "String concatenation with + allocates a new string and adds GC pressure.",
    "Use StringBuilder, string.Format or an interpolated string ($\"\").",
)
PUBLIC_FIELD = Rule(
    "ENCAPSULATION_PUBLIC_FIELD",
    Severity.INFO,
    "Public field breaks encapsulation.",
    "Use a private field exposed through a property.",
)
MAGIC_NUMBER = Rule(
    "MAINTAINABILITY_MAGIC_NUMBER",
    Severity.INFO,
    "Magic number literal.",
    "Extract the value into a named constant or enum.",
)
LOCAL_PASCALCASE = Rule(
    "NAMING_LOCAL_PASCALCASE",
    Severity.INFO,
    "Local variable name is PascalCase.",
    "Use camelCase for local variables.",
)
LINQ_HOT_PATH = Rule(
    "PERF_LINQ_IN_HOT_PATH",
    Severity.WARNING,
    "LINQ {method}() used in a performance-critical context.",
    "Replace with a for or foreach loop over a cached collection.",
)
EMPTY_CATCH = Rule(
    "EXCEPTION_EMPTY_CATCH",
    Severity.WARNING,
    "Empty catch block swallows the exception.",
    "Log the exception or handle it explicitly.",
)
BROAD_CATCH = Rule(
    "EXCEPTION_BROAD_CATCH",
    Severity.INFO,
    "Catching the base Exception type.",
    "Catch the most specific exception type that can actually occur.",
)
EVENT_NO_UNSUBSCRIBE = Rule(
    "MEMORY_EVENT_SUBSCRIBE_NO_UNSUBSCRIBE",
    Severity.WARNING,
    "Event subscription without any matching unsubscription; this can leak the subscriber.",
    "Unsubscribe with -= when the subscriber is disabled or destroyed.",
)

_STRING_CONCAT_RE = re.compile(r'".*"\s*\+|\+\s*".*"')
_MAGIC_NUMBER_RE = re.compile(r"\b\d{2,}\b")
_LOCAL_DECL_RE = re.compile(r"\b([a-z][a-zA-Z0-9]*)\s+([A-Z][a-zA-Z0-9]*)\s*[=;]")
_BROAD_CATCH_RE = re.compile(r"catch\s*\(\s*(?:System\.)?Exception\b")
_EMPTY_BLOCK_RE = re.compile(r"\{\s*\}")

# Words that can precede a PascalCase identifier without declaring a local.
_NON_TYPE_WORDS = frozenset({"return", "new", "throw", "await", "yield", "case", "goto", "using", "else", "is", "as"})
_NON_FIELD_WORDS = ("class", "interface", "enum", "struct", "delegate", "event")

BULK_COLLECTION_METHODS = ("Where", "Select", "First", "Any", "All", "ToList", "ToArray", "OrderBy")
_HOT_PATH_MARKERS = ("Update()", "FixedUpdate()", "LateUpdate()", "for (", "foreach (")
_HOT_PATH_LOOKBACK = 10


def is_in_hot_path(lines: list[str], index: int) -> bool:
    """True if the line or any of the preceding ten lines holds a per-frame or loop marker."""
    for i in range(max(index - _HOT_PATH_LOOKBACK, 0), index + 1):
        if any(marker in lines[i] for marker in _HOT_PATH_MARKERS):
            return True
    return False


class QualityAnalyzer:
    name = "quality"

    def analyze(self, content: str, lines: list[str]) -> list[AnalysisResult]:
        results: list[AnalysisResult] = []
        results.extend(self._detect_string_concatenation(lines))
        results.extend(self._detect_declaration_issues(lines))
        results.extend(self._detect_bulk_collection_calls(lines))
        results.extend(self._detect_exception_handling(lines))
        results.extend(self._detect_event_subscriptions(content, lines))
        return results

    def _detect_string_concatenation(self, lines: list[str]) -> list[AnalysisResult]:
        results = []
        for number, line in enumerate(lines, 1):
            if '"' not in line or "+" not in line or in_comment(line):
                continue
            if _STRING_CONCAT_RE.search(line):
                results.append(STRING_CONCAT.hit(number, line.index("+"), line))
        return results

    def _detect_declaration_issues(self, lines: list[str]) -> list[AnalysisResult]:
        results = []
        for number, line in enumerate(lines, 1):
            if in_comment(line):
                continue

            if self._is_public_field(line):
                results.append(PUBLIC_FIELD.hit(number, line.index("public"), line))

            magic = _MAGIC_NUMBER_RE.search(line)
            if magic and "const" not in line and "readonly" not in line:
                results.append(MAGIC_NUMBER.hit(number, magic.start(), line))

            for decl in _LOCAL_DECL_RE.finditer(line):
                if decl.group(1) not in _NON_TYPE_WORDS:
                    results.append(LOCAL_PASCALCASE.hit(number, decl.start(2), line))
                    break
        return results

    @staticmethod
    def _is_public_field(line: str) -> bool:
        stripped = line.strip()
        if not stripped.startswith("public "):
            return False
        if "(" in stripped or "{" in stripped:
            return False
        words = stripped.split()
        return not any(w in words for w in _NON_FIELD_WORDS)

    def _detect_bulk_collection_calls(self, lines: list[str]) -> list[AnalysisResult]:
        results = []
        for index, line in enumerate(lines):
            if in_comment(line):
                continue
            for method in BULK_COLLECTION_METHODS:
                call = f".{method}("
                if call in line and is_in_hot_path(lines, index):
                    results.append(LINQ_HOT_PATH.hit(index + 1, line.index(call) + 1, line, method=method))
        return results

    def _detect_exception_handling(self, lines: list[str]) -> list[AnalysisResult]:
        results = []
        for index, line in enumerate(lines):
            stripped = line.strip()
            if stripped.startswith("catch") and self._has_empty_block(lines, index):
                results.append(EMPTY_CATCH.hit(index + 1, line.index("catch"), line))

            broad = _BROAD_CATCH_RE.search(line)
            if broad and not in_comment(line):
                results.append(BROAD_CATCH.hit(index + 1, line.index("Exception", broad.start()), line))
        return results

    @staticmethod
    def _has_empty_block(lines: list[str], index: int) -> bool:
        """The catch on ``lines[index]`` is followed by ``{ }`` on the same line or the next one or two."""
        line = lines[index]
        if _EMPTY_BLOCK_RE.search(line[line.index("catch") :]):
            return True
        following = [lines[i].strip() for i in range(index + 1, min(index + 3, len(lines)))]
        if following and _EMPTY_BLOCK_RE.fullmatch(following[0]):
            return True
        return following[:2] == ["{", "}"]

    def _detect_event_subscriptions(self, content: str, lines: list[str]) -> list[AnalysisResult]:
        if "-=" in content:
            return []
        results = []
        for number, line in enumerate(lines, 1):
            if "+=" in line and any(word in line for word in ("Event", "Action", "Func")):
                results.append(EVENT_NO_UNSUBSCRIBE.hit(number, line.index("+="), line))
        return results
