"""Unity runtime analyzer: per-frame lookups, engine best practices, lifecycle,
debug output, plaintext secrets and coroutine usage.
"""

from __future__ import annotations

import re

from meiwei_core.analyzers.base import AnalysisResult, Rule, in_comment, is_in_per_frame_method
from meiwei_store.models import Severity

FIND_IN_UPDATE = Rule(
    "PERF_FIND_IN_UPDATE",
    Severity.ERROR,
    "GameObject.Find() inside a per-frame method runs a scene search every frame.",
    "Cache the reference in Start() or Awake(), or assign it through a serialized field.",
)
FINDTYPE_IN_UPDATE = Rule(
    "PERF_FINDTYPE_IN_UPDATE",
    Severity.ERROR,
    "FindObjectOfType() inside a per-frame method is very expensive.",
    "Cache the result in Start() or Awake().",
)
GETCOMPONENT_IN_UPDATE = Rule(
    "PERF_GETCOMPONENT_IN_UPDATE",
    Severity.WARNING,
    "GetComponent() inside a per-frame method.",
    "Cache the component in a field.",
)
MAIN_CAMERA = Rule(
    "PERF_MAIN_CAMERA_LOOKUP",
    Severity.WARNING,
    "Camera.main performs a tagged object lookup on access.",
    "Cache the camera reference.",
)
TAG_EQUALITY = Rule(
    "BEST_PRACTICE_TAG_EQUALITY",
    Severity.INFO,
    "Tag compared with an equality operator.",
    'Use CompareTag("TagName"), which does not allocate.',
)
INSTANTIATE_NO_PARENT = Rule(
    "BEST_PRACTICE_INSTANTIATE_NO_PARENT",
    Severity.WARNING,
    "Instantiate() called without a parent; new objects land in the scene root.",
    "Pass a parent transform: Instantiate(prefab, parent).",
)
PUBLIC_OBJECT_FIELD = Rule(
    "BEST_PRACTICE_PUBLIC_OBJECT_FIELD",
    Severity.INFO,
    "Public field of a Unity object type.",
    "Use a [SerializeField] private field instead.",
)
NULL_COMPARISON = Rule(
    "LIFECYCLE_NULL_COMPARISON",
    Severity.INFO,
    "Null comparison against a Unity object uses the engine's overloaded equality.",
    "Check that destroyed-object semantics are intended here.",
)
DEBUG_LOG = Rule(
    "SECURITY_DEBUG_LOG",
    Severity.INFO,
    "Debug.Log call left in production code.",
    "Wrap it in #if UNITY_EDITOR or a conditional logging helper.",
)
PLAINTEXT_SECRET = Rule(
    "SECURITY_PLAINTEXT_SECRET",
    Severity.ERROR,
    "A password may be stored in PlayerPrefs as plain text.",
    "Encrypt secrets before persisting them, or use a platform keystore.",
)
COROUTINE_START = Rule(
    "MEMORY_COROUTINE_START",
    Severity.INFO,
    "StartCoroutine() used; make sure the coroutine is stopped.",
    "Call StopCoroutine() or StopAllCoroutines() from OnDisable() or OnDestroy().",
)

ENGINE_OBJECT_TYPES = ("GameObject", "Transform", "Component")

_TAG_EQUALITY_RE = re.compile(r"\.tag\s*[=!]=")
_NULL_CHECK_RE = re.compile(r"[=!]=\s*null\b|\bnull\s*[=!]=")


def _mentions_engine_type(line: str) -> bool:
    return any(t in line for t in ENGINE_OBJECT_TYPES)


class UnityAnalyzer:
    name = "unity"

    def analyze(self, content: str, lines: list[str]) -> list[AnalysisResult]:
        results: list[AnalysisResult] = []
        results.extend(self._detect_performance_issues(lines))
        results.extend(self._detect_best_practice_issues(lines))
        results.extend(self._detect_lifecycle_issues(lines))
        results.extend(self._detect_security_issues(lines))
        results.extend(self._detect_memory_issues(lines))
        return results

    def _detect_performance_issues(self, lines: list[str]) -> list[AnalysisResult]:
        results = []
        for index, line in enumerate(lines):
            number = index + 1
            commented = in_comment(line)

            if not commented and is_in_per_frame_method(lines, index):
                # At most one per-frame lookup is reported per line, most expensive first.
                if "GameObject.Find" in line:
                    results.append(FIND_IN_UPDATE.hit(number, line.index("GameObject.Find"), line))
                elif "FindObjectOfType" in line:
                    results.append(FINDTYPE_IN_UPDATE.hit(number, line.index("FindObjectOfType"), line))
                elif "GetComponent" in line:
                    results.append(GETCOMPONENT_IN_UPDATE.hit(number, line.index("GetComponent"), line))

            if "Camera.main" in line and not commented:
                results.append(MAIN_CAMERA.hit(number, line.index("Camera.main"), line))
        return results

    def _detect_best_practice_issues(self, lines: list[str]) -> list[AnalysisResult]:
        results = []
        for index, line in enumerate(lines):
            number = index + 1
            if in_comment(line):
                continue

            tag = _TAG_EQUALITY_RE.search(line)
            if tag:
                results.append(TAG_EQUALITY.hit(number, tag.start(), line))

            if "Instantiate(" in line and "parent" not in line.lower():
                results.append(INSTANTIATE_NO_PARENT.hit(number, line.index("Instantiate("), line))

            stripped = line.strip()
            if (
                stripped.startswith("public ")
                and _mentions_engine_type(line)
                and "(" not in line
                and not self._is_serialized(lines, index)
            ):
                results.append(PUBLIC_OBJECT_FIELD.hit(number, line.index("public"), line))
        return results

    @staticmethod
    def _is_serialized(lines: list[str], index: int) -> bool:
        """True when a [SerializeField] attribute sits on this line or the one above."""
        if "SerializeField" in lines[index]:
            return True
        return index > 0 and lines[index - 1].strip().startswith("[SerializeField")

    def _detect_lifecycle_issues(self, lines: list[str]) -> list[AnalysisResult]:
        results = []
        for number, line in enumerate(lines, 1):
            check = _NULL_CHECK_RE.search(line)
            if check and _mentions_engine_type(line) and not in_comment(line):
                results.append(NULL_COMPARISON.hit(number, line.index("null", check.start()), line))
        return results

    def _detect_security_issues(self, lines: list[str]) -> list[AnalysisResult]:
        results = []
        for number, line in enumerate(lines, 1):
            if "Debug.Log" in line and not in_comment(line):
                results.append(DEBUG_LOG.hit(number, line.index("Debug.Log"), line))

            if "PlayerPrefs.SetString" in line and "password" in line.lower():
                results.append(PLAINTEXT_SECRET.hit(number, line.index("PlayerPrefs"), line))
        return results

    def _detect_memory_issues(self, lines: list[str]) -> list[AnalysisResult]:
        results = []
        for number, line in enumerate(lines, 1):
            if "StartCoroutine" in line and not in_comment(line):
                results.append(COROUTINE_START.hit(number, line.index("StartCoroutine"), line))
        return results
