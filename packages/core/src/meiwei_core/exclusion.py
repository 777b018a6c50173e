"""Exclusion filter: decides whether a repository-relative path is skipped.

A path is excluded when ANY active rule matches it:
  FILE       exact equality with ``rule.path``
  DIRECTORY  path starts with ``rule.path`` followed by "/" or "\\"
  PATTERN    ``rule.pattern`` as a whole-path glob ("*" any run, "?" one char)
  EXTENSION  path ends with "." + ``rule.path``

Comparison is case-sensitive. A PATTERN rule without a pattern never matches.
"""

from __future__ import annotations

import functools
import re
from typing import Iterable

from meiwei_store.models import ExclusionRule, ExclusionType


@functools.lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern:
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


def matches_pattern(path: str, pattern: str | None) -> bool:
    if not pattern:
        return False
    return _compile_glob(pattern).fullmatch(path) is not None


def rule_matches(path: str, rule: ExclusionRule) -> bool:
    if rule.type is ExclusionType.FILE:
        return path == rule.path
    if rule.type is ExclusionType.DIRECTORY:
        return path.startswith(rule.path + "/") or path.startswith(rule.path + "\\")
    if rule.type is ExclusionType.PATTERN:
        return matches_pattern(path, rule.pattern)
    if rule.type is ExclusionType.EXTENSION:
        return path.endswith("." + rule.path)
    return False


def is_excluded(relative_path: str, rules: Iterable[ExclusionRule]) -> bool:
    """Return True if any active rule excludes ``relative_path``."""
    return any(rule.active and rule_matches(relative_path, rule) for rule in rules)
