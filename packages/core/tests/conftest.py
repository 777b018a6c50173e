"""Shared fixtures for meiwei-core tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from meiwei_core.git.process import CommandResult


class FakeGit:
    """Stands in for run_command: records every invocation and replays canned results.

    ``responses`` maps a git argument prefix (e.g. "clone", "lfs env") to a
    CommandResult or an exception to raise. A successful clone creates the
    target directory with a ``.git`` folder and the files in ``tree``.
    """

    def __init__(self, responses=None, tree=None, commit="0123456789abcdef0123456789abcdef01234567"):
        self.responses = dict(responses or {})
        self.tree = dict(tree or {})
        self.commit = commit
        self.calls: list[tuple[list[str], Path, dict | None]] = []

    def commands(self) -> list[str]:
        return [" ".join(command[1:]) for command, _, _ in self.calls]

    def __call__(self, command, cwd, timeout=None, env=None):
        self.calls.append((list(command), Path(cwd), env))
        args = " ".join(command[1:])

        for prefix, response in self.responses.items():
            if args.startswith(prefix):
                if isinstance(response, BaseException):
                    raise response
                return response

        if command[1] == "clone":
            self._materialize(Path(command[-1]))
        if command[1:3] == ["rev-parse", "HEAD"]:
            return CommandResult(0, self.commit + "\n", "")
        return CommandResult(0, "", "")

    def _materialize(self, target: Path) -> None:
        (target / ".git").mkdir(parents=True, exist_ok=True)
        for relative, content in self.tree.items():
            path = target / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")


@pytest.fixture
def fake_git():
    return FakeGit


@pytest.fixture
def workspace(tmp_path):
    return tmp_path / "workspace"
