"""Local working copies of remote repositories.

RepositorySynchronizer keeps one checkout per repository under the workspace
directory, named after the last segment of the clone URL. An existing checkout
is fetched, switched to the requested branch and pulled; anything else at that
path is replaced by a fresh clone. Large-file (git LFS) content is pulled on a
best-effort basis afterwards.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from meiwei_core.errors import CommandTimeoutError, SyncError
from meiwei_core.exclusion import is_excluded
from meiwei_core.git.process import DEFAULT_TIMEOUT_SECONDS, CommandResult, git_environment, run_command
from meiwei_core.utils.code import is_source_file
from meiwei_store.models import ExclusionRule

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., CommandResult]


@dataclass(frozen=True)
class SourceFile:
    """A file selected for analysis. ``relative_path`` always uses forward slashes."""

    path: Path
    relative_path: str


def repository_dir_name(clone_url: str) -> str:
    """Derive the local directory name: last URL path segment without a trailing ``.git``.

    https://example.com/team/game-client.git  →  game-client
    git@example.com:team/game-client.git      →  game-client
    """
    name = clone_url.rstrip("/").rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not name or name in (".", ".."):
        raise SyncError(f"Cannot derive a directory name from clone URL {clone_url!r}")
    return name


class RepositorySynchronizer:
    def __init__(
        self,
        workspace_dir: str | Path = "./workspace",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        skip_smudge: bool = False,
        runner: CommandRunner = run_command,
    ):
        self.workspace_dir = Path(workspace_dir).resolve()
        self.workspace_dir.mkdir(parents=True, exist_ok=True)
        self._timeout = timeout
        self._env = git_environment(skip_smudge)
        self._run = runner

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def sync(self, clone_url: str, branch: str, force_pull: bool = False) -> Path:
        """Bring the local working copy of ``clone_url`` to the tip of ``branch``."""
        repo_dir = self.workspace_dir / repository_dir_name(clone_url)

        if repo_dir.is_dir() and (repo_dir / ".git").exists():
            logger.info("Updating existing working copy: %s", repo_dir)
            self._update(repo_dir, branch, force_pull)
        else:
            logger.info("Cloning repository: %s -> %s", clone_url, repo_dir)
            self._clone(clone_url, repo_dir, branch)

        self._pull_lfs(repo_dir)
        return repo_dir

    def current_commit_hash(self, work_dir: Path) -> str:
        result = self._git(work_dir, ["rev-parse", "HEAD"])
        commit = result.stdout.strip()
        if not result.ok or not commit:
            raise SyncError(f"Could not determine commit hash: {result.stderr.strip()}")
        return commit

    def discover_source_files(self, work_dir: Path, exclusions: Iterable[ExclusionRule]) -> list[SourceFile]:
        """Walk ``work_dir`` and return whitelisted, non-excluded source files in walk order."""
        rules = list(exclusions)
        work_dir = Path(work_dir)
        files: list[SourceFile] = []

        for root, dirnames, filenames in os.walk(work_dir):
            # Sorting in place fixes the walk order and prunes git metadata.
            dirnames[:] = sorted(d for d in dirnames if d != ".git")
            for name in sorted(filenames):
                if not is_source_file(name):
                    continue
                path = Path(root) / name
                relative = path.relative_to(work_dir).as_posix()
                if is_excluded(relative, rules):
                    logger.debug("Excluded: %s", relative)
                    continue
                files.append(SourceFile(path=path, relative_path=relative))

        logger.info("Discovered %d source file(s) in %s", len(files), work_dir)
        return files

    # ------------------------------------------------------------------ #
    # Git steps                                                            #
    # ------------------------------------------------------------------ #

    def _clone(self, clone_url: str, target_dir: Path, branch: str) -> None:
        if target_dir.exists():
            logger.info("Removing stale directory without git metadata: %s", target_dir)
            shutil.rmtree(target_dir)

        result = self._exec(["git", "clone", "--branch", branch, clone_url, str(target_dir)], self.workspace_dir)
        if not result.ok:
            raise SyncError(f"git clone failed: {result.stderr.strip()}")

    def _update(self, repo_dir: Path, branch: str, force_pull: bool) -> None:
        result = self._git(repo_dir, ["fetch", "origin"])
        if not result.ok:
            # A failed fetch still leaves a usable checkout; a timed-out one fails the run.
            logger.warning("git fetch failed: %s", result.stderr.strip())

        result = self._git(repo_dir, ["checkout", branch])
        if not result.ok:
            result = self._git(repo_dir, ["checkout", "-b", branch, f"origin/{branch}"])
            if not result.ok:
                raise SyncError(f"Could not switch to branch {branch!r}: {result.stderr.strip()}")

        pull = ["pull", "origin", branch]
        if force_pull:
            pull.append("--force")
        result = self._git(repo_dir, pull)
        if not result.ok:
            raise SyncError(f"git pull failed: {result.stderr.strip()}")

    def _pull_lfs(self, repo_dir: Path) -> None:
        """Fetch large-file content. Failures and timeouts only log: the review proceeds without it."""
        try:
            result = self._git(repo_dir, ["lfs", "env"])
            if not result.ok:
                logger.warning("Git LFS is not available: %s", result.stderr.strip())
                return
            result = self._git(repo_dir, ["lfs", "pull"])
        except CommandTimeoutError as e:
            logger.warning("Git LFS step skipped: %s", e)
            return

        if not result.ok:
            logger.warning("git lfs pull failed: %s", result.stderr.strip())
        else:
            logger.info("Pulled Git LFS content for %s", repo_dir)

    def _git(self, work_dir: Path, args: list[str]) -> CommandResult:
        return self._exec(["git", *args], work_dir)

    def _exec(self, command: list[str], cwd: Path) -> CommandResult:
        return self._run(command, cwd, timeout=self._timeout, env=self._env)
