"""External command execution shared by every git invocation.

Policy: stdout and stderr are captured separately and in full, each call has
its own timeout, and a command that overruns is killed and reported with a
CommandTimeoutError naming the command. The exit code is returned to the
caller, which decides whether a non-zero code is fatal.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path

from meiwei_core.errors import CommandTimeoutError, SyncError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10 * 60


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def run_command(
    command: list[str],
    cwd: str | Path,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run ``command`` in ``cwd`` and wait at most ``timeout`` seconds."""
    logger.debug("Executing command: %s in %s", " ".join(command), cwd)
    try:
        proc = subprocess.Popen(
            command,
            cwd=str(cwd),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=True,
        )
    except OSError as e:
        raise SyncError(f"Could not execute {' '.join(command)}: {e}") from e

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        logger.warning("Command timed out after %ss: %s", timeout, " ".join(command))
        raise CommandTimeoutError(command, timeout)

    result = CommandResult(exit_code=proc.returncode, stdout=stdout or "", stderr=stderr or "")
    logger.debug("Command result: exit_code=%d, stdout=%s", result.exit_code, result.stdout[:200])
    return result


def _kill_group(proc: subprocess.Popen) -> None:
    """Kill the command and everything it spawned, then reap it.

    Helpers such as git-remote-https inherit the output pipes, so waiting for
    EOF after killing only the direct child would block until they exit.
    """
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    proc.wait()


def git_environment(skip_smudge: bool = False, base: dict[str, str] | None = None) -> dict[str, str]:
    """Return the environment for git commands.

    GIT_LFS_SKIP_SMUDGE is only set when the inherited environment leaves it
    undefined, so an operator's explicit choice always wins.
    """
    env = dict(os.environ if base is None else base)
    env.setdefault("GIT_LFS_SKIP_SMUDGE", "1" if skip_smudge else "0")
    return env
