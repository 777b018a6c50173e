"""Exceptions raised by the review pipeline.

NotFoundError and ConflictError surface synchronously to whoever starts or
polls a review. SyncError and CommandTimeoutError are raised inside the
background task and end up recorded on the run as FAILED.
"""

from __future__ import annotations


class MeiweiError(Exception):
    """Base class for every error raised by meiwei_core."""


class NotFoundError(MeiweiError):
    """A repository or review run does not exist."""


class ConflictError(MeiweiError):
    """A review is already pending or running for the repository."""


class SyncError(MeiweiError):
    """Cloning, checking out, pulling or inspecting a working copy failed."""


class CommandTimeoutError(SyncError):
    def __init__(self, command: list[str], timeout: float):
        self.command = list(command)
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout:g}s: {' '.join(self.command)}")
