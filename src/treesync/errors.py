"""Exceptions raised by treesync."""

from pathlib import Path


class GitError(RuntimeError):
    """An unrecoverable failure that aborts the current operation.

    Raised for non-zero exits of invocations that do not tolerate failure, for
    output that cannot be parsed and for missing required parameters.
    """


class UnsafeDeleteError(GitError):
    """Refusal to delete a repository that holds local changes."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(
            f"will not delete {path}, has {reason}; see --ignore-uncommitted-changes"
        )
