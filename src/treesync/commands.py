"""Builders for individual git invocations.

Each function returns an :class:`~treesync.process.Invocation` and has no side
effect; nothing runs until the invocation is handed to
:func:`treesync.process.execute` or a runner. Every invocation disables
credential and terminal prompts so a git process can never hang on stdin.
"""

import logging
from pathlib import Path
from typing import Any

from .config import Config
from .constants import DEFAULT_URL_PATTERN, GIT_ENV
from .context import TRACE
from .process import Invocation


def git_binary() -> str:
    """Returns the configured git executable."""
    return Config.load().tools.git


def make_url(org: str, git_file: str, pattern: str | None = None) -> str:
    """Builds a remote url for a repository of the given organization.

    Args:
        org (str): The organization or user owning the repository.
        git_file (str): The repository file name, such as 'project.git'.
        pattern (str | None, optional): A format string with two positional
                                        fields, organization then git file.
                                        Defaults to the GitHub ssh pattern.

    Returns:
        str: The remote url.
    """
    return (pattern or DEFAULT_URL_PATTERN).format(org, git_file)


def _git(*args: str | Path, cwd: Path | None = None, **policy: Any) -> Invocation:
    return Invocation(
        args=tuple(str(a) for a in args),
        binary=git_binary(),
        cwd=cwd,
        env=dict(GIT_ENV),
        **policy,
    )


def _slashes(path: Path | str) -> str:
    return str(path).replace("\\", "/")


def _demote_not_a_repo(line: str, level: int) -> int:
    # probing directories that aren't repositories is routine
    if "not a git repo" in line:
        return TRACE
    return level


def init(root: Path) -> Invocation:
    return _git("init", cwd=root)


def set_config(root: Path, key: str, value: str) -> Invocation:
    return _git("config", key, value, cwd=root, stderr_level=TRACE)


def apply(root: Path, diff: str) -> Invocation:
    """`git apply` reading the diff from stdin."""
    return _git("apply", "--whitespace", "nowarn", "-", cwd=root, stdin=diff)


def fetch(root: Path, remote: str, branch: str) -> Invocation:
    return _git("fetch", "-q", remote, branch, cwd=root)


def checkout(root: Path, what: str) -> Invocation:
    return _git("-c", "advice.detachedHead=false", "checkout", "-q", what, cwd=root)


def revert(root: Path, file: Path | str) -> Invocation:
    """Discards local modifications of a single file."""
    return _git("checkout", _slashes(file), cwd=root, stderr_level=TRACE)


def current_branch(root: Path) -> Invocation:
    return _git("branch", "--show-current", cwd=root, keep_stdout=True)


def add_submodule(root: Path, branch: str, submodule: str, url: str) -> Invocation:
    return _git(
        "-c",
        "core.autocrlf=false",
        "submodule",
        "--quiet",
        "add",
        "-b",
        branch,
        "--force",
        "--name",
        submodule,
        url,
        submodule,
        cwd=root,
        stderr_level=TRACE,
    )


def clone(root: Path, url: str, branch: str, shallow: bool) -> Invocation:
    """Clones `url` into `root`, including submodules.

    Progress goes to stderr, so stderr is only logged at trace level; the exit
    code alone decides success.
    """
    cmd: list[str | Path] = ["clone", "--recurse-submodules"]
    if shallow:
        cmd.extend(["--depth", "1"])
    cmd.extend(
        ["--branch", branch, "--quiet", "-c", "advice.detachedHead=false", url, root]
    )
    return _git(*cmd, stderr_level=TRACE)


def pull(root: Path, url: str, branch: str) -> Invocation:
    return _git(
        "pull",
        "--recurse-submodules",
        "--quiet",
        url,
        branch,
        cwd=root,
        stderr_level=TRACE,
    )


def has_remote(root: Path, name: str) -> Invocation:
    """Tolerant query; exits with 0 only if the remote has a url."""
    return _git(
        "config",
        f"remote.{name}.url",
        cwd=root,
        stderr_level=logging.DEBUG,
        allow_failure=True,
    )


def rename_remote(root: Path, old: str, new: str) -> Invocation:
    return _git("remote", "rename", old, new, cwd=root)


def add_remote(root: Path, name: str, url: str) -> Invocation:
    return _git("remote", "add", name, url, cwd=root)


def set_remote_push(root: Path, remote: str, url: str) -> Invocation:
    return _git("remote", "set-url", "--push", remote, url, cwd=root)


def set_assume_unchanged(root: Path, file: Path | str, on: bool) -> Invocation:
    flag = "--assume-unchanged" if on else "--no-assume-unchanged"
    return _git("update-index", flag, _slashes(file), cwd=root)


def is_tracked(root: Path, file: Path | str) -> Invocation:
    """Tolerant query; exits with 0 only if git knows about the file."""
    return _git(
        "ls-files",
        "--error-unmatch",
        _slashes(file),
        cwd=root,
        stdout_level=logging.DEBUG,
        stderr_level=logging.DEBUG,
        allow_failure=True,
    )


def is_repo(root: Path) -> Invocation:
    return _git(
        "rev-parse",
        "--is-inside-work-tree",
        cwd=root,
        stderr_filter=_demote_not_a_repo,
        allow_failure=True,
    )


def remote_branch_exists(url: str, branch: str) -> Invocation:
    """Tolerant query that needs no local repository."""
    return _git(
        "ls-remote", "--exit-code", "--heads", url, branch, allow_failure=True
    )


def has_uncommitted_changes(root: Path) -> Invocation:
    """Tolerant query; the caller looks at stdout, not at the exit code."""
    return _git(
        "status", "-s", "--porcelain", cwd=root, allow_failure=True, keep_stdout=True
    )


def has_stashed_changes(root: Path) -> Invocation:
    """Tolerant query; exits with 0 only if there is a stash."""
    return _git(
        "stash", "show", cwd=root, stderr_level=TRACE, allow_failure=True
    )


def remote_url(root: Path) -> Invocation:
    return _git("remote", "get-url", "origin", cwd=root, keep_stdout=True)
