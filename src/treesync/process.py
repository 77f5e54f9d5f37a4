"""Execution of external processes.

An :class:`Invocation` describes a process completely (binary, arguments,
working directory, environment, piped input and how each output stream is
logged) without running it. :func:`execute` runs it and returns a
:class:`ProcessResult`, or raises :class:`~treesync.errors.GitError` when a
process that does not tolerate failure exits with a non-zero code.
"""

import logging
import os
import shlex
import subprocess
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .context import Context, global_context

StderrFilter = Callable[[str, int], int]
"""Receives a stderr line and its default level, returns the level to log it at."""


@dataclass(frozen=True)
class Invocation:
    """A fully configured external process that has not been started yet.

    Attributes:
        args (tuple[str, ...]): Arguments passed after the binary.
        binary (str): The executable to run.
        cwd (Path | None): Working directory, None for the current one.
        env (Mapping[str, str]): Variables added to the inherited environment.
        stdin (str | None): Text piped to the process, None to close stdin.
        stdout_level (int): Level at which stdout lines are logged.
        stderr_level (int): Level at which stderr lines are logged.
        stderr_filter (StderrFilter | None): Per-line override of stderr_level.
        allow_failure (bool): Whether a non-zero exit code is a valid outcome.
        keep_stdout (bool): Keep stdout for the caller instead of logging it.
    """

    args: tuple[str, ...]
    binary: str = "git"
    cwd: Path | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    stdin: str | None = None
    stdout_level: int = logging.DEBUG
    stderr_level: int = logging.ERROR
    stderr_filter: StderrFilter | None = None
    allow_failure: bool = False
    keep_stdout: bool = False

    @property
    def command(self) -> list[str]:
        """The complete argument vector, binary first."""
        return [self.binary, *self.args]

    def display(self) -> str:
        return shlex.join(self.command)


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a process that was allowed to finish.

    Attributes:
        returncode (int): The exit code.
        stdout (str): Captured standard output.
        stderr (str): Captured standard error.
    """

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def execute(invocation: Invocation, context: Context | None = None) -> ProcessResult:
    """Runs an invocation to completion and logs its output.

    Args:
        invocation (Invocation): The process to run.
        context (Context | None, optional): Where log lines are attributed.
                                            Defaults to the global context.

    Returns:
        ProcessResult: The exit code and captured output.

    Raises:
        GitError: If the process cannot be started, or if it exits with a
                  non-zero code and `allow_failure` is not set.
    """
    cx = context or global_context

    where = f" in {invocation.cwd}" if invocation.cwd else ""
    cx.debug(f"> {invocation.display()}{where}")

    env = os.environ.copy()
    env.update(invocation.env)

    kwargs: dict[str, Any] = {}
    if invocation.stdin is None:
        kwargs["stdin"] = subprocess.DEVNULL
    else:
        kwargs["input"] = invocation.stdin

    try:
        res = subprocess.run(
            invocation.command,
            cwd=invocation.cwd,
            env=env,
            capture_output=True,
            text=True,
            **kwargs,
        )
    except OSError as e:
        cx.bail_out(f"failed to run {invocation.display()}: {e}")

    stdout = res.stdout or ""
    stderr = res.stderr or ""

    if not invocation.keep_stdout:
        for line in stdout.splitlines():
            if line.strip():
                cx.log(invocation.stdout_level, line)

    for line in stderr.splitlines():
        if not line.strip():
            continue
        level = invocation.stderr_level
        if invocation.stderr_filter:
            level = invocation.stderr_filter(line, level)
        cx.log(level, line)

    if res.returncode != 0 and not invocation.allow_failure:
        detail = stderr.strip().splitlines()
        reason = f": {detail[-1]}" if detail else ""
        cx.bail_out(
            f"{invocation.display()} returned {res.returncode}{where}{reason}"
        )

    return ProcessResult(res.returncode, stdout, stderr)


class ProcessRunner:
    """Base class for tasks that run processes under their own name.

    Processes executed through a runner log under the runner's context, so
    output is attributed to the task instead of the global context.

    Attributes:
        name (str): The task name shown in logs.
        context (Context): The log context of this task.
    """

    def __init__(self, name: str):
        self.name = name
        self.context = Context(name)

    def execute(self, invocation: Invocation) -> ProcessResult:
        return execute(invocation, self.context)

    def run(self) -> Any:
        """Runs the task."""
        return self.do_run()

    def do_run(self) -> Any:
        raise NotImplementedError
