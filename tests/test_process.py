"""Tests for process execution and result handling."""

import logging
import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from treesync.context import TRACE, Context
from treesync.errors import GitError
from treesync.process import Invocation, ProcessResult, ProcessRunner, execute


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


def test_execute_success(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that a successful process yields its captured output."""
    mock_run = mocker.patch("subprocess.run", return_value=_completed(0, "true\n"))

    result = execute(Invocation(("rev-parse", "--is-inside-work-tree"), cwd=tmp_path))

    assert result == ProcessResult(0, "true\n", "")
    assert result.ok
    args, kwargs = mock_run.call_args
    assert args[0] == ["git", "rev-parse", "--is-inside-work-tree"]
    assert kwargs["cwd"] == tmp_path
    assert kwargs["stdin"] is subprocess.DEVNULL
    assert kwargs["capture_output"] is True


def test_execute_fatal_failure_raises(mocker: MagicMock, caplog: MagicMock) -> None:
    """Verifies that a failing invocation which does not tolerate it aborts."""
    mocker.patch(
        "subprocess.run",
        return_value=_completed(128, "", "hint: something\nfatal: repository not found\n"),
    )

    with pytest.raises(GitError) as exc:
        execute(Invocation(("pull", "url", "main")))

    assert "git pull url main returned 128" in str(exc.value)
    assert "fatal: repository not found" in str(exc.value)
    assert "fatal: repository not found" in caplog.text


def test_execute_tolerated_failure_returns_result(mocker: MagicMock) -> None:
    mocker.patch("subprocess.run", return_value=_completed(1))

    result = execute(Invocation(("config", "remote.upstream.url"), allow_failure=True))

    assert result.returncode == 1
    assert not result.ok


def test_execute_pipes_stdin(mocker: MagicMock) -> None:
    mock_run = mocker.patch("subprocess.run", return_value=_completed())

    execute(Invocation(("apply", "-"), stdin="diff text"))

    kwargs = mock_run.call_args.kwargs
    assert kwargs["input"] == "diff text"
    assert "stdin" not in kwargs


def test_execute_merges_environment(mocker: MagicMock) -> None:
    """Verifies that overrides are added to, not replacing, the environment."""
    mocker.patch.dict("os.environ", {"HOME": "/home/dev"})
    mock_run = mocker.patch("subprocess.run", return_value=_completed())

    execute(Invocation(("status",), env={"GIT_TERMINAL_PROMPT": "0"}))

    env = mock_run.call_args.kwargs["env"]
    assert env["GIT_TERMINAL_PROMPT"] == "0"
    assert env["HOME"] == "/home/dev"


def test_execute_logs_streams_at_configured_levels(
    mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    mocker.patch(
        "subprocess.run",
        return_value=_completed(0, "out line\n", "Cloning into 'x'...\nwarning: odd\n"),
    )
    caplog.set_level(TRACE, logger="treesync")

    execute(
        Invocation(
            ("clone", "url", "x"),
            stdout_level=logging.INFO,
            stderr_level=TRACE,
            stderr_filter=lambda line, level: logging.WARNING
            if line.startswith("warning")
            else level,
        )
    )

    levels = {r.getMessage(): r.levelno for r in caplog.records}
    assert levels["out line"] == logging.INFO
    assert levels["Cloning into 'x'..."] == TRACE
    assert levels["warning: odd"] == logging.WARNING


def test_execute_keep_stdout_does_not_log(
    mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    mocker.patch("subprocess.run", return_value=_completed(0, "secret-branch\n"))
    caplog.set_level(TRACE, logger="treesync")

    result = execute(Invocation(("branch", "--show-current"), keep_stdout=True))

    assert result.stdout == "secret-branch\n"
    assert "secret-branch" not in [r.getMessage() for r in caplog.records]


def test_execute_missing_binary_raises(mocker: MagicMock) -> None:
    """Verifies that a process that cannot start is a fatal error."""
    mocker.patch("subprocess.run", side_effect=FileNotFoundError("no such file"))

    with pytest.raises(GitError, match="failed to run"):
        execute(Invocation(("status",), binary="/nonexistent/git", allow_failure=True))


def test_invocation_display_quotes() -> None:
    invocation = Invocation(("commit", "-m", "two words"))

    assert invocation.command == ["git", "commit", "-m", "two words"]
    assert invocation.display() == "git commit -m 'two words'"


def test_runner_attributes_output_to_task(
    mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a runner's processes log under the runner's name."""
    mocker.patch("subprocess.run", return_value=_completed(0, "hello\n"))
    caplog.set_level(logging.DEBUG, logger="treesync")

    runner = ProcessRunner("git")
    runner.execute(Invocation(("status",)))

    messages = [r.getMessage() for r in caplog.records]
    assert "git: > git status" in messages
    assert "git: hello" in messages
    assert all(r.task == "git" for r in caplog.records)


def test_runner_requires_do_run() -> None:
    with pytest.raises(NotImplementedError):
        ProcessRunner("base").run()


def test_context_bail_out_category(caplog: pytest.LogCaptureFixture) -> None:
    cx = Context("git")

    with pytest.raises(GitError, match="^broken$"):
        cx.bail_out("broken", category="redownload")

    record = caplog.records[-1]
    assert record.getMessage() == "git: broken"
    assert record.category == "redownload"
    assert record.levelno == logging.ERROR


def test_context_task_name(caplog: pytest.LogCaptureFixture) -> None:
    """Verifies that the task name is kept apart from the logger name."""
    named = Context("submodule_adder")
    anonymous = Context()

    assert named.task_name == "submodule_adder"
    assert named.logger.name == "treesync"
    assert anonymous.task_name is None

    anonymous.warning("plain")
    named.warning("prefixed")

    assert [r.getMessage() for r in caplog.records] == [
        "plain",
        "submodule_adder: prefixed",
    ]
    assert [r.task for r in caplog.records] == ["treesync", "submodule_adder"]
