"""Shared fixtures: isolated configuration and an in-memory git."""

import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from treesync.config import Config
from treesync.constants import APP_NAME
from treesync.context import Context
from treesync.errors import GitError
from treesync.process import Invocation, ProcessResult


class FakeGit:
    """Stands in for `treesync.process.execute`, answering from in-memory state.

    Only the subcommands used by treesync are understood; anything else succeeds
    with no output. Like the real executor, a failing invocation that does not
    allow failure raises GitError.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.invocations: list[Invocation] = []
        self.contexts: list[Context | None] = []
        self.remotes: dict[str, str] = {}
        self.config: dict[str, str] = {}
        self.tracked: set[str] = set()
        self.assume_unchanged: dict[str, bool] = {}
        self.status = ""
        self.stash = False
        self.is_repo = True
        self.remote_branches: set[tuple[str, str]] = set()
        self.branch = "main"
        self.failing: set[str] = set()

    def __call__(
        self, invocation: Invocation, context: Context | None = None
    ) -> ProcessResult:
        self.calls.append(invocation.args)
        self.invocations.append(invocation)
        self.contexts.append(context)

        result = self._answer(list(invocation.args))
        if not result.ok and not invocation.allow_failure:
            raise GitError(f"{invocation.display()} returned {result.returncode}")
        return result

    def subcommands(self) -> list[str]:
        """The git subcommand of every call, skipping leading `-c` options."""
        return [self._strip_options(list(args))[0] for args in self.calls]

    def topology(self) -> tuple[dict[str, str], dict[str, str]]:
        return dict(self.remotes), dict(self.config)

    @staticmethod
    def _strip_options(a: list[str]) -> list[str]:
        while a[:1] == ["-c"]:
            a = a[2:]
        return a

    def _answer(self, args: list[str]) -> ProcessResult:
        a = self._strip_options(args)
        cmd = a[0]

        if cmd in self.failing:
            return ProcessResult(1, "", f"fatal: {cmd} failed")

        if cmd == "config" and len(a) == 2:
            value = self.config.get(a[1])
            if a[1].startswith("remote.") and a[1].endswith(".url"):
                value = self.remotes.get(a[1][len("remote.") : -len(".url")])
            if value is None:
                return ProcessResult(1)
            return ProcessResult(0, value + "\n")

        if cmd == "config":
            self.config[a[1]] = a[2]
            return ProcessResult(0)

        if a[:2] == ["remote", "get-url"]:
            if a[2] not in self.remotes:
                return ProcessResult(2, "", f"error: No such remote '{a[2]}'")
            return ProcessResult(0, self.remotes[a[2]] + "\n")

        if a[:2] == ["remote", "rename"]:
            old, new = a[2], a[3]
            if old not in self.remotes or new in self.remotes:
                return ProcessResult(2, "", "error: could not rename")
            self.remotes[new] = self.remotes.pop(old)
            for key in [k for k in self.config if k.startswith(f"remote.{old}.")]:
                suffix = key[len(f"remote.{old}.") :]
                self.config[f"remote.{new}.{suffix}"] = self.config.pop(key)
            return ProcessResult(0)

        if a[:2] == ["remote", "add"]:
            if a[2] in self.remotes:
                return ProcessResult(3, "", f"error: remote {a[2]} already exists.")
            self.remotes[a[2]] = a[3]
            return ProcessResult(0)

        if a[:3] == ["remote", "set-url", "--push"]:
            self.config[f"remote.{a[3]}.pushurl"] = a[4]
            return ProcessResult(0)

        if cmd == "ls-files":
            return ProcessResult(0 if a[2] in self.tracked else 1)

        if cmd == "update-index":
            self.assume_unchanged[a[2]] = a[1] == "--assume-unchanged"
            return ProcessResult(0)

        if cmd == "rev-parse":
            if self.is_repo:
                return ProcessResult(0, "true\n")
            return ProcessResult(128, "", "fatal: not a git repository")

        if cmd == "status":
            return ProcessResult(0, self.status)

        if a[:2] == ["stash", "show"]:
            return ProcessResult(0 if self.stash else 1)

        if cmd == "ls-remote":
            return ProcessResult(0 if (a[3], a[4]) in self.remote_branches else 2)

        if cmd == "branch":
            return ProcessResult(0, self.branch + "\n")

        return ProcessResult(0)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory: pytest.TempPathFactory, mocker: MagicMock) -> Iterator[Path]:
    """Points the global config at an empty location and clears the cache."""
    config_file = tmp_path_factory.mktemp("config") / "config.toml"
    mocker.patch("treesync.config.CONFIG_FILE", config_file)
    Config._global_cache = None
    yield config_file
    Config._global_cache = None

    logger = logging.getLogger(APP_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fake_git(mocker: MagicMock) -> FakeGit:
    """Routes every git invocation to a fresh FakeGit."""
    fake = FakeGit()
    mocker.patch("treesync.process.execute", side_effect=fake)
    return fake
