import shutil
from dataclasses import replace
from pathlib import Path

from . import commands, process
from .config import Config
from .constants import NO_PUSH_URL, TS_EXTENSION
from .context import REDOWNLOAD, Context, global_context
from .errors import UnsafeDeleteError
from .process import Invocation, ProcessResult, ProcessRunner


class GitRepo:
    """Git operations on one working tree.

    Composes the invocations from :mod:`treesync.commands` into the higher level
    operations used by tasks: cloning, pulling, credential setup, remote
    rewiring for the fork workflow, silencing generated translation files and
    guarded deletion.

    Attributes:
        root (Path): The file system path to the repository root.
        runner (ProcessRunner | None): The task running these commands, if any.
                                       Processes are executed through it so
                                       their output is attributed to the task.
        config (Config): Settings for the git binary, url pattern and delete
                         policy.
    """

    def __init__(
        self,
        root: Path,
        runner: ProcessRunner | None = None,
        config: Config | None = None,
    ):
        """Initializes the GitRepo instance.

        The root does not need to exist yet; it is the clone destination for
        fresh repositories.

        Args:
            root (Path): The path to the repository root directory.
            runner (ProcessRunner | None, optional): The task issuing the
                                                     commands. Defaults to None.
            config (Config | None, optional): The caller's configuration,
                                              including any project file.
                                              Defaults to the global one.
        """
        self.root = Path(root)
        self.runner = runner
        self.config = config or Config.load()

    @property
    def cx(self) -> Context:
        """The log context: the runner's if there is one, the global one otherwise."""
        if self.runner:
            return self.runner.context
        return global_context

    def _run(self, invocation: Invocation) -> ProcessResult:
        """Executes an invocation with the configured git, through the runner if any.

        Args:
            invocation (Invocation): The git command to run.

        Returns:
            ProcessResult: The exit code and captured output.

        Raises:
            GitError: If the command fails and does not tolerate failure.
        """
        invocation = replace(invocation, binary=self.config.tools.git)
        if self.runner:
            return self.runner.execute(invocation)
        return process.execute(invocation)

    def clone(self, url: str, branch: str, shallow: bool) -> None:
        """Clones `url` into the root, checking out `branch`.

        Args:
            url (str): The remote to clone.
            branch (str): The branch to check out.
            shallow (bool): Whether to truncate history with `--depth 1`.
        """
        self._run(commands.clone(self.root, url, branch, shallow))

    def pull(self, url: str, branch: str) -> None:
        self._run(commands.pull(self.root, url, branch))

    def set_credentials(self, username: str, email: str) -> None:
        """Sets user.name and user.email in the repository config.

        Empty values are skipped, never cleared.

        Args:
            username (str): The value for user.name.
            email (str): The value for user.email.
        """
        self.cx.debug("setting up credentials")

        if username:
            self.set_config("user.name", username)

        if email:
            self.set_config("user.email", email)

    def set_origin_and_upstream_remotes(
        self,
        org: str,
        key: str = "",
        no_push_upstream: bool = False,
        push_default_origin: bool = False,
        url_pattern: str | None = None,
    ) -> None:
        """Rewires remotes for developing on a personal fork.

        `origin` usually points at the main organization after a clone, but
        development happens on the developer's fork. `origin` is renamed to
        `upstream` and a new `origin` is created for the fork, using the same
        repository file name under `org`.

        Does nothing if an `upstream` remote already exists, so calling it
        repeatedly is safe.

        Args:
            org (str): The organization or user owning the fork.
            key (str, optional): Key file stored for the new `origin`.
            no_push_upstream (bool, optional): Give `upstream` a push url that
                                               refuses pushes.
            push_default_origin (bool, optional): Make `origin` the default
                                                  push remote.
            url_pattern (str | None, optional): Pattern for the new url, see
                                                :func:`commands.make_url`.

        Raises:
            GitError: If the `origin` url cannot be parsed or a command fails.
        """
        if self.has_remote("upstream"):
            self.cx.trace("upstream remote already exists")
            return

        # origin is gone after the rename
        git_file = self.git_file()

        self.rename_remote("origin", "upstream")

        if no_push_upstream:
            self.set_remote_push("upstream", NO_PUSH_URL)

        self.add_remote(
            "origin",
            org,
            key,
            push_default_origin,
            url_pattern=url_pattern,
            git_file=git_file,
        )

    def _ts_files(self) -> list[Path]:
        return sorted(
            p for p in self.root.rglob(f"*{TS_EXTENSION}") if p.is_file()
        )

    def ignore_ts(self, on: bool) -> None:
        """Sets or clears --assume-unchanged on every tracked .ts file.

        Translation files are regenerated by every build; with the flag set
        they never show up as modified and are never committed by accident.
        Untracked .ts files are left alone.

        Args:
            on (bool): True to set the flag, False to clear it.
        """
        for path in self._ts_files():
            rel = path.relative_to(self.root)

            if self.is_tracked(rel):
                self.cx.trace(f"  . {rel.as_posix()}")
                self.set_assume_unchanged(rel, on)
            else:
                self.cx.trace(f"  . {rel.as_posix()} (skipping, not tracked)")

    def revert_ts(self) -> None:
        """Discards local modifications of every tracked .ts file.

        Used before pulling so regenerated translations cannot conflict.
        """
        for path in self._ts_files():
            rel = path.relative_to(self.root)

            if self.is_tracked(rel):
                self._run(commands.revert(self.root, rel))
            else:
                self.cx.debug(
                    f"won't try to revert ts file '{rel.as_posix()}', not tracked"
                )

    def is_tracked(self, file: Path | str) -> bool:
        """Returns whether git knows about `file`, relative to the root."""
        return self._run(commands.is_tracked(self.root, file)).ok

    def has_remote(self, name: str) -> bool:
        return self._run(commands.has_remote(self.root, name)).ok

    def add_remote(
        self,
        remote_name: str,
        org: str,
        key: str = "",
        push_default: bool = False,
        url_pattern: str | None = None,
        git_file: str | None = None,
    ) -> None:
        """Adds a remote for the given organization, unless it already exists.

        Args:
            remote_name (str): Name of the new remote.
            org (str): The organization or user owning the repository.
            key (str, optional): Key file path, stored as
                                 remote.<name>.puttykeyfile when not empty.
            push_default (bool, optional): Set remote.pushdefault to this remote.
            url_pattern (str | None, optional): Url pattern, defaults to the
                                                configured [git] url_pattern.
            git_file (str | None, optional): Repository file name, such as
                                             'project.git'. Defaults to the one
                                             used by `origin`.
        """
        if self.has_remote(remote_name):
            self.cx.trace(f"remote {remote_name} already exists")
            return

        if git_file is None:
            git_file = self.git_file()

        pattern = url_pattern or self.config.git.url_pattern
        url = commands.make_url(org, git_file, pattern)
        self._run(commands.add_remote(self.root, remote_name, url))

        if push_default:
            self.set_config("remote.pushdefault", remote_name)

        if key:
            self.set_config(f"remote.{remote_name}.puttykeyfile", key)

    def rename_remote(self, old: str, new: str) -> None:
        self._run(commands.rename_remote(self.root, old, new))

    def set_remote_push(self, remote: str, url: str) -> None:
        self._run(commands.set_remote_push(self.root, remote, url))

    def set_config(self, key: str, value: str) -> None:
        self._run(commands.set_config(self.root, key, value))

    def set_assume_unchanged(self, file: Path | str, on: bool) -> None:
        self._run(commands.set_assume_unchanged(self.root, file, on))

    def git_file(self) -> str:
        """Returns the repository file name used by `origin`, such as 'project.git'.

        Returns:
            str: The last path segment of the `origin` url.

        Raises:
            GitError: If the url has no '/' or ends with one.
        """
        out = self._run(commands.remote_url(self.root)).stdout

        last_slash = out.rfind("/")
        if last_slash == -1:
            self.cx.bail_out(f"bad get-url output '{out.strip()}'")

        name = out[last_slash + 1 :].strip()
        if not name:
            self.cx.bail_out(f"bad get-url output '{out.strip()}'")

        return name

    def init_repo(self) -> None:
        self._run(commands.init(self.root))

    def apply(self, diff: str) -> None:
        """Applies a diff, such as a downloaded pull request, to the working tree."""
        self._run(commands.apply(self.root, diff))

    def fetch(self, remote: str, branch: str) -> None:
        self._run(commands.fetch(self.root, remote, branch))

    def checkout(self, what: str) -> None:
        self._run(commands.checkout(self.root, what))

    def add_submodule(self, branch: str, submodule: str, url: str) -> None:
        self._run(commands.add_submodule(self.root, branch, submodule, url))

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The name of the current branch, empty on a detached HEAD.
        """
        return self._run(commands.current_branch(self.root)).stdout.strip()

    def is_git_repo(self) -> bool:
        return self._run(commands.is_repo(self.root)).ok

    def has_uncommitted_changes(self) -> bool:
        # any porcelain output counts, even whitespace
        return self._run(commands.has_uncommitted_changes(self.root)).stdout != ""

    def has_stashed_changes(self) -> bool:
        return self._run(commands.has_stashed_changes(self.root)).ok

    @staticmethod
    def delete_directory(
        path: Path,
        context: Context | None = None,
        ignore_uncommitted: bool | None = None,
        config: Config | None = None,
    ) -> None:
        """Deletes a directory that was populated by cloning.

        The directory may not be controlled by git at all, for example when a
        prebuilt package was extracted there before switching to building from
        source; such directories are deleted without further checks. A git
        repository is only deleted if it has neither uncommitted nor stashed
        changes, unless `ignore_uncommitted` is set.

        Args:
            path (Path): The directory to delete.
            context (Context | None, optional): Log context of the caller.
            ignore_uncommitted (bool | None, optional): Delete regardless of
                local changes. Defaults to [core] ignore_uncommitted.
            config (Config | None, optional): The caller's configuration.
                                              Defaults to the global one.

        Raises:
            UnsafeDeleteError: If the repository has local changes; nothing is
                               deleted in that case.
        """
        cx = context or global_context
        path = Path(path)

        if not path.exists():
            cx.trace(f"{path} doesn't exist, nothing to delete", category=REDOWNLOAD)
            return

        repo = GitRepo(path, config=config)

        if repo.is_git_repo():
            if ignore_uncommitted is None:
                ignore_uncommitted = repo.config.core.ignore_uncommitted

            if not ignore_uncommitted:
                if repo.has_uncommitted_changes():
                    err = UnsafeDeleteError(path, "uncommitted changes")
                    cx.error(str(err), category=REDOWNLOAD)
                    raise err

                if repo.has_stashed_changes():
                    err = UnsafeDeleteError(path, "stashed changes")
                    cx.error(str(err), category=REDOWNLOAD)
                    raise err

            cx.trace(f"deleting directory controlled by git {path}", category=REDOWNLOAD)
        else:
            cx.trace(f"deleting directory {path}", category=REDOWNLOAD)

        shutil.rmtree(path)

    @staticmethod
    def remote_branch_exists(
        url: str, branch: str, config: Config | None = None
    ) -> bool:
        """Checks that `branch` exists on the remote at `url`.

        Needs no local repository; used to validate a branch across many
        repositories before starting work that would otherwise fail halfway.

        Args:
            url (str): The remote url.
            branch (str): The branch name.
            config (Config | None, optional): The caller's configuration.
                                              Defaults to the global one.

        Returns:
            bool: True if the remote has a head with that name.
        """
        git = (config or Config.load()).tools.git
        invocation = replace(commands.remote_branch_exists(url, branch), binary=git)
        return process.execute(invocation).ok
