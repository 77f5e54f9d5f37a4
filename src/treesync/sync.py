"""Clone and pull operations for a single source tree.

A :class:`SyncOptions` value describes what to fetch and how to prepare the
working tree; a :class:`GitSync` task runs it once, deciding between cloning
and pulling from what is on disk.
"""

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

from .config import Config
from .git_wrapper import GitRepo
from .process import ProcessRunner


class SyncOp(Enum):
    """What a :class:`GitSync` task does."""

    CLONE = "clone"
    PULL = "pull"
    CLONE_OR_PULL = "clone_or_pull"


@dataclass(frozen=True)
class Credentials:
    """Identity written to the repository config of fresh clones.

    Attributes:
        username (str): user.name, empty to leave it unset.
        email (str): user.email, empty to leave it unset.
    """

    username: str = ""
    email: str = ""

    def __bool__(self) -> bool:
        return bool(self.username or self.email)


@dataclass(frozen=True)
class RemoteSetup:
    """Parameters of the origin/upstream rewiring done after a clone.

    See :meth:`GitRepo.set_origin_and_upstream_remotes`.
    """

    org: str
    key: str = ""
    no_push_upstream: bool = False
    push_default_origin: bool = False
    url_pattern: str | None = None


@dataclass(frozen=True)
class SyncOptions:
    """Everything a clone or pull needs.

    Attributes:
        url (str): The remote to clone or pull from. Required.
        root (Path | None): The working tree. Required.
        branch (str): The branch to clone or pull.
        shallow (bool): Clone with `--depth 1`.
        credentials (Credentials | None): Identity set on fresh clones.
        remote (RemoteSetup | None): Fork rewiring done on fresh clones.
        ignore_ts_on_clone (bool): Mark tracked .ts files assume-unchanged
                                   after cloning.
        revert_ts_on_pull (bool): Revert tracked .ts files before pulling.
    """

    url: str = ""
    root: Path | None = None
    branch: str = "master"
    shallow: bool = False
    credentials: Credentials | None = None
    remote: RemoteSetup | None = None
    ignore_ts_on_clone: bool = False
    revert_ts_on_pull: bool = False

    @classmethod
    def from_config(
        cls, config: Config, url: str, root: Path, **overrides: Any
    ) -> "SyncOptions":
        """Builds options from the [git] section, then applies `overrides`.

        Args:
            config (Config): The loaded configuration.
            url (str): The remote url.
            root (Path): The working tree.
            **overrides: Any SyncOptions field, taking precedence over config.

        Returns:
            SyncOptions: The combined options.
        """
        g = config.git

        credentials = None
        if g.username or g.email:
            credentials = Credentials(g.username, g.email)

        remote = None
        if g.org:
            remote = RemoteSetup(
                g.org,
                g.key,
                g.no_push_upstream,
                g.push_default_origin,
                g.url_pattern,
            )

        options = cls(
            url=url,
            root=Path(root),
            branch=g.branch,
            shallow=g.shallow,
            credentials=credentials,
            remote=remote,
            ignore_ts_on_clone=g.ignore_ts_on_clone,
            revert_ts_on_pull=g.revert_ts_on_pull,
        )
        return replace(options, **overrides)


class GitSync(ProcessRunner):
    """Task that clones or pulls one repository.

    Attributes:
        op (SyncOp): The requested operation.
        options (SyncOptions): What to clone or pull and where.
        config (Config | None): The caller's configuration, None for the
                                global one.
    """

    def __init__(
        self, op: SyncOp, options: SyncOptions, config: Config | None = None
    ):
        super().__init__("git")
        self.op = op
        self.options = options
        self.config = config

    def do_run(self) -> SyncOp | None:
        """Runs the operation.

        Returns:
            SyncOp | None: CLONE or PULL, whichever was done, or None when a
                           clone was requested but the repository exists.

        Raises:
            GitError: If url or root is missing, or any git command fails.
        """
        if not self.options.url or self.options.root is None:
            self.context.bail_out("git missing parameters")

        if self.op is SyncOp.CLONE:
            return SyncOp.CLONE if self._clone() else None

        if self.op is SyncOp.PULL:
            self._pull()
            return SyncOp.PULL

        if self._clone():
            return SyncOp.CLONE

        self._pull()
        return SyncOp.PULL

    def _clone(self) -> bool:
        """Clones unless the repository exists; returns whether it cloned."""
        opts = self.options
        root = Path(opts.root)

        dot_git = root / ".git"
        if dot_git.exists():
            self.context.trace(f"not cloning, {dot_git} exists")
            return False

        repo = GitRepo(root, self, self.config)
        repo.clone(opts.url, opts.branch, opts.shallow)

        if opts.credentials:
            repo.set_credentials(opts.credentials.username, opts.credentials.email)

        if opts.remote and opts.remote.org:
            repo.set_origin_and_upstream_remotes(
                opts.remote.org,
                opts.remote.key,
                opts.remote.no_push_upstream,
                opts.remote.push_default_origin,
                url_pattern=opts.remote.url_pattern,
            )

        if opts.ignore_ts_on_clone:
            repo.ignore_ts(True)

        return True

    def _pull(self) -> None:
        opts = self.options
        repo = GitRepo(Path(opts.root), self, self.config)

        if opts.revert_ts_on_pull:
            repo.revert_ts()

        repo.pull(opts.url, opts.branch)


def clone(options: SyncOptions, config: Config | None = None) -> SyncOp | None:
    return GitSync(SyncOp.CLONE, options, config).run()


def pull(options: SyncOptions, config: Config | None = None) -> SyncOp | None:
    return GitSync(SyncOp.PULL, options, config).run()


def clone_or_pull(
    options: SyncOptions, config: Config | None = None
) -> SyncOp | None:
    """Clones if `<root>/.git` is missing, pulls otherwise."""
    return GitSync(SyncOp.CLONE_OR_PULL, options, config).run()
