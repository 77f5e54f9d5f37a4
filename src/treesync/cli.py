import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from .config import Config
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE
from .context import setup_logging
from .errors import GitError
from .git_wrapper import GitRepo
from .submodules import SubmoduleRequest
from .sync import GitSync, RemoteSetup, SyncOp, SyncOptions

logger = logging.getLogger(APP_NAME)
console = Console()


def _sync_options(args: argparse.Namespace, config: Config) -> SyncOptions:
    """Combines configured defaults with the flags given on the command line.

    Args:
        args (argparse.Namespace): Parsed arguments of clone, pull or sync.
        config (Config): The loaded configuration.

    Returns:
        SyncOptions: Options where every explicit flag overrides the config.
    """
    overrides: dict[str, Any] = {}

    if args.branch is not None:
        overrides["branch"] = args.branch
    if getattr(args, "shallow", False):
        overrides["shallow"] = True
    if getattr(args, "ignore_ts", False):
        overrides["ignore_ts_on_clone"] = True
    if getattr(args, "revert_ts", False):
        overrides["revert_ts_on_pull"] = True

    # --org replaces the configured fork, other remote flags fall back to config
    org = getattr(args, "org", None)
    if org:
        g = config.git
        overrides["remote"] = RemoteSetup(
            org,
            args.key if args.key is not None else g.key,
            args.no_push_upstream or g.no_push_upstream,
            args.push_default_origin or g.push_default_origin,
            g.url_pattern,
        )

    return SyncOptions.from_config(config, args.url, Path(args.root), **overrides)


def run_sync(op: SyncOp, args: argparse.Namespace, config: Config) -> None:
    """Runs clone, pull or clone-or-pull and reports what happened."""
    options = _sync_options(args, config)
    logger.debug(f"{op.value}: {options}")
    done = GitSync(op, options, config).run()

    if done is SyncOp.CLONE:
        console.print(f"[bold green]✔ Cloned[/bold green] {options.url} → {options.root}")
    elif done is SyncOp.PULL:
        console.print(f"[bold green]✔ Pulled[/bold green] {options.url} → {options.root}")
    else:
        console.print(f"[yellow]{options.root} already exists, not cloning.[/yellow]")


def rewire_remotes(args: argparse.Namespace, config: Config) -> None:
    repo = GitRepo(Path(args.root), config=config)
    existed = repo.has_remote("upstream")

    repo.set_origin_and_upstream_remotes(
        args.org,
        args.key or config.git.key,
        args.no_push_upstream or config.git.no_push_upstream,
        args.push_default_origin or config.git.push_default_origin,
        url_pattern=args.url_pattern or config.git.url_pattern,
    )

    if existed:
        console.print("[dim]upstream remote already exists, nothing to do.[/dim]")
    else:
        console.print(
            f"[bold green]✔ Remotes set:[/bold green] origin → {args.org}, "
            "upstream → previous origin"
        )


def delete_directories(args: argparse.Namespace, config: Config) -> None:
    ignore = args.ignore_uncommitted_changes or config.core.ignore_uncommitted
    for path in args.paths:
        GitRepo.delete_directory(Path(path), ignore_uncommitted=ignore, config=config)
        console.print(f"✔ Deleted: [cyan]{path}[/cyan]", style="green")


def check_branches(args: argparse.Namespace, config: Config) -> None:
    """Verifies that a branch exists on every remote, stopping at the first miss."""
    for url in args.urls:
        if not GitRepo.remote_branch_exists(url, args.branch, config):
            console.print(
                f"[bold red]ERROR:[/bold red] branch '{args.branch}' "
                f"doesn't exist in {url}"
            )
            sys.exit(1)
        console.print(f"   [green]✔[/green] {url}")


def add_submodules(args: argparse.Namespace, config: Config) -> None:
    branch = args.branch or config.git.branch
    for spec in args.submodules:
        name, sep, url = spec.partition("=")
        if not sep or not name or not url:
            raise GitError(f"bad submodule '{spec}', expected NAME=URL")

        SubmoduleRequest(url, branch, name, Path(args.root)).run(config=config)
        console.print(f"✔ Added submodule [cyan]{name}[/cyan]", style="green")


def apply_diff(args: argparse.Namespace, config: Config) -> None:
    if args.diff == "-":
        diff = sys.stdin.read()
    else:
        diff = Path(args.diff).read_text()

    GitRepo(Path(args.root), config=config).apply(diff)
    console.print("[bold green]✔ Diff applied.[/bold green]")


def checkout_ref(args: argparse.Namespace, config: Config) -> None:
    repo = GitRepo(Path(args.root), config=config)

    if args.remote:
        repo.fetch(args.remote, args.ref)
        repo.checkout("FETCH_HEAD")
    else:
        repo.checkout(args.ref)

    console.print(f"[bold green]✔ Checked out[/bold green] {args.ref}")


def show_config(config: Config) -> None:
    """Prints the effective configuration after merging every source."""
    table = Table(title=f"Configuration ({CONFIG_FILE})", show_header=True)
    table.add_column("Section", style="cyan")
    table.add_column("Key", style="green")
    table.add_column("Value")

    for section in ("core", "tools", "git", "limits"):
        values = vars(getattr(config, section))
        first = True
        for key, value in values.items():
            table.add_row(section if first else "", key, repr(value))
            first = False

    console.print(table)


def _add_sync_arguments(parser: argparse.ArgumentParser, clone: bool, pull: bool) -> None:
    parser.add_argument("url", help="Remote to clone or pull from")
    parser.add_argument("root", help="Working tree")
    parser.add_argument("--branch", "-b", help="Branch (default: [git] branch)")

    if clone:
        parser.add_argument(
            "--shallow", action="store_true", help="Clone with --depth 1"
        )
        parser.add_argument(
            "--ignore-ts",
            action="store_true",
            help="Mark tracked .ts files as assume-unchanged after cloning",
        )
        _add_remote_arguments(parser, required=False)

    if pull:
        parser.add_argument(
            "--revert-ts",
            action="store_true",
            help="Revert tracked .ts files before pulling",
        )


def _add_remote_arguments(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument(
        "--org", required=required, help="Organization of your fork (new origin)"
    )
    parser.add_argument("--key", help="Key file for the new origin")
    parser.add_argument(
        "--no-push-upstream",
        action="store_true",
        help="Make upstream refuse pushes",
    )
    parser.add_argument(
        "--push-default-origin",
        action="store_true",
        help="Make origin the default push remote",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME, description="Synchronize source trees with git."
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="More output; twice for trace output",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        nargs="?",
        const=LOG_FILE,
        help=f"Also log to this file (default: {LOG_FILE})",
    )

    subparsers = parser.add_subparsers(dest="command")

    _add_sync_arguments(
        subparsers.add_parser("clone", help="Clone a repository"), True, False
    )
    _add_sync_arguments(
        subparsers.add_parser("pull", help="Pull an existing repository"), False, True
    )
    _add_sync_arguments(
        subparsers.add_parser("sync", help="Clone if missing, pull otherwise"),
        True,
        True,
    )

    remotes_parser = subparsers.add_parser(
        "remotes", help="Rename origin to upstream and add origin for your fork"
    )
    remotes_parser.add_argument("root", help="Repository root")
    _add_remote_arguments(remotes_parser, required=True)
    remotes_parser.add_argument("--url-pattern", help="Pattern with two {} fields")

    ignore_parser = subparsers.add_parser(
        "ignore-ts", help="Hide changes to tracked .ts files"
    )
    ignore_parser.add_argument("root", help="Repository root")
    ignore_parser.add_argument(
        "--off", action="store_true", help="Show changes again"
    )

    revert_parser = subparsers.add_parser(
        "revert-ts", help="Discard changes to tracked .ts files"
    )
    revert_parser.add_argument("root", help="Repository root")

    delete_parser = subparsers.add_parser(
        "delete", help="Delete cloned directories unless they have local changes"
    )
    delete_parser.add_argument("paths", nargs="+", help="Directories to delete")
    delete_parser.add_argument(
        "--ignore-uncommitted-changes",
        action="store_true",
        help="Delete even with uncommitted or stashed changes",
    )

    branch_parser = subparsers.add_parser(
        "branch-exists", help="Check that a branch exists on every remote"
    )
    branch_parser.add_argument("branch", help="Branch name")
    branch_parser.add_argument("urls", nargs="+", help="Remote urls")

    submodule_parser = subparsers.add_parser(
        "add-submodule", help="Add submodules to a repository"
    )
    submodule_parser.add_argument("root", help="Parent repository root")
    submodule_parser.add_argument(
        "submodules", nargs="+", help="Submodules as NAME=URL"
    )
    submodule_parser.add_argument(
        "--branch", "-b", help="Branch (default: [git] branch)"
    )

    apply_parser = subparsers.add_parser("apply", help="Apply a diff")
    apply_parser.add_argument("root", help="Repository root")
    apply_parser.add_argument(
        "diff", nargs="?", default="-", help="Diff file (default: stdin)"
    )

    checkout_parser = subparsers.add_parser("checkout", help="Check out a ref")
    checkout_parser.add_argument("root", help="Repository root")
    checkout_parser.add_argument("ref", help="Branch, tag or commit")
    checkout_parser.add_argument(
        "--remote", help="Fetch the ref from this remote first"
    )

    subparsers.add_parser("config", help="Show the effective configuration")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the treesync CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config.load(Path.cwd())
    setup_logging(args.verbose, args.log_file, config.limits.max_log_size)

    try:
        if args.command == "clone":
            run_sync(SyncOp.CLONE, args, config)
        elif args.command == "pull":
            run_sync(SyncOp.PULL, args, config)
        elif args.command == "sync":
            run_sync(SyncOp.CLONE_OR_PULL, args, config)
        elif args.command == "remotes":
            rewire_remotes(args, config)
        elif args.command == "ignore-ts":
            GitRepo(Path(args.root), config=config).ignore_ts(not args.off)
        elif args.command == "revert-ts":
            GitRepo(Path(args.root), config=config).revert_ts()
        elif args.command == "delete":
            delete_directories(args, config)
        elif args.command == "branch-exists":
            check_branches(args, config)
        elif args.command == "add-submodule":
            add_submodules(args, config)
        elif args.command == "apply":
            apply_diff(args, config)
        elif args.command == "checkout":
            checkout_ref(args, config)
        elif args.command == "config":
            show_config(config)
        else:
            parser.print_help()
    except GitError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
