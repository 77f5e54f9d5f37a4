"""treesync: version-control synchronization for multi-repository builds.

This package clones and updates the source trees of many repositories, rewires
their remotes for a fork-based workflow, refuses to delete trees holding local
changes, silences regenerated translation files and adds git submodules on a
background worker.
"""

from . import (
    cli,
    commands,
    config,
    constants,
    context,
    errors,
    git_wrapper,
    process,
    submodules,
    sync,
)

__all__ = [
    "cli",
    "commands",
    "config",
    "constants",
    "context",
    "errors",
    "git_wrapper",
    "process",
    "submodules",
    "sync",
]
