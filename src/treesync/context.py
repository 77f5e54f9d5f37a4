"""Logging context shared by every git operation.

All output goes through the single ``treesync`` logger. A :class:`Context`
attributes lines to the task that issued them (``git``, ``submodule_adder``,
...) and tags each record with a category so fatal conditions can be reported
consistently before they abort an operation.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, MutableMapping, NoReturn

from .constants import APP_NAME
from .errors import GitError

TRACE = 5
"""int: Level below DEBUG for routine chatter such as clone progress."""

logging.addLevelName(TRACE, "TRACE")

GENERIC = "generic"
REDOWNLOAD = "redownload"

logger = logging.getLogger(APP_NAME)


class Context(logging.LoggerAdapter):
    """Logger adapter that prefixes messages with the name of a task.

    Attributes:
        task_name (str | None): The task name, or None for the global context.
    """

    def __init__(self, name: str | None = None):
        super().__init__(logger, {"task": name or APP_NAME})
        # LoggerAdapter.name is the read-only logger name
        self.task_name = name

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra["category"] = kwargs.pop("category", GENERIC)
        kwargs["extra"] = extra
        if self.task_name:
            msg = f"{self.task_name}: {msg}"
        return msg, kwargs

    def trace(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.log(TRACE, msg, *args, **kwargs)

    def bail_out(self, msg: str, category: str = GENERIC) -> NoReturn:
        """Logs an unrecoverable condition and aborts the current operation.

        Args:
            msg (str): What went wrong, including the offending value.
            category (str, optional): The log category. Defaults to GENERIC.

        Raises:
            GitError: Always.
        """
        self.error(msg, category=category)
        raise GitError(msg)


global_context = Context()


def setup_logging(
    verbosity: int = 0,
    log_file: Path | None = None,
    max_log_size: int = 5 * 1024 * 1024,
) -> None:
    """Configures the logging subsystem.

    Args:
        verbosity (int, optional): 0 logs INFO and above, 1 adds DEBUG and 2 or
                                   more adds TRACE. Defaults to 0.
        log_file (Path | None, optional): If given, also log to this file with
                                          rotation enabled. Defaults to None.
        max_log_size (int, optional): Bytes before the log file is rotated.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    if verbosity >= 2:
        logger.setLevel(TRACE)
    elif verbosity == 1:
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
