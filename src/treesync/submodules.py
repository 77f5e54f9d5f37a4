"""Asynchronous attachment of git submodules.

Adding a submodule clones it, which can take a long time while nothing else
depends on it yet. Tasks hand :class:`SubmoduleRequest` objects to a
:class:`SubmoduleAdder`, which runs them one after the other on a single
background thread so the build can continue in the meantime.
"""

import atexit
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

from .config import Config
from .context import Context
from .errors import GitError
from .git_wrapper import GitRepo
from .process import ProcessRunner


@dataclass(frozen=True)
class SubmoduleRequest:
    """A submodule to add to a parent repository.

    Attributes:
        url (str): The submodule's remote url.
        branch (str): The branch the submodule tracks.
        submodule (str): The submodule name, also its path in the parent.
        root (Path): The parent repository root.
    """

    url: str
    branch: str
    submodule: str
    root: Path

    def run(
        self, runner: ProcessRunner | None = None, config: Config | None = None
    ) -> None:
        """Adds the submodule, blocking until git is done."""
        GitRepo(Path(self.root), runner, config).add_submodule(
            self.branch, self.submodule, self.url
        )


class SubmoduleAdder:
    """Runs queued submodule requests on one background thread.

    Producers call :meth:`enqueue` from any thread; it never waits for the
    request to run. Each time the worker wakes up it takes every pending
    request at once and runs them in order, so requests queued meanwhile wait
    for the next round. The pending list's lock is never held while git runs.

    A failing request stops the worker: it and everything still queued are
    dropped, and the error never reaches the producers.

    Usually owned by whoever drives the build::

        with SubmoduleAdder() as adder:
            adder.enqueue(SubmoduleRequest(url, "master", "name", root))

    :meth:`instance` returns a lazily created, process-wide adder for code that
    has no owner to get one from.
    """

    _instance: ClassVar["SubmoduleAdder | None"] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, config: Config | None = None):
        self.runner = ProcessRunner("submodule_adder")
        self.config = config
        self._queue: list[SubmoduleRequest] = []
        self._queue_lock = threading.Lock()
        self._wakeups: queue.SimpleQueue[None] = queue.SimpleQueue()
        self._quit = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def instance(cls) -> "SubmoduleAdder":
        """Returns the process-wide adder, starting it on first use."""
        with cls._instance_lock:
            if cls._instance is None:
                adder = cls()
                adder.start()
                atexit.register(adder.close)
                cls._instance = adder
            return cls._instance

    @property
    def cx(self) -> Context:
        return self.runner.context

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def pending(self) -> int:
        """Returns the number of requests waiting for the next round."""
        with self._queue_lock:
            return len(self._queue)

    def start(self) -> None:
        """Starts the worker thread; does nothing if it was already started."""
        if self._thread is not None:
            return

        self._thread = threading.Thread(
            target=self._thread_fun, name="submodule_adder", daemon=True
        )
        self._thread.start()

    def enqueue(self, request: SubmoduleRequest) -> None:
        """Queues a request and wakes the worker.

        Args:
            request (SubmoduleRequest): The submodule to add.
        """
        with self._queue_lock:
            self._queue.append(request)

        if self._quit.is_set() or (self._thread is not None and not self.running):
            self.cx.trace(f"worker stopped, {request.submodule} will not be added")

        self._wakeups.put(None)

    def stop(self) -> None:
        """Asks the worker to exit after the request it is running, if any."""
        self._quit.set()
        self._wakeups.put(None)

    def close(self, timeout: float | None = None) -> None:
        """Stops the worker and waits for the thread to exit.

        Args:
            timeout (float | None, optional): Seconds to wait for the thread.
                                              Defaults to waiting as long as the
                                              running request takes.
        """
        self.stop()

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def __enter__(self) -> "SubmoduleAdder":
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _thread_fun(self) -> None:
        try:
            while not self._quit.is_set():
                self._wakeups.get()

                if self._quit.is_set():
                    break

                self._process()
        except GitError as e:
            self.cx.debug(f"stopping, {e}")
        except Exception:
            self.cx.exception("stopping after unexpected error")

    def _process(self) -> None:
        with self._queue_lock:
            batch, self._queue = self._queue, []

        if not batch:
            return

        self.cx.trace(f"woke up, {len(batch)} to process")

        for request in batch:
            if self._quit.is_set():
                break

            self.cx.trace(f"running {request.submodule}")
            request.run(self.runner, self.config)
