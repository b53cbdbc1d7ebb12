"""Watch mode.

A WatchSession rebuilds a package whenever a source or include file is
written or created. It is a small state machine:

    IDLE --accepted event--> BUILDING --completion--> IDLE
    BUILDING --accepted event--> (cancel current token) BUILDING

Events closer than the debounce window to the last accepted one are
dropped. Builds run on worker threads so the loop stays responsive; a build
whose token was cancelled never publishes its result. Watcher failures end
the session.
"""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import NamedTuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .cancel import CancelToken
from .errors import BuildCancelled, PawnpackError, WatcherError
from .models import BuildSummary
from .shell import info, verb, warn

DEBOUNCE = 0.5
SOURCE_EXTENSIONS = (".pwn", ".inc")
HEALTH_INTERVAL = 1.0


class WatchState(Enum):
    IDLE = "idle"
    BUILDING = "building"


class FileEvent(NamedTuple):
    path: str
    kind: str  # "created" or "modified"; anything else is ignored


_STOP = object()


class WatchSession:
    """One watch invocation.

    Args:
        build: Runs a build observing the given token and returns its summary.
               Raises BuildCancelled if it noticed the token firing.
        debounce: Seconds after an accepted event during which further events
                  are dropped.
        clock: Monotonic time source.
        extensions: File suffixes that trigger a rebuild.
    """

    def __init__(
        self,
        build: Callable[[CancelToken], BuildSummary],
        debounce: float = DEBOUNCE,
        clock: Callable[[], float] = time.monotonic,
        extensions: tuple[str, ...] = SOURCE_EXTENSIONS,
    ) -> None:
        self.build = build
        self.debounce = debounce
        self.clock = clock
        self.extensions = extensions
        self.results: queue.Queue[BuildSummary] = queue.Queue()
        self.inbox: queue.Queue[object] = queue.Queue()
        self._lock = threading.Lock()
        self._state = WatchState.IDLE
        self._token: CancelToken | None = None
        self._last_accepted: float | None = None
        self._workers: list[threading.Thread] = []

    @property
    def state(self) -> WatchState:
        with self._lock:
            return self._state

    @property
    def token(self) -> CancelToken | None:
        with self._lock:
            return self._token

    def qualifies(self, event: FileEvent) -> bool:
        return event.kind in ("created", "modified") and event.path.endswith(self.extensions)

    def handle_event(self, event: FileEvent, force: bool = False) -> bool:
        """Apply one filesystem event.

        Args:
            event: The change.
            force: Skip the extension and debounce checks (initial build).

        Returns:
            True if a build was started.
        """
        if not force and not self.qualifies(event):
            return False
        now = self.clock()
        if not force and self._last_accepted is not None and now - self._last_accepted < self.debounce:
            verb("ignoring", event.path, "within debounce window")
            return False
        self._last_accepted = now

        with self._lock:
            if self._state is WatchState.BUILDING and self._token is not None:
                verb("cancelling in-flight build")
                self._token.cancel()
            token = CancelToken()
            self._token = token
            self._state = WatchState.BUILDING

        info("change detected:", event.path)
        worker = threading.Thread(target=self._run_build, args=(token,), daemon=True)
        self._workers.append(worker)
        worker.start()
        return True

    def _run_build(self, token: CancelToken) -> None:
        try:
            summary = self.build(token)
        except BuildCancelled:
            verb("build cancelled")
            return
        except PawnpackError as err:
            summary = BuildSummary(error=str(err))
        except Exception as err:
            warn("build crashed:", repr(err))
            summary = BuildSummary(error=f"{type(err).__name__}: {err}")

        with self._lock:
            if token.cancelled:
                return
            if self._token is token:
                self._state = WatchState.IDLE
            self.results.put(summary)

    def submit(self, event: FileEvent) -> None:
        self.inbox.put(event)

    def fail(self, err: BaseException) -> None:
        """Report a watcher failure; the loop terminates."""
        self.inbox.put(err)

    def stop(self) -> None:
        self.inbox.put(_STOP)

    def run(self, initial: FileEvent, alive: Callable[[], bool] = lambda: True) -> None:
        """Process events until stopped.

        Args:
            initial: Synthetic event that triggers the first build immediately.
            alive: Health check for the event source, polled while idle.

        Raises:
            WatcherError: If the watcher failed or died.
        """
        self.handle_event(initial, force=True)
        try:
            while True:
                try:
                    item = self.inbox.get(timeout=HEALTH_INTERVAL)
                except queue.Empty:
                    if not alive():
                        raise WatcherError("filesystem watcher stopped unexpectedly") from None
                    continue
                if item is _STOP:
                    return
                if isinstance(item, BaseException):
                    raise WatcherError(f"filesystem watcher failed: {item}") from item
                self.handle_event(item)
        finally:
            with self._lock:
                if self._token is not None:
                    self._token.cancel()

    def join(self, timeout: float | None = None) -> None:
        """Wait for build threads to finish."""
        for worker in list(self._workers):
            worker.join(timeout)


class _EventForwarder(FileSystemEventHandler):
    def __init__(self, session: WatchSession) -> None:
        self.session = session

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.session.submit(FileEvent(str(event.src_path), "created"))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.session.submit(FileEvent(str(event.src_path), "modified"))


def watch_directory(session: WatchSession, directory: Path, initial: FileEvent) -> None:
    """Feed filesystem events under ``directory`` into ``session`` and run it."""
    observer = Observer()
    observer.schedule(_EventForwarder(session), str(directory), recursive=True)
    try:
        observer.start()
    except OSError as err:
        raise WatcherError(f"cannot watch {directory}: {err}") from err
    try:
        session.run(initial, alive=observer.is_alive)
    finally:
        observer.stop()
        observer.join()
