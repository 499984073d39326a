"""Group — the process group supervisor.

Runs external commands and forked callbacks as children in one OS process
group, admits at most ``limit`` of them at a time, and drives the submitters
waiting on them from a single blocking reap loop.

    group = Group(limit=4)
    for path in paths:
        group.run("gzip", path, on_complete=lambda status: print(status))
    group.wait()

Interrupting wait() sends SIGINT to the whole group, reaps every child, then
re-raises. Any other failure gets SIGTERM instead. Either way no child is left
unreaped once wait() returns or raises.

Signals go to the group as a unit. A child that joins the group while a
broadcast is being delivered may miss it; this race is accepted.
"""

from __future__ import annotations

import logging
import os
import signal
from collections import deque
from types import MappingProxyType
from typing import Any, Callable, Mapping

from procgroup import posix
from procgroup.exceptions import ConfigurationError, DeliveryError, StateError
from procgroup.submitter import Submitter
from procgroup.tasks import ExternalCommand, ForkedCallback, Task, make_options
from procgroup.terminal import ForegroundTerminal
from procgroup.types import ExitStatus, Placement

_logger = logging.getLogger(__name__)

SetupCallback = Callable[["Group"], Any]
CompletionCallback = Callable[[ExitStatus], Any]


class Group:
    """A set of child processes sharing one OS process group.

    Nothing is launched until wait() runs; submissions made before that are
    queued. Whoever creates a group must eventually call wait() so that every
    parked submitter is resumed.
    """

    def __init__(
        self,
        limit: int | None = None,
        terminal: ForegroundTerminal | None = None,
    ) -> None:
        self._owner_pid = os.getpid()
        self._queue: deque[Task] = deque()
        self._running: dict[int, Task] = {}
        self._limit = _check_limit(limit)
        self._pgid: int | None = None  # pid of the first child since running was empty
        self._waiting = False
        self.terminal = terminal

    # ── State ─────────────────────────────────────────────────────

    @property
    def limit(self) -> int | None:
        """Maximum number of concurrent children, or None for unlimited."""
        return self._limit

    @limit.setter
    def limit(self, value: int | None) -> None:
        self._limit = _check_limit(value)

    @property
    def id(self) -> int:
        """The process group id, only valid while processes are running."""
        if not self._running:
            raise StateError("No processes in group, no group id available")
        return self._pgid

    @property
    def processes(self) -> Mapping[int, Task]:
        """Snapshot of the running table, pid to task."""
        return MappingProxyType(dict(self._running))

    @property
    def running(self) -> bool:
        return bool(self._running)

    @property
    def queued(self) -> bool:
        return bool(self._queue)

    @property
    def waiting(self) -> bool:
        return self._waiting

    @property
    def available(self) -> bool:
        """Whether a submission could be dispatched right away."""
        return self._limit is None or len(self._running) < self._limit

    @property
    def blocking(self) -> bool:
        """Whether a submission would have to wait for a free slot."""
        return not self.available

    # ── Submission ────────────────────────────────────────────────

    def spawn(self, *arguments: str, **options: Any) -> ExitStatus:
        """Run a command as a child; parks the calling submitter until it exits.

        Accepts an argv (``spawn("sleep", "1")``) or a single command line
        (``spawn("echo $HOME")``). Options are those of TaskOptions.
        """
        submitter = _current_submitter("spawn")
        return self._append(
            ExternalCommand(arguments, make_options(options), submitter), submitter,
        )

    def fork(self, callback: Callable[[], Any], **options: Any) -> ExitStatus:
        """Run ``callback`` in a forked child; parks the calling submitter until it exits."""
        submitter = _current_submitter("fork")
        return self._append(
            ForkedCallback(callback, make_options(options), submitter), submitter,
        )

    def run(
        self,
        *arguments: Any,
        on_complete: CompletionCallback | None = None,
        **options: Any,
    ) -> None:
        """Submit from a fresh submitter, so the caller itself is never parked.

        A callable first argument is forked, anything else is spawned.
        ``on_complete`` is called with the exit status once the child is reaped.
        """
        def _submit() -> None:
            if arguments and callable(arguments[0]):
                callback, *rest = arguments
                if rest:
                    raise ConfigurationError("run() takes no arguments after a callable")
                status = self.fork(callback, **options)
            else:
                status = self.spawn(*arguments, **options)

            if on_complete is not None:
                on_complete(status)

        Submitter(_submit, name="run").resume()

    def _append(self, task: Task, submitter: Submitter) -> ExitStatus:
        self._queue.append(task)

        # Without an active wait() nobody would reap the child, so launching waits too.
        if self._waiting:
            self._schedule()

        return submitter.park()

    # ── Scheduling ────────────────────────────────────────────────

    def _schedule(self) -> None:
        """Dispatch queued tasks, in order, while there is room."""
        while self.available and self._queue:
            task = self._queue.popleft()

            try:
                if not self._running:
                    pid = task.start(Placement.leader())
                    # The process group id is the pid of the first process:
                    self._pgid = pid
                else:
                    pid = task.start(Placement.join(self._pgid))
            except BaseException:
                # Not launched, so still queued; the drain discards it.
                self._queue.appendleft(task)
                raise

            self._running[pid] = task
            _logger.debug("Dispatched %r in process group %d", task, self._pgid)

            if task.foreground and self.terminal is not None:
                self.terminal.set_foreground(self._pgid)

    # ── Reaping ───────────────────────────────────────────────────

    def wait(self, setup: SetupCallback | None = None) -> Group:
        """Run every queued and running child to completion.

        ``setup`` is called with the group after deferred submissions have been
        dispatched, inside the same interrupt handling as the reap loop.
        """
        if self._owner_pid != os.getpid():
            raise StateError("Cannot call Group.wait() from a child process")
        if self._waiting:
            raise StateError("Group.wait() is already running")

        self._waiting = True
        try:
            self._schedule()

            if setup is not None:
                setup(self)

            while self._running:
                task, status = self._reap_one()
                self._schedule()
                task.notify(status)

            self._pgid = None
            return self
        except KeyboardInterrupt:
            _logger.info("Interrupted, sending SIGINT to process group %s", self._pgid)
            self.kill(signal.SIGINT)
            # A second interrupt here falls through to the SIGTERM below.
            self._drain()
            raise
        finally:
            self._waiting = False
            self._terminate()

    def _reap_one(self) -> tuple[Task, ExitStatus]:
        pid, status = posix.reap_group_member(self._pgid)

        task = self._running.pop(pid, None)
        if task is None:
            raise StateError(f"Process id={pid} is not part of group {self._pgid}")

        _logger.debug("Reaped %r with status %d", task, status)
        return task, status

    def _terminate(self) -> None:
        """Last resort on the way out of wait(): SIGTERM whatever remains, then drain."""
        try:
            self.kill(signal.SIGTERM)
        except DeliveryError as e:
            # Only zombies left by a failure in user code refuse delivery (EPERM).
            if not isinstance(e.__cause__, PermissionError):
                raise
            _logger.warning("Ignoring failed SIGTERM broadcast: %s", e)
        finally:
            self._drain()

    def _drain(self) -> None:
        """Reap every child and drop queued work, without resuming submitters."""
        self._waiting = False
        discarded = list(self._queue)
        self._queue.clear()

        while self._running:
            task, status = self._reap_one()
            discarded.append(task)

        self._pgid = None

        for task in discarded:
            try:
                task.discard()
            except Exception:
                _logger.warning("Ignoring error while discarding %r", task, exc_info=True)

    # ── Signals ───────────────────────────────────────────────────

    def kill(self, sig: signal.Signals | int | str = signal.SIGINT) -> None:
        """Send a signal to every process in the group. No-op unless running."""
        sig = posix.resolve_signal(sig)
        if not self._running:
            return

        _logger.debug("Sending %s to process group %d", sig.name, self._pgid)
        posix.signal_group(self._pgid, sig)


def wait(
    setup: SetupCallback | None = None,
    *,
    limit: int | None = None,
    terminal: ForegroundTerminal | None = None,
) -> Group:
    """Create a group and wait on it; ``setup`` receives the group to submit work."""
    return Group(limit=limit, terminal=terminal).wait(setup)


def _current_submitter(operation: str) -> Submitter:
    submitter = Submitter.current()
    if submitter is None:
        raise StateError(
            f"{operation}() parks its caller and must run inside a Submitter; "
            "use run() to submit from the root context"
        )
    return submitter


def _check_limit(limit: int | None) -> int | None:
    if limit is None:
        return None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ConfigurationError("Limit must be None (unlimited) or > 0")
    return limit
