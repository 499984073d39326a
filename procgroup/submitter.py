"""Submitters — cooperative execution contexts for code that waits on children.

A submitter runs a callable on its own thread, but only while whoever resumed
it is blocked waiting for control to come back. At most one context runs at a
time, so the group can mutate its queue and running table without locks.

    def build():
        status = group.spawn("make", "all")
        print("make exited with", status)

    Submitter(build).resume()   # runs until spawn() parks
    group.wait()                # resumes build() once make exits
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum
from typing import Any, Callable

from procgroup.exceptions import StateError

_logger = logging.getLogger(__name__)
_local = threading.local()

# Messages a submitter sends back to its resumer
_PARKED = "parked"
_FINISHED = "finished"
_RAISED = "raised"


class SubmitterState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    PARKED = "parked"
    FINISHED = "finished"


class SubmitterExit(BaseException):
    """Raised at a park point to unwind an abandoned submitter."""


class Submitter:
    """A parked-thread continuation.

    ``resume(value)`` transfers control and blocks until the submitter parks
    or finishes. Inside the submitter, ``park()`` transfers control back and
    returns the value of the next ``resume``. Exceptions escaping the target
    are re-raised in the resumer.
    """

    def __init__(
        self,
        target: Callable[..., Any],
        *args: Any,
        name: str | None = None,
        **kwargs: Any,
    ) -> None:
        self._target = target
        self._args = args
        self._kwargs = kwargs
        self.name = name or getattr(target, "__name__", "submitter")
        self._state = SubmitterState.CREATED
        self._inbox: queue.SimpleQueue = queue.SimpleQueue()
        self._outbox: queue.SimpleQueue = queue.SimpleQueue()
        self._thread = threading.Thread(
            target=self._main, name=f"submitter-{self.name}", daemon=True,
        )

    @classmethod
    def start(cls, target: Callable[..., Any], *args: Any, **kwargs: Any) -> Submitter:
        """Create a submitter and run it up to its first park point."""
        submitter = cls(target, *args, **kwargs)
        submitter.resume()
        return submitter

    @staticmethod
    def current() -> Submitter | None:
        """The submitter running on this thread, or None in the root context."""
        return getattr(_local, "submitter", None)

    @property
    def state(self) -> SubmitterState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state == SubmitterState.FINISHED

    def resume(self, value: Any = None) -> Any:
        """Run until the next park point; returns the target's result if it finished."""
        if self._state not in (SubmitterState.CREATED, SubmitterState.PARKED):
            raise StateError(
                f"Cannot resume submitter {self.name} while it is {self._state.value}"
            )
        self._transfer(value, None)
        return self._receive()

    def park(self) -> Any:
        """Hand control back to the resumer and wait to be resumed."""
        if Submitter.current() is not self:
            raise StateError(f"Submitter {self.name} can only be parked from its own thread")
        self._state = SubmitterState.PARKED
        self._outbox.put((_PARKED, None))
        value, error = self._inbox.get()
        if error is not None:
            raise error
        return value

    def close(self) -> None:
        """Abandon a submitter that will never be resumed.

        Raises SubmitterExit at its park point so the thread unwinds. Any other
        exception the target raises while unwinding propagates from here.
        """
        if self._state == SubmitterState.FINISHED:
            return
        if self._state == SubmitterState.CREATED:
            self._state = SubmitterState.FINISHED
            return
        if self._state != SubmitterState.PARKED:
            raise StateError(f"Cannot close submitter {self.name} while it is running")

        self._transfer(None, SubmitterExit())
        try:
            self._receive()
        finally:
            if self._state == SubmitterState.FINISHED:
                self._thread.join()
        if self._state != SubmitterState.FINISHED:
            raise StateError(f"Submitter {self.name} ignored SubmitterExit")

    def _transfer(self, value: Any, error: BaseException | None) -> None:
        first = self._state == SubmitterState.CREATED
        self._state = SubmitterState.RUNNING
        if first:
            self._thread.start()
        self._inbox.put((value, error))

    def _receive(self) -> Any:
        try:
            kind, payload = self._outbox.get()
        except BaseException:
            # A signal landed in the resumer; let the submitter give up control first.
            self._outbox.get()
            raise
        if kind == _RAISED:
            raise payload
        return payload

    def _main(self) -> None:
        _local.submitter = self
        _, error = self._inbox.get()
        try:
            if error is not None:
                raise error
            result = self._target(*self._args, **self._kwargs)
        except SubmitterExit:
            self._state = SubmitterState.FINISHED
            self._outbox.put((_FINISHED, None))
        except BaseException as exc:
            _logger.debug("Submitter %s raised %r", self.name, exc)
            self._state = SubmitterState.FINISHED
            self._outbox.put((_RAISED, exc))
        else:
            self._state = SubmitterState.FINISHED
            self._outbox.put((_FINISHED, result))


def suspend() -> Any:
    """Park the current submitter until something resumes it."""
    submitter = Submitter.current()
    if submitter is None:
        raise StateError("suspend() called outside of a submitter")
    return submitter.park()
