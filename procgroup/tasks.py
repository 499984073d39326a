"""Tasks — one child process each, plus the submitter waiting on it."""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from typing import Any, Callable

from pydantic import ValidationError

from procgroup import posix
from procgroup.config import settings
from procgroup.exceptions import ConfigurationError, StateError
from procgroup.submitter import Submitter
from procgroup.types import ExitStatus, Placement, TaskOptions

# A command line containing any of these goes through the shell
_SHELL_METACHARACTERS = set("*?{}[]<>()~&|\\$;'`\"\n#=%")

# Reserved words and special built-ins only the shell can run
_SHELL_WORDS = {
    "!", "{", "}", "case", "do", "done", "elif", "else", "esac", "fi", "for",
    "if", "in", "then", "until", "while",
    ".", ":", "break", "continue", "eval", "exec", "exit", "export",
    "readonly", "return", "set", "shift", "times", "trap", "unset",
}


def command_argv(arguments: tuple[str, ...] | list[str]) -> list[str]:
    """Turn spawn() arguments into an argv.

    Several arguments are an argv already. A single string is a command line:
    plain words are split, anything using shell syntax runs via the shell.
    """
    if not arguments:
        raise ConfigurationError("A command needs at least one argument")
    if len(arguments) > 1:
        return [str(a) for a in arguments]

    line = str(arguments[0])
    if _SHELL_METACHARACTERS & set(line):
        return [settings.shell, "-c", line]

    argv = shlex.split(line)
    if not argv:
        raise ConfigurationError("A command needs at least one argument")
    if argv[0] in _SHELL_WORDS:
        return [settings.shell, "-c", line]
    return argv


def make_options(options: dict[str, Any]) -> TaskOptions:
    try:
        return TaskOptions(**options)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid task options: {e}") from e


class Task(ABC):
    """A queued or running child, and the submitter to resume when it exits."""

    def __init__(self, options: TaskOptions, submitter: Submitter | None) -> None:
        self.options = options
        self.pid: int | None = None
        self._submitter = submitter

    @property
    def foreground(self) -> bool:
        return self.options.foreground

    def start(self, placement: Placement) -> int:
        self.pid = self._launch(placement)
        return self.pid

    @abstractmethod
    def _launch(self, placement: Placement) -> int:
        """Create the child process in ``placement`` and return its pid."""

    def notify(self, status: ExitStatus) -> None:
        """Resume the submitter with the exit status; the handle is released after."""
        submitter = self._release()
        submitter.resume(status)

    def discard(self) -> None:
        """Drop the task without resuming its submitter."""
        if self._submitter is None:
            return
        self._release().close()

    def _release(self) -> Submitter:
        if self._submitter is None:
            raise StateError(f"{self!r} has already been resumed")
        submitter, self._submitter = self._submitter, None
        return submitter


class ExternalCommand(Task):
    def __init__(
        self,
        arguments: tuple[str, ...] | list[str],
        options: TaskOptions,
        submitter: Submitter | None = None,
    ) -> None:
        super().__init__(options, submitter)
        self.argv = command_argv(arguments)

    def _launch(self, placement: Placement) -> int:
        return posix.launch_external(self.argv, self.options, placement)

    def __repr__(self) -> str:
        return f"ExternalCommand({shlex.join(self.argv)!r}, pid={self.pid})"


class ForkedCallback(Task):
    def __init__(
        self,
        callback: Callable[[], Any],
        options: TaskOptions,
        submitter: Submitter | None = None,
    ) -> None:
        if not callable(callback):
            raise ConfigurationError(f"fork() requires a callable, got {callback!r}")
        super().__init__(options, submitter)
        self.callback = callback

    def _launch(self, placement: Placement) -> int:
        return posix.launch_callback_process(self.callback, self.options, placement)

    def __repr__(self) -> str:
        name = getattr(self.callback, "__name__", repr(self.callback))
        return f"ForkedCallback({name}, pid={self.pid})"
