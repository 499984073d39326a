"""Controlling terminal — hands the foreground to a process group."""

from __future__ import annotations

import logging
import os
import signal
from typing import Protocol

_logger = logging.getLogger(__name__)


class ForegroundTerminal(Protocol):
    def set_foreground(self, pgid: int) -> None: ...


class ControllingTerminal:
    """The process's controlling tty, driven with tcsetpgrp()."""

    def __init__(self, fd: int) -> None:
        self.fd = fd
        self.original_pgid = os.tcgetpgrp(fd)

    @classmethod
    def open(cls, path: str = "/dev/tty") -> ControllingTerminal | None:
        """Open the controlling terminal, or None when there isn't one."""
        try:
            fd = os.open(path, os.O_RDWR | os.O_NOCTTY)
        except OSError as e:
            _logger.debug("No controlling terminal at %s: %s", path, e)
            return None

        try:
            return cls(fd)
        except OSError as e:
            os.close(fd)
            _logger.debug("%s is not usable as a controlling terminal: %s", path, e)
            return None

    def set_foreground(self, pgid: int) -> None:
        # tcsetpgrp() from a background group raises SIGTTOU unless it is blocked.
        # The mask is per thread, so this also works from a submitter.
        previous = signal.pthread_sigmask(signal.SIG_BLOCK, {signal.SIGTTOU})
        try:
            os.tcsetpgrp(self.fd, pgid)
        finally:
            signal.pthread_sigmask(signal.SIG_SETMASK, previous)
        _logger.debug("Process group %d moved to the foreground", pgid)

    def restore(self) -> None:
        """Give the foreground back to the group that had it when opened."""
        self.set_foreground(self.original_pgid)

    def close(self) -> None:
        os.close(self.fd)
