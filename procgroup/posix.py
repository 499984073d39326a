"""POSIX primitives — spawning, forking, process groups, signals, reaping.

These are the only places procgroup talks to the kernel. They know nothing
about queues or submitters; procgroup.group builds the supervisor on top.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
import traceback
from typing import Any, Callable

from procgroup.exceptions import ConfigurationError, DeliveryError, StateError
from procgroup.types import ExitStatus, Placement, TaskOptions

_logger = logging.getLogger(__name__)

# Python ignores these at startup; children start with the default disposition
_RESTORED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGPIPE", "SIGXFSZ") if hasattr(signal, name)
)


def launch_external(argv: list[str], options: TaskOptions, placement: Placement) -> int:
    """Start an external program directly in its process group."""
    env = dict(os.environ)
    if options.env:
        env.update(options.env)

    file_actions = [
        (os.POSIX_SPAWN_DUP2, source, target)
        for source, target in options.redirections()
    ]

    pid = os.posix_spawnp(
        argv[0],
        argv,
        env,
        file_actions=file_actions or None,
        setpgroup=placement.pgid,
        setsigdef=_RESTORED_SIGNALS,
    )
    pgid = pid if placement.is_leader else placement.pgid
    _logger.debug("Spawned %s as pid %d (pgroup %d)", argv[0], pid, pgid)
    return pid


def launch_callback_process(
    callback: Callable[[], Any], options: TaskOptions, placement: Placement,
) -> int:
    """Fork, run ``callback`` in the child, and return the child's pid."""
    _flush_std_streams()

    pid = os.fork()
    if pid == 0:
        _run_child(callback, options, placement)

    join_process_group(pid, placement)
    pgid = pid if placement.is_leader else placement.pgid
    _logger.debug("Forked pid %d (pgroup %d)", pid, pgid)
    return pid


def join_process_group(pid: int, placement: Placement) -> None:
    """Put ``pid`` in its placement group, from the parent side."""
    try:
        os.setpgid(pid, placement.pgid)
    except OSError as e:
        # The child applies the same placement itself, and may have exited already.
        _logger.debug("setpgid(%d, %d) from parent failed: %s", pid, placement.pgid, e)


def signal_group(pgid: int, sig: signal.Signals) -> None:
    try:
        os.killpg(pgid, sig)
    except OSError as e:
        raise DeliveryError(
            f"Could not deliver {sig.name} to process group {pgid}: {e}"
        ) from e


def reap_group_member(pgid: int, blocking: bool = True) -> tuple[int, ExitStatus] | None:
    """Collect one exited member of the group; None if non-blocking and none exited."""
    flags = 0 if blocking else os.WNOHANG
    try:
        pid, status = os.waitpid(-pgid, flags)
    except ChildProcessError as e:
        raise StateError(f"Process group {pgid} has no children left to reap") from e

    if pid == 0:
        return None
    return pid, os.waitstatus_to_exitcode(status)


def resolve_signal(sig: signal.Signals | int | str) -> signal.Signals:
    """Accept Signals members, numbers, or names like "INT" / "SIGTERM"."""
    if isinstance(sig, str):
        name = sig.upper()
        if not name.startswith("SIG"):
            name = "SIG" + name
        try:
            return signal.Signals[name]
        except KeyError:
            raise ConfigurationError(f"Unknown signal {sig!r}") from None

    try:
        return signal.Signals(sig)
    except ValueError:
        raise ConfigurationError(f"Unknown signal {sig!r}") from None


def _flush_std_streams() -> None:
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (AttributeError, ValueError, OSError):
            pass


def _exit_code(code: Any) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    print(code, file=sys.stderr)
    return 1


def _die_from(sig: signal.Signals) -> None:
    """Terminate the current process by ``sig`` so the parent sees it signaled."""
    _flush_std_streams()
    try:
        signal.signal(sig, signal.SIG_DFL)
    except ValueError:
        return  # handlers can only be changed from the main thread
    os.kill(os.getpid(), sig)


def _run_child(callback: Callable[[], Any], options: TaskOptions, placement: Placement) -> None:
    """Body of a forked child. Never returns."""
    code = 1
    try:
        try:
            os.setpgid(0, placement.pgid)
        except OSError as e:
            print(
                f"procgroup: child {os.getpid()} failed to set process group "
                f"to {placement.pgid}: {e}",
                file=sys.stderr,
            )

        for source, target in options.redirections():
            os.dup2(source, target)
        if options.env:
            os.environ.update(options.env)

        callback()
        code = 0
    except SystemExit as e:
        code = _exit_code(e.code)
    except KeyboardInterrupt:
        _die_from(signal.SIGINT)
        code = 128 + signal.SIGINT
    except BaseException:
        traceback.print_exc()
        code = 1
    finally:
        _flush_std_streams()
        os._exit(code)
