"""Shared test fixtures — groups and signal-call recorders."""

from __future__ import annotations

import signal

import pytest

from procgroup.group import Group


@pytest.fixture(autouse=True)
def default_sigint():
    """Make sure SIGINT raises KeyboardInterrupt here and is fatal in exec'd children.

    Test runners started in the background inherit SIGINT ignored, which exec
    would pass on to every spawned command.
    """
    previous = signal.signal(signal.SIGINT, signal.default_int_handler)
    yield
    signal.signal(signal.SIGINT, previous)


@pytest.fixture
def group():
    return Group()


@pytest.fixture
def record_kills():
    """Wrap a group's kill() so tests can assert on every signal requested."""
    def _factory(group: Group) -> list:
        calls: list = []
        original = group.kill

        def _kill(sig=signal.SIGINT):
            calls.append(sig)
            return original(sig)

        group.kill = _kill
        return calls
    return _factory
