"""Tests for admission control — the concurrency limit and dispatch order."""

import sys
import time

import pytest

from procgroup.exceptions import ConfigurationError
from procgroup.group import Group
from procgroup.submitter import Submitter


def test_only_runs_limited_number_of_processes():
    group = Group(limit=5)
    assert group.available
    assert not group.blocking

    statuses = []
    for _ in range(5):
        Submitter(lambda: statuses.append(group.fork(lambda: sys.exit(0)))).resume()

    seen = []
    group.wait(lambda g: seen.append((len(g.processes), g.blocking)))

    assert seen == [(5, True)]
    assert statuses == [0] * 5


def test_running_never_exceeds_limit():
    group = Group(limit=2)
    observed = []

    def body():
        group.fork(lambda: time.sleep(0.2))
        observed.append(len(group.processes))

    for _ in range(5):
        Submitter(body).resume()

    start = time.monotonic()
    group.wait(lambda g: observed.append(len(g.processes)))
    elapsed = time.monotonic() - start

    assert len(observed) == 6
    assert max(observed) <= 2
    # Three rounds of two:
    assert elapsed == pytest.approx(0.6, abs=0.2)


def test_dispatch_is_fifo():
    group = Group(limit=1)
    order = []

    for label in "abc":
        group.run(lambda: None, on_complete=lambda status, label=label: order.append(label))

    group.wait()
    assert order == ["a", "b", "c"]


def test_resumption_follows_exit_order(group):
    order = []
    group.run(lambda: time.sleep(0.3), on_complete=lambda status: order.append("slow"))
    group.run(lambda: time.sleep(0.1), on_complete=lambda status: order.append("fast"))

    group.wait()
    assert order == ["fast", "slow"]


def test_unlimited_by_default(group):
    assert group.limit is None
    seen = []
    for _ in range(10):
        group.run(lambda: None)
    group.wait(lambda g: seen.append((len(g.processes), g.blocking)))
    assert seen == [(10, False)]


@pytest.mark.parametrize("limit", [0, -1, 1.5, "2", True])
def test_invalid_limit(limit):
    with pytest.raises(ConfigurationError):
        Group(limit=limit)


def test_limit_can_change(group):
    group.limit = 1
    assert group.limit == 1
    group.limit = None
    assert group.limit is None
    with pytest.raises(ConfigurationError):
        group.limit = 0
