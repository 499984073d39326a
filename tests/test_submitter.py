"""Tests for submitters — cooperative park/resume contexts."""

import threading

import pytest

from procgroup.exceptions import StateError
from procgroup.submitter import Submitter, SubmitterExit, SubmitterState, suspend


def test_runs_until_first_park():
    trace = []

    def body():
        trace.append("start")
        value = suspend()
        trace.append(value)

    submitter = Submitter(body)
    assert submitter.state == SubmitterState.CREATED

    submitter.resume()
    assert trace == ["start"]
    assert submitter.state == SubmitterState.PARKED

    submitter.resume("resumed")
    assert trace == ["start", "resumed"]
    assert submitter.finished


def test_resume_returns_target_result():
    submitter = Submitter(lambda: 42)
    assert submitter.resume() == 42
    assert submitter.finished


def test_arguments_are_passed_to_target():
    submitter = Submitter(lambda a, b=0: a + b, 1, b=2)
    assert submitter.resume() == 3


def test_start_runs_to_first_park():
    trace = []
    submitter = Submitter.start(lambda: trace.append(suspend()))
    assert submitter.state == SubmitterState.PARKED
    submitter.resume("x")
    assert trace == ["x"]


def test_only_one_context_runs_at_a_time():
    seen = []

    def body():
        seen.append(threading.current_thread().name)
        suspend()
        seen.append(threading.current_thread().name)

    submitter = Submitter(body, name="worker")
    submitter.resume()
    seen.append(threading.current_thread().name)
    submitter.resume()

    assert seen == ["submitter-worker", threading.current_thread().name, "submitter-worker"]


def test_exception_propagates_to_resumer():
    def body():
        suspend()
        raise ValueError("boom")

    submitter = Submitter.start(body)
    with pytest.raises(ValueError, match="boom"):
        submitter.resume()
    assert submitter.finished


def test_keyboard_interrupt_propagates_to_resumer():
    def body():
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        Submitter(body).resume()


def test_resume_finished_submitter_raises():
    submitter = Submitter(lambda: None)
    submitter.resume()
    with pytest.raises(StateError):
        submitter.resume()


def test_current_is_none_in_root_context():
    assert Submitter.current() is None


def test_current_inside_submitter():
    found = []
    submitter = Submitter(lambda: found.append(Submitter.current()))
    submitter.resume()
    assert found == [submitter]


def test_suspend_outside_submitter_raises():
    with pytest.raises(StateError):
        suspend()


def test_park_from_other_thread_raises():
    submitter = Submitter.start(suspend)
    with pytest.raises(StateError):
        submitter.park()
    submitter.close()


def test_close_unwinds_parked_submitter():
    trace = []

    def body():
        try:
            suspend()
            trace.append("resumed")
        finally:
            trace.append("unwound")

    submitter = Submitter.start(body)
    submitter.close()
    assert trace == ["unwound"]
    assert submitter.finished


def test_close_unstarted_submitter():
    trace = []
    submitter = Submitter(lambda: trace.append("ran"))
    submitter.close()
    assert submitter.finished
    assert trace == []


def test_close_is_idempotent():
    submitter = Submitter.start(suspend)
    submitter.close()
    submitter.close()
    assert submitter.finished


def test_close_propagates_errors_raised_while_unwinding():
    def body():
        try:
            suspend()
        except SubmitterExit:
            raise RuntimeError("cleanup failed")

    submitter = Submitter.start(body)
    with pytest.raises(RuntimeError, match="cleanup failed"):
        submitter.close()


def test_close_rejects_submitter_that_parks_again():
    def body():
        try:
            suspend()
        except SubmitterExit:
            suspend()

    submitter = Submitter.start(body)
    with pytest.raises(StateError):
        submitter.close()


def test_nested_resume():
    trace = []

    def inner():
        trace.append("inner")
        suspend()
        trace.append("inner resumed")

    def outer():
        child = Submitter.start(inner)
        trace.append("outer")
        suspend()
        child.resume()

    parent = Submitter.start(outer)
    assert trace == ["inner", "outer"]
    parent.resume()
    assert trace == ["inner", "outer", "inner resumed"]
