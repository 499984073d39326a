"""CLI fixtures — keep the CLI from reconfiguring the test session's logging."""

import pytest

from procgroup.cli import main


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(main, "setup_logging", lambda level: None)
