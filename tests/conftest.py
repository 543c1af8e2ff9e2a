"""Shared fixtures: isolate every test from the user's real config and state."""

from __future__ import annotations

import logging
import sys

import pytest

from cmdgate.config import GateConfig


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    for name in ("CMDGATE_DISABLE", "CLAUDE_CODE_REMOTE", "CMDGATE_LOG_LEVEL", "CLAUDE_PROJECT_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CMDGATE_CONFIG", str(tmp_path / "no-such-config.yaml"))
    monkeypatch.setenv("CMDGATE_STATE_DIR", str(tmp_path / "state"))

    excepthook = sys.excepthook
    yield
    sys.excepthook = excepthook

    # The CLI attaches a file handler to the package logger
    logger = logging.getLogger("cmdgate")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def config(state_dir):
    return GateConfig(state_dir=state_dir)


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return str(path)
