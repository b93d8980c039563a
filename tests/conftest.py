"""Shared pytest fixtures for Shipline tests."""

from __future__ import annotations

import logging
import os

import pytest
import structlog

_CONFIG_ENV_VARS = (
    "DOCKER_REGISTRY",
    "DOCKER_USERNAME",
    "DOCKER_PASSWORD",
    "K8S_NAMESPACE",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep CI credentials and SHIPLINE_* overrides out of the tests."""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("SHIPLINE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration around each test.

    CLI tests configure handlers on streams the runner closes afterwards.
    """
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
