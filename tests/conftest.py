"""Shared pytest configuration for the examsync test suite."""

import logging
from collections.abc import Generator
from typing import Any

import pytest
from colorlog import ColoredFormatter

from examsync.core.timezone_utils import TEST_TIME_ENV_VAR
from examsync.logging_config import DEBUG_ENV_VAR, EXAMSYNC_MODULES, LOG_LEVEL_ENV_VAR, QUIET_LOGGERS


def pytest_configure(config: Any) -> None:
    """Register custom markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "fast: Tests without I/O beyond tmp_path")
    config.addinivalue_line("markers", "integration: Tests spanning several modules")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, Any, None]:
    """Ensure the frozen clock and logging overrides never leak between tests."""
    for name in (TEST_TIME_ENV_VAR, DEBUG_ENV_VAR, LOG_LEVEL_ENV_VAR, "EXAMSYNC_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def restore_logging_state() -> Generator[None, Any, None]:
    """Undo configure_logging() side effects on the root and module loggers."""
    root = logging.getLogger()
    root_level = root.level
    names = [*EXAMSYNC_MODULES, *QUIET_LOGGERS]
    levels = {name: logging.getLogger(name).level for name in names}

    yield

    for handler in list(root.handlers):
        if isinstance(handler.formatter, ColoredFormatter):
            root.removeHandler(handler)
    root.setLevel(root_level)
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)
