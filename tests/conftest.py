"""Pytest configuration for gigachat_toolkit tests."""

from __future__ import annotations

import os

import pytest
from dotenv import load_dotenv

# Ensure pytest-asyncio is always available so async tests execute without
# requiring plugins to be explicitly enabled via command line options.
pytest_plugins = ("pytest_asyncio",)

load_dotenv()

_DEFAULT_TEST_MODEL = "GigaChat"


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register custom command line options for pytest."""
    parser.addoption(
        "--gigachat-test-model",
        action="store",
        default=os.environ.get("GIGACHAT_TEST_MODEL", _DEFAULT_TEST_MODEL),
        dest="gigachat_test_model",
        help=(
            "Model identifier to use for GigaChat integration tests. "
            "Can also be provided through the GIGACHAT_TEST_MODEL environment variable."
        ),
    )


@pytest.fixture(scope="session")
def gigachat_test_model(pytestconfig: pytest.Config) -> str:
    """Return the model identifier used for GigaChat integration tests."""
    return pytestconfig.getoption("gigachat_test_model")
