"""Pytest configuration and fixtures for html2pdf-service tests."""

import os

import pytest

from tests.fake_engine import FakeEngine

# The dedicated metrics server binds a real port, tests use metrics_app directly
os.environ.setdefault("METRICS_SERVER_ENABLED", "false")


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom command-line options to pytest."""
    parser.addoption(
        "--save-test-outputs",
        action="store_true",
        default=False,
        help="Save generated PDFs to disk for manual inspection",
    )


@pytest.fixture
def save_test_outputs(request: pytest.FixtureRequest) -> bool:
    """Fixture to check if test outputs should be saved to disk."""
    return request.config.getoption("--save-test-outputs")


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()
