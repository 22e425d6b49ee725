"""
Pytest configuration for Navlungo pricing tests.
"""

import os
import sys
import pytest
from dotenv import load_dotenv

# Add project root (and this directory, for the shared fakes) to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# Load environment variables
load_dotenv()

from navlungo_pricing.config import Settings
from navlungo_pricing.event_logger import configure_logger


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: live Navlungo portal tests"
    )
    config.addinivalue_line(
        "markers", "slow: tests that wait on a human or the network"
    )


class FakeSpan:
    """Stands in for a LangWatch span; records updates."""

    def __init__(self, name):
        self.name = name
        self.updates = []

    def update(self, **kwargs):
        self.updates.append(kwargs)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


@pytest.fixture(autouse=True)
def spans(monkeypatch, tmp_path):
    """Keep LangWatch offline and point the event log at tmp_path."""
    recorded = []

    def fake_span(type=None, name=None, **kwargs):
        span = FakeSpan(name)
        recorded.append(span)
        return span

    monkeypatch.setattr("navlungo_pricing.observability.langwatch.span", fake_span)
    configure_logger(tmp_path / "logs")
    return recorded


@pytest.fixture
def settings(tmp_path):
    """Settings with credentials and every path under tmp_path."""
    return Settings(
        email="ops@example.com",
        password="not-a-real-password",
        token_file=tmp_path / "token.json",
        screenshot_dir=tmp_path / "shots",
        log_dir=tmp_path / "logs",
        login_timeout=10,
        login_settle_delay=0,
        form_load_delay=0,
        capture_wait=0,
        interactive_timeout=5,
    )
