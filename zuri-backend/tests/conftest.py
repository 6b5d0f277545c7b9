"""
Pytest configuration.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, providers and services modules,
and provides isolated stub contexts.
"""

import sys
from pathlib import Path

import pytest

# Add the zuri-backend directory to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from services.context import build_stub_context  # noqa: E402
from settings import Settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(external_call_timeout_seconds=5.0)


@pytest.fixture
def context(settings):
    return build_stub_context(settings)


@pytest.fixture
def pending_context(settings):
    """Stub context whose verifiers confirm only explicitly confirmed funding txs."""
    return build_stub_context(settings, auto_confirm=False)
