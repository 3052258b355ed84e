"""Pytest configuration and fixtures."""

import logging
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from hubble.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def config():
    """Mutable configuration record shared with the components under test."""
    from hubble.models import SystemConfiguration

    return SystemConfiguration(service_name="TestService")


@pytest.fixture
def settings(config):
    """Settings provider returning the shared configuration record."""
    return lambda: config


@pytest.fixture
def options():
    """Bootstrap options for an in-memory application."""
    from hubble.config import HubbleOptions

    return HubbleOptions(service_name="TestService", database_url=":memory:")


@pytest_asyncio.fixture
async def application(options):
    """Started application backed by in-memory storage."""
    from hubble.app import Application

    app = Application(options, db_path=":memory:")
    await app.start()
    yield app
    await app.stop()


@pytest.fixture
def app_logger():
    """Application logger that lets INFO records through."""
    logger = logging.getLogger("tests.app")
    previous = logger.level
    logger.setLevel(logging.DEBUG)
    yield logger
    logger.setLevel(previous)
