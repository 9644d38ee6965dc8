"""Pytest configuration and shared fixtures for the QR detection engine.

Synthetic images and test doubles live in ``fakes.py``; this module wires
them into fixtures.
"""
import logging
import sys
import tempfile
from pathlib import Path

import numpy as np
import pytest

# Add the project root and this directory to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).parent))

from qrdx.config.settings import Config
from fakes import ChannelFactorySpy, finder_grid, render_qr


# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logging.getLogger('PIL').setLevel(logging.WARNING)


@pytest.fixture(scope="session")
def project_root():
    """Provide project root directory path."""
    return PROJECT_ROOT


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def thread_config():
    """Configuration that keeps the backend worker in-process."""
    return Config(worker_mode="thread", request_timeout_s=5.0, init_timeout_s=10.0)


@pytest.fixture
def qr_image():
    """A clean, square QR render of https://example.com."""
    return render_qr("https://example.com")


@pytest.fixture
def blank_image():
    """Plain white RGBA canvas."""
    return np.full((200, 200, 4), 255, dtype=np.uint8)


@pytest.fixture
def finder_grid_image():
    """25x25-module grid with three corner eyes and five decoys."""
    return finder_grid()


@pytest.fixture
def channel_factory_spy():
    return ChannelFactorySpy()


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
