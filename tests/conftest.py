"""
Pytest configuration and shared fixtures for share daemon tests.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

from share_daemon.api import ShareDaemon
from share_daemon.shares.registry import ShareRegistry
from share_daemon.utils.config import DaemonConfig
from tests.fixtures.share_fixtures import FakeProcessFactory, ShareFixtures


# Test configuration
TEST_CONFIG = {
    "logging": {
        "level": "DEBUG",
        "enable_json": False,
        "enable_console": False,
    },
    "rpc": {
        "host": "127.0.0.1",
        "port": 0,
        "request_timeout": 5.0,
    },
    "supervisor": {
        "kill_grace_period": 0.05,
        "restart_timeout": 2.0,
    },
}


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def daemon_config(temp_dir: Path) -> DaemonConfig:
    """Daemon configuration rooted in the temp directory."""
    config = DaemonConfig(**TEST_CONFIG)
    config.logging.directory = temp_dir / "logs"
    config.supervisor.share_log_dir = temp_dir / "logs" / "shares"
    config.supervisor.snapshot_path = temp_dir / "autosave.json"
    return config


@pytest.fixture
def share_config(temp_dir: Path) -> Path:
    """A valid share config file on disk."""
    return ShareFixtures.write_config(temp_dir)


@pytest.fixture
def registry() -> ShareRegistry:
    return ShareRegistry()


@pytest.fixture
def process_factory() -> FakeProcessFactory:
    return FakeProcessFactory()


@pytest.fixture
def allocation_validator() -> AsyncMock:
    """Allocation validator that accepts every config."""
    return AsyncMock(return_value=None)


@pytest.fixture
def exit_hook() -> MagicMock:
    return MagicMock()


@pytest.fixture
def daemon(daemon_config, process_factory, allocation_validator, exit_hook) -> ShareDaemon:
    """ShareDaemon wired to fake worker processes."""
    return ShareDaemon(
        daemon_config,
        process_factory=process_factory,
        validate_allocation=allocation_validator,
        exit_hook=exit_hook,
    )
