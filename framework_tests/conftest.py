"""Test configuration and fixtures for framework unit tests."""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from resilience.core.types import ResilienceConfig, TimeoutConfig


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp(prefix="resilience_test_"))
    try:
        yield temp_path
    finally:
        if temp_path.exists():
            shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def local_config(temp_dir):
    """Configuration selecting the local runner, rooted in temp_dir."""
    return ResilienceConfig(
        arango_basepath=temp_dir / "arangodb",
        temp_dir=temp_dir / "tmp",
        logs_dir=temp_dir / "logs",
        timeouts=TimeoutConfig(health_retry_interval=0.01, kill_poll_interval=0.01),
    )


@pytest.fixture
def docker_config(temp_dir):
    """Configuration selecting the docker runner."""
    return ResilienceConfig(
        docker_image="arangodb/arangodb:3.3",
        logs_dir=temp_dir / "logs",
        timeouts=TimeoutConfig(health_retry_interval=0.01, kill_poll_interval=0.01),
    )


@pytest.fixture
def isolated_environment():
    """Run with an empty environment."""
    with patch.dict("os.environ", {}, clear=True):
        yield
