"""Tests for configuration models."""

from pathlib import Path

import pytest

from resilience.core.enums import InstanceRole, RunnerKind
from resilience.core.errors import ConfigurationError
from resilience.core.types import PortConfig, ResilienceConfig, TimeoutConfig


class TestTimeoutConfig:
    """Test TimeoutConfig defaults."""

    def test_defaults(self) -> None:
        """Test polling intervals match the documented values."""
        timeouts = TimeoutConfig()
        assert timeouts.health_retry_interval == 0.1
        assert timeouts.kill_poll_interval == 0.05


class TestPortConfig:
    """Test PortConfig."""

    def test_start_port_includes_offset(self) -> None:
        """Test the start port is base port plus offset."""
        assert PortConfig().start_port == 40000
        assert PortConfig(port_offset=300).start_port == 40300


class TestResilienceConfig:
    """Test ResilienceConfig validation."""

    def test_local_strategy(self) -> None:
        """Test a base path selects the local runner."""
        config = ResilienceConfig(arango_basepath=Path("/src/arangodb"))
        assert config.runner_kind is RunnerKind.LOCAL
        assert config.storage_engine == "rocksdb"
        assert config.docker_container_port == 8529

    def test_docker_strategy(self) -> None:
        """Test an image selects the docker runner."""
        config = ResilienceConfig(docker_image="arangodb/arangodb")
        assert config.runner_kind is RunnerKind.DOCKER

    def test_no_strategy(self) -> None:
        """Test that a strategy is required."""
        with pytest.raises(ConfigurationError):
            ResilienceConfig()

    def test_both_strategies(self) -> None:
        """Test the strategies are mutually exclusive."""
        with pytest.raises(ConfigurationError, match="mutually exclusive"):
            ResilienceConfig(
                arango_basepath=Path("/src/arangodb"), docker_image="arangodb/arangodb"
            )

    def test_unknown_storage_engine(self) -> None:
        """Test only known storage engines are accepted."""
        with pytest.raises(ConfigurationError, match="storage engine"):
            ResilienceConfig(docker_image="arangodb/arangodb", storage_engine="leveldb")

    def test_mmfiles_accepted(self) -> None:
        """Test mmfiles is a valid storage engine."""
        config = ResilienceConfig(docker_image="arangodb/arangodb", storage_engine="mmfiles")
        assert config.storage_engine == "mmfiles"


class TestInstanceRole:
    """Test role enum helpers."""

    def test_cluster_role(self) -> None:
        """Test --cluster.my-role values."""
        assert InstanceRole.PRIMARY.cluster_role == "PRIMARY"
        assert InstanceRole.COORDINATOR.cluster_role == "COORDINATOR"
        assert InstanceRole.AGENT.cluster_role is None
