"""Tests for configuration management."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from resilience.core.config import (
    ConfigManager,
    get_config,
    load_config,
    load_env_overrides,
    reset_config,
    _convert_env_value,
)
from resilience.core.enums import RunnerKind
from resilience.core.errors import ConfigurationError


class TestEnvironmentLoading:
    """Test environment variable loading functions."""

    def test_load_env_overrides(self) -> None:
        """Test prefixed and nested variables."""
        overrides = load_env_overrides(
            environ={
                "RESILIENCE_DOCKER_IMAGE": "arangodb/arangodb:3.3",
                "RESILIENCE_LOG_LEVEL": "DEBUG",
                "RESILIENCE_TIMEOUTS__HEALTH_RETRY_INTERVAL": "0.5",
                "UNRELATED": "x",
            }
        )

        assert overrides == {
            "docker_image": "arangodb/arangodb:3.3",
            "log_level": "DEBUG",
            "timeouts": {"health_retry_interval": 0.5},
        }

    def test_basepath_stays_string(self) -> None:
        """Test path-like variables are not converted."""
        overrides = load_env_overrides(
            environ={"RESILIENCE_ARANGO_BASEPATH": "/src/arangodb"}
        )
        assert overrides["arango_basepath"] == "/src/arangodb"

    def test_legacy_variables(self) -> None:
        """Test ARANGO_STORAGE_ENGINE and LOG_IMMEDIATE are honoured."""
        overrides = load_env_overrides(
            environ={"ARANGO_STORAGE_ENGINE": "mmfiles", "LOG_IMMEDIATE": "1"}
        )
        assert overrides["storage_engine"] == "mmfiles"
        assert overrides["log_immediate"] == 1

    def test_prefixed_variable_wins_over_legacy(self) -> None:
        """Test RESILIENCE_STORAGE_ENGINE takes precedence."""
        overrides = load_env_overrides(
            environ={
                "ARANGO_STORAGE_ENGINE": "mmfiles",
                "RESILIENCE_STORAGE_ENGINE": "rocksdb",
            }
        )
        assert overrides["storage_engine"] == "rocksdb"

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("", "rocksdb"),
            ("RocksDB", "rocksdb"),
            ("rocksdb ", "rocksdb"),
            ("MMFiles", "mmfiles"),
            ("something-else", "rocksdb"),
        ],
    )
    def test_legacy_storage_engine_values(self, value: str, expected: str) -> None:
        """Test any legacy engine value other than mmfiles means rocksdb."""
        overrides = load_env_overrides(environ={"ARANGO_STORAGE_ENGINE": value})
        assert overrides["storage_engine"] == expected

    def test_empty_legacy_storage_engine_loads(self, isolated_environment) -> None:
        """Test an exported but empty ARANGO_STORAGE_ENGINE is accepted."""
        with patch.dict(
            "os.environ",
            {"ARANGO_STORAGE_ENGINE": "", "RESILIENCE_DOCKER_IMAGE": "arangodb/arangodb:3.3"},
        ):
            config = ConfigManager().load_config()
        assert config.storage_engine == "rocksdb"

    def test_port_offset(self) -> None:
        """Test PORT_OFFSET shifts the port window."""
        overrides = load_env_overrides(environ={"PORT_OFFSET": "200"})
        assert overrides["ports"] == {"port_offset": 200}

    def test_invalid_port_offset(self) -> None:
        """Test non-numeric PORT_OFFSET is a configuration error."""
        with pytest.raises(ConfigurationError, match="PORT_OFFSET"):
            load_env_overrides(environ={"PORT_OFFSET": "abc"})

    def test_convert_env_value(self) -> None:
        """Test conversion of environment values."""
        assert _convert_env_value("42") == 42
        assert _convert_env_value("3.14") == 3.14
        assert _convert_env_value("true") is True
        assert _convert_env_value("off") is False
        assert _convert_env_value("") is None
        assert _convert_env_value("rocksdb") == "rocksdb"


class TestConfigManager:
    """Test ConfigManager class."""

    def test_missing_strategy_is_error(self, isolated_environment) -> None:
        """Test that a configuration without launch strategy is rejected."""
        with pytest.raises(ConfigurationError, match="RESILIENCE_ARANGO_BASEPATH"):
            ConfigManager().load_config()

    @patch.dict(os.environ, {"RESILIENCE_DOCKER_IMAGE": "arangodb/arangodb"}, clear=True)
    def test_load_from_environment(self) -> None:
        """Test the strategy is picked up from the environment."""
        config = ConfigManager().load_config()
        assert config.docker_image == "arangodb/arangodb"
        assert config.runner_kind is RunnerKind.DOCKER

    @patch.dict(os.environ, {"RESILIENCE_DOCKER_IMAGE": "from-env"}, clear=True)
    def test_overrides_win(self) -> None:
        """Test explicit overrides take precedence over the environment."""
        config = ConfigManager().load_config(docker_image="explicit")
        assert config.docker_image == "explicit"

    def test_load_yaml_file(self, temp_dir: Path) -> None:
        """Test YAML file values merge with nested environment overrides."""
        config_file = temp_dir / "resilience.yaml"
        config_file.write_text(
            "docker_image: arangodb/arangodb:3.3\n"
            "timeouts:\n"
            "  health_retry_interval: 0.2\n"
            "  kill_poll_interval: 0.1\n"
        )
        with patch.dict(
            os.environ, {"RESILIENCE_TIMEOUTS__KILL_POLL_INTERVAL": "0.3"}, clear=True
        ):
            config = ConfigManager().load_config(config_file=config_file)

        assert config.docker_image == "arangodb/arangodb:3.3"
        assert config.timeouts.health_retry_interval == 0.2
        assert config.timeouts.kill_poll_interval == 0.3

    def test_unsupported_file_format(self, temp_dir: Path) -> None:
        """Test non-YAML config files are rejected."""
        config_file = temp_dir / "resilience.json"
        config_file.write_text("{}")
        with pytest.raises(ConfigurationError, match="Unsupported"):
            ConfigManager().load_config(config_file=config_file)

    def test_invalid_yaml(self, temp_dir: Path, isolated_environment) -> None:
        """Test broken YAML is reported as configuration error."""
        config_file = temp_dir / "resilience.yml"
        config_file.write_text("docker_image: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Failed to load"):
            ConfigManager().load_config(config_file=config_file)


class TestGlobalConfig:
    """Test module level helpers."""

    @patch.dict(os.environ, {"RESILIENCE_DOCKER_IMAGE": "arangodb/arangodb"}, clear=True)
    def test_get_config_is_cached(self) -> None:
        """Test get_config loads once and reset forgets."""
        reset_config()
        first = get_config()
        assert get_config() is first

        reset_config()
        assert get_config() is not first

    @patch.dict(os.environ, {}, clear=True)
    def test_load_config_with_overrides(self, temp_dir: Path) -> None:
        """Test load_config forwards overrides."""
        config = load_config(arango_basepath=temp_dir)
        assert config.runner_kind is RunnerKind.LOCAL
        assert get_config() is config
