"""
Fast unit tests for CLI functionality.

Cluster commands run against a mocked InstanceManager.
"""

from unittest.mock import patch

from typer.testing import CliRunner

from resilience import __version__
from resilience.cli.main import app
from resilience.core.errors import ClusterError

DOCKER_ENV = {"RESILIENCE_DOCKER_IMAGE": "arangodb/arangodb:3.3"}


class TestCLIBasics:
    """Test basic CLI functionality."""

    def setup_method(self):
        """Set up test environment."""
        self.runner = CliRunner()

    def test_help_command(self):
        """Test CLI help lists the commands."""
        result = self.runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "cluster" in result.output
        assert "agency" in result.output

    def test_version(self):
        """Test version command shows the framework version."""
        result = self.runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_command(self):
        """Test behavior with invalid command."""
        result = self.runner.invoke(app, ["nonexistent-command"])
        assert result.exit_code != 0

    def test_verbose_and_log_level_conflict(self):
        """Test -v and --log-level are mutually exclusive."""
        result = self.runner.invoke(app, ["-v", "--log-level", "DEBUG", "version"])

        assert result.exit_code == 1
        assert "Cannot specify both" in result.output


class TestConfigCommand:
    """Test the config command."""

    def setup_method(self):
        """Set up test environment."""
        self.runner = CliRunner()

    def test_config_from_environment(self, isolated_environment):
        """Test the configuration table reflects the environment."""
        with patch.dict("os.environ", DOCKER_ENV):
            result = self.runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "docker" in result.output
        assert "arangodb/arangodb:3.3" in result.output

    def test_config_missing_strategy(self, isolated_environment):
        """Test a configuration without launch strategy is reported."""
        result = self.runner.invoke(app, ["config"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestClusterCommand:
    """Test the cluster command with a mocked manager."""

    def setup_method(self):
        """Set up test environment."""
        self.runner = CliRunner()

    @patch("resilience.cli.main.InstanceManager")
    def test_start_failure_cleans_up(self, mock_manager_cls, isolated_environment):
        """Test a failed start cleans up and exits with an error."""
        manager = mock_manager_cls.create.return_value
        manager.config.retain_on_failure = False
        manager.start_cluster.side_effect = ClusterError("agency unreachable")

        with patch.dict("os.environ", DOCKER_ENV):
            result = self.runner.invoke(app, ["cluster", "-a", "3", "-d", "1"])

        assert result.exit_code == 1
        assert "Cluster start failed" in result.output
        manager.start_cluster.assert_called_once_with(3, 1, 1, timeout=None)
        manager.cleanup.assert_called_once_with(retain=False)

    @patch("resilience.cli.main.time.sleep", side_effect=KeyboardInterrupt)
    @patch("resilience.cli.main.InstanceManager")
    def test_serves_until_interrupted(
        self, mock_manager_cls, mock_sleep, isolated_environment
    ):
        """Test the cluster is cleaned up on Ctrl+C."""
        manager = mock_manager_cls.create.return_value
        manager.start_cluster.return_value = "tcp://127.0.0.1:40100"
        manager.instances = []
        manager.run_id = "arango-test"

        with patch.dict("os.environ", DOCKER_ENV):
            result = self.runner.invoke(app, ["cluster", "--timeout", "30"])

        assert result.exit_code == 0
        assert "tcp://127.0.0.1:40100" in result.output
        manager.start_cluster.assert_called_once_with(1, 1, 2, timeout=30.0)
        manager.cleanup.assert_called_once_with()

    @patch("resilience.cli.main.time.sleep", side_effect=KeyboardInterrupt)
    @patch("resilience.cli.main.InstanceManager")
    def test_agency(self, mock_manager_cls, mock_sleep, isolated_environment):
        """Test the agency command starts and waits for the agents."""
        manager = mock_manager_cls.create.return_value
        manager.instances = []
        manager.run_id = "arango-test"

        with patch.dict("os.environ", DOCKER_ENV):
            result = self.runner.invoke(app, ["agency", "--size", "3", "--wait-for-sync"])

        assert result.exit_code == 0
        manager.start_agency.assert_called_once_with(3, wait_for_sync=True)
        manager.wait_for_all_instances.assert_called_once_with(timeout=None)
        manager.cleanup.assert_called_once_with()

    @patch("resilience.cli.main.InstanceManager")
    def test_interrupted_start_cleans_up(self, mock_manager_cls, isolated_environment):
        """Test Ctrl+C while the cluster starts tears down what was launched."""
        manager = mock_manager_cls.create.return_value
        manager.start_cluster.side_effect = KeyboardInterrupt

        with patch.dict("os.environ", DOCKER_ENV):
            result = self.runner.invoke(app, ["cluster"])

        assert result.exit_code == 130
        assert "Interrupted" in result.output
        manager.cleanup.assert_called_once_with()

    @patch("resilience.cli.main.InstanceManager")
    def test_interrupted_agency_wait_cleans_up(self, mock_manager_cls, isolated_environment):
        """Test Ctrl+C while waiting for the agency tears it down."""
        manager = mock_manager_cls.create.return_value
        manager.wait_for_all_instances.side_effect = KeyboardInterrupt

        with patch.dict("os.environ", DOCKER_ENV):
            result = self.runner.invoke(app, ["agency", "--size", "2"])

        assert result.exit_code == 130
        manager.start_agency.assert_called_once_with(2, wait_for_sync=False)
        manager.cleanup.assert_called_once_with()
