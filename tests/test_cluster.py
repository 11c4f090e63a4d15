"""Cluster lifecycle against real arangod processes or containers."""

import signal

import pytest
import requests

from resilience.core.enums import InstanceStatus, RunnerKind
from resilience.core.errors import InstanceStateError, NoCoordinatorError
from resilience.core.process import ProcessExecutor

pytestmark = [pytest.mark.resilience_cluster, pytest.mark.slow]

STARTUP_TIMEOUT = 300.0


def _version(manager) -> dict:
    response = requests.get(f"{manager.get_endpoint_url()}/_api/version", timeout=10)
    response.raise_for_status()
    return response.json()


def test_cluster_entry_point(instance_manager):
    """start_cluster returns a coordinator endpoint that serves requests."""
    endpoint = instance_manager.start_cluster(1, 2, 2, timeout=STARTUP_TIMEOUT)

    assert endpoint == instance_manager.coordinators()[0].endpoint
    assert "version" in _version(instance_manager)


def test_agency_only_has_no_entry_point(instance_manager):
    """An agency without coordinators has no cluster endpoint."""
    instance_manager.start_agency(1)
    with pytest.raises(NoCoordinatorError):
        instance_manager.get_endpoint()


def test_cleanup_removes_everything(instance_manager):
    """After cleanup every instance has exited and nothing is left on disk."""
    instance_manager.start_cluster(1, 2, 2, timeout=STARTUP_TIMEOUT)
    instances = instance_manager.instances
    runner = instance_manager.runner
    root = runner.root if runner.kind is RunnerKind.LOCAL else None

    instance_manager.cleanup(timeout=120)

    assert all(instance.status is InstanceStatus.EXITED for instance in instances)
    if root is not None:
        assert not root.exists()
    else:
        assert runner.containers == []
        listing = ProcessExecutor().run(
            ["docker", "ps", "-a", "-q", "--filter", f"name={instance_manager.run_id}"],
            timeout=60,
        )
        assert listing.stdout.strip() == ""


def test_dbserver_restart(instance_manager):
    """A killed dbserver comes back with its data after a restart."""
    instance_manager.start_cluster(1, 1, 2, timeout=STARTUP_TIMEOUT)
    db_server = instance_manager.db_servers()[0]

    instance_manager.kill(db_server, signal.SIGKILL, timeout=60)
    assert db_server.is_exited()
    assert instance_manager.exit_codes()[db_server.name] != 0

    instance_manager.restart(db_server, timeout=STARTUP_TIMEOUT)
    assert db_server.status is InstanceStatus.RUNNING
    assert "version" in _version(instance_manager)


def test_restart_requires_exit(instance_manager):
    """A running instance cannot be restarted."""
    instance_manager.start_cluster(1, 1, 1, timeout=STARTUP_TIMEOUT)
    coordinator = instance_manager.coordinators()[0]
    with pytest.raises(InstanceStateError):
        instance_manager.restart(coordinator)


def test_coordinator_moves_to_new_endpoint(instance_manager):
    """A coordinator restarted after an endpoint change serves on the new port."""
    instance_manager.start_cluster(1, 1, 1, timeout=STARTUP_TIMEOUT)
    coordinator = instance_manager.coordinators()[0]
    old_endpoint = coordinator.endpoint

    instance_manager.shutdown(coordinator, timeout=120)
    new_endpoint = instance_manager.assign_new_endpoint(coordinator)
    instance_manager.restart(coordinator, timeout=STARTUP_TIMEOUT)

    assert new_endpoint != old_endpoint
    assert instance_manager.get_endpoint() == new_endpoint
    assert "version" in _version(instance_manager)
