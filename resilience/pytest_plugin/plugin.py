"""pytest plugin providing a per-test InstanceManager."""

from typing import Generator, Optional

import pytest
from pytest import StashKey

from ..core.config import load_config
from ..core.errors import ResilienceError
from ..core.log import configure_logging, get_logger, log_context
from ..core.types import ResilienceConfig
from ..instances.manager import InstanceManager

logger = get_logger(__name__)

phase_report_key = StashKey[dict]()
config_key = StashKey[Optional[ResilienceConfig]]()


def pytest_configure(config: pytest.Config) -> None:
    """Register markers and set up framework logging."""
    config.addinivalue_line(
        "markers", "resilience_cluster: Test starts its own ArangoDB cluster"
    )
    config.addinivalue_line("markers", "slow: Long-running test (>30s expected)")
    config.stash[config_key] = None


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo):
    """Keep each phase's report on the item so fixtures can see test failures."""
    outcome = yield
    report = outcome.get_result()
    item.stash.setdefault(phase_report_key, {})[report.when] = report


def _test_failed(item: pytest.Item) -> bool:
    reports = item.stash.get(phase_report_key, {})
    return any(report.failed for report in reports.values())


@pytest.fixture(scope="session")
def resilience_config(pytestconfig: pytest.Config) -> ResilienceConfig:
    """Framework configuration loaded once per session from the environment."""
    current = pytestconfig.stash.get(config_key, None)
    if current is None:
        current = load_config()
        configure_logging(level=current.log_level, enable_json=False)
        pytestconfig.stash[config_key] = current
    return current


@pytest.fixture
def instance_manager(
    request: pytest.FixtureRequest, resilience_config: ResilienceConfig
) -> Generator[InstanceManager, None, None]:
    """A fresh InstanceManager, cleaned up after the test.

    Server output is saved under the test's name. On failure the data
    directories or containers are kept when ``retain_on_failure`` is set.
    """
    manager = InstanceManager.create(resilience_config)
    with log_context(test=request.node.nodeid, run_id=str(manager.run_id)):
        yield manager

    finish_manager(
        manager,
        request.node.nodeid,
        retain=_test_failed(request.node) and resilience_config.retain_on_failure,
    )


def finish_manager(manager: InstanceManager, label: str, retain: bool) -> None:
    """Save the server logs of a test's cluster and tear it down."""
    try:
        if manager.instances:
            manager.save_server_logs(label)
    except ResilienceError as e:
        logger.warning("Could not save server logs: %s", e)
    manager.cleanup(retain=retain)
