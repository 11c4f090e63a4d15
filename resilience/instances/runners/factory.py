"""Runner selection from the configuration."""

from typing import Optional

from ...core.enums import RunnerKind
from ...core.process import ProcessExecutor
from ...core.types import ResilienceConfig
from ...core.value_objects import RunId
from .base import Runner
from .docker import DockerRunner
from .local import LocalRunner


def create_runner(
    config: ResilienceConfig,
    run_id: RunId,
    executor: Optional[ProcessExecutor] = None,
) -> Runner:
    """Create the runner the configuration selects."""
    if config.runner_kind is RunnerKind.LOCAL:
        return LocalRunner(config, run_id)
    return DockerRunner(config, run_id, executor=executor)
