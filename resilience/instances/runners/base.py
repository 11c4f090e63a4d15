"""Runner interface shared by the local and the docker strategy."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional

from ...core.enums import RunnerKind
from ...core.log import get_logger, log_instance_event
from ...core.process import ProcessHandle
from ...core.types import ResilienceConfig
from ...core.value_objects import RunId
from ..instance import Instance

logger = get_logger(__name__)

LogSink = Callable[[Instance, str], None]


def rewrite_endpoint_args(args: List[str], old: str, new: str) -> List[str]:
    """Replace ``old`` by ``new`` wherever it is an argument or a flag value."""
    rewritten = []
    for arg in args:
        if arg == old:
            rewritten.append(new)
        elif arg.endswith("=" + old):
            rewritten.append(arg[: -len(old)] + new)
        else:
            rewritten.append(arg)
    return rewritten


class Runner(ABC):
    """Starts, signals and tears down the processes behind instances.

    One runner is fixed per InstanceManager; every instance of that manager
    uses it.
    """

    kind: RunnerKind

    def __init__(self, config: ResilienceConfig, run_id: RunId) -> None:
        self.config = config
        self.run_id = run_id

    @abstractmethod
    def first_start(self, instance: Instance, log_sink: LogSink) -> Instance:
        """Prepare the instance's environment and arguments and launch it."""

    @abstractmethod
    def restart(self, instance: Instance, log_sink: LogSink) -> Instance:
        """Launch an exited instance again, keeping its on-disk state."""

    @abstractmethod
    def send_signal(self, instance: Instance, sig: int) -> None:
        """Deliver ``sig`` to the instance's server process."""

    @abstractmethod
    def update_endpoint(self, instance: Instance, endpoint: str) -> None:
        """Make the next restart listen on ``endpoint``."""

    @abstractmethod
    def destroy(self, instance: Instance) -> None:
        """Remove everything the runner keeps for this one instance."""

    @abstractmethod
    def cleanup(self, retain: bool = False) -> None:
        """Remove everything this runner created, unless ``retain`` is set."""

    def _spawn(
        self,
        instance: Instance,
        log_sink: LogSink,
        command: List[str],
        cwd: Optional[Path] = None,
    ) -> Instance:
        def on_line(line: str) -> None:
            log_sink(instance, line)

        instance.start_process(
            lambda on_exit: ProcessHandle.spawn(
                command,
                name=instance.name,
                on_line=on_line,
                on_exit=on_exit,
                cwd=cwd,
            )
        )
        log_instance_event(
            logger,
            "started",
            instance_name=instance.name,
            role=instance.role.value,
            endpoint=instance.endpoint,
            pid=instance.process.pid if instance.process else None,
        )
        return instance
