"""Runs arangod from a local build tree."""

import shlex
from pathlib import Path
from typing import List, Optional

from ...core.enums import RunnerKind
from ...core.errors import ConfigurationError
from ...core.log import get_logger
from ...core.types import ResilienceConfig
from ...core.value_objects import RunId
from ...utils.filesystem import ensure_dir, make_temp_root, safe_remove
from ..instance import Instance
from .base import LogSink, Runner, rewrite_endpoint_args

logger = get_logger(__name__)


class LocalRunner(Runner):
    """Starts ``<basepath>/build/bin/arangod`` with one data directory per instance.

    All instance directories live below a temporary root created on first use.
    """

    kind = RunnerKind.LOCAL

    def __init__(self, config: ResilienceConfig, run_id: RunId) -> None:
        super().__init__(config, run_id)
        if config.arango_basepath is None:
            raise ConfigurationError("LocalRunner requires arango_basepath")
        self.basepath = Path(config.arango_basepath)
        self.wrapper: List[str] = (
            shlex.split(config.arango_wrapper) if config.arango_wrapper else []
        )
        self._root: Optional[Path] = None

    @property
    def binary(self) -> Path:
        return self.basepath / "build" / "bin" / "arangod"

    @property
    def root(self) -> Path:
        """Temporary directory holding all instance directories of this run."""
        if self._root is None:
            self._root = make_temp_root(
                prefix=f"arango-resilience-{self.run_id}-", parent=self.config.temp_dir
            )
            logger.debug("Created temporary root %s", self._root)
        return self._root

    def instance_dir(self, instance: Instance) -> Path:
        return self.root / instance.name

    def first_start(self, instance: Instance, log_sink: LogSink) -> Instance:
        """Create data and apps directories, complete the arguments and launch.

        Raises:
            ConfigurationError: If the arangod binary does not exist
        """
        binary = self._resolve_binary()
        instance_dir = self.instance_dir(instance)
        data_dir = ensure_dir(instance_dir / "data")
        apps_dir = ensure_dir(instance_dir / "apps")

        instance.binary = str(binary)
        instance.data_dir = data_dir
        instance.args = [
            "--configuration=none",
            *instance.args,
            f"--javascript.startup-directory={self.basepath / 'js'}",
            f"--javascript.app-path={apps_dir}",
            f"--server.endpoint={instance.endpoint}",
            str(data_dir),
        ]
        return self._spawn(instance, log_sink, self._command(instance))

    def restart(self, instance: Instance, log_sink: LogSink) -> Instance:
        """Launch the same binary with the same arguments again."""
        logger.info("Restarting %s on %s", instance.name, instance.endpoint)
        return self._spawn(instance, log_sink, self._command(instance))

    def send_signal(self, instance: Instance, sig: int) -> None:
        if instance.process is None:
            logger.debug("Instance %s has no process to signal", instance.name)
            return
        instance.process.send_signal(sig)

    def update_endpoint(self, instance: Instance, endpoint: str) -> None:
        instance.args = rewrite_endpoint_args(instance.args, instance.endpoint, endpoint)
        instance.assign_endpoint(endpoint)

    def destroy(self, instance: Instance) -> None:
        if self._root is not None:
            safe_remove(self.instance_dir(instance))

    def cleanup(self, retain: bool = False) -> None:
        if self._root is None:
            return
        if retain:
            logger.info("Keeping server directories in %s", self._root)
            return
        safe_remove(self._root)
        logger.debug("Removed temporary root %s", self._root)
        self._root = None

    def _resolve_binary(self) -> Path:
        binary = self.binary
        if not binary.is_file():
            raise ConfigurationError(
                f"arangod not found at {binary}; RESILIENCE_ARANGO_BASEPATH must point "
                'to a source root with a "build" folder containing compiled binaries',
                details={"binary": str(binary)},
            )
        return binary

    def _command(self, instance: Instance) -> List[str]:
        return [*self.wrapper, instance.binary or str(self.binary), *instance.args]
