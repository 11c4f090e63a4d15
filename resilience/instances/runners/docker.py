"""Runs each instance as a docker container of a fixed image."""

import shutil
import signal
from typing import Dict, List, Optional

from ...core.enums import RunnerKind
from ...core.errors import ConfigurationError, ContainerCommandError
from ...core.log import get_logger
from ...core.process import ProcessExecutor, ProcessResult
from ...core.types import ResilienceConfig
from ...core.value_objects import RunId
from ..instance import Instance
from .base import LogSink, Runner, rewrite_endpoint_args

logger = get_logger(__name__)

NO_SUCH_CONTAINER = "no such container"
NOT_RUNNING = "is not running"


class DockerRunner(Runner):
    """Starts ``arangod`` inside containers named ``<run-id>-<instance>``.

    The allocated host port is published to the fixed port the server listens
    on inside the container. A restart starts the existing container again,
    so its filesystem survives kills.
    """

    kind = RunnerKind.DOCKER

    def __init__(
        self,
        config: ResilienceConfig,
        run_id: RunId,
        executor: Optional[ProcessExecutor] = None,
    ) -> None:
        super().__init__(config, run_id)
        if not config.docker_image:
            raise ConfigurationError("DockerRunner requires docker_image")
        self.image = config.docker_image
        self.container_port = config.docker_container_port
        self._executor = executor or ProcessExecutor()
        self._docker: Optional[str] = None
        self._containers: Dict[str, str] = {}

    @property
    def docker(self) -> str:
        """Path of the docker CLI.

        Raises:
            ConfigurationError: If docker is not installed
        """
        if self._docker is None:
            docker = shutil.which("docker")
            if docker is None:
                raise ConfigurationError(
                    "docker executable not found in PATH but RESILIENCE_DOCKER_IMAGE is set"
                )
            self._docker = docker
        return self._docker

    def container_name(self, instance: Instance) -> str:
        return self.run_id.qualify(instance.name)

    @property
    def containers(self) -> List[str]:
        return list(self._containers.values())

    def first_start(self, instance: Instance, log_sink: LogSink) -> Instance:
        container = self.container_name(instance)
        instance.binary = self.docker
        instance.args = [
            *instance.args,
            f"--server.endpoint=tcp://0.0.0.0:{self.container_port}",
        ]
        command = [
            self.docker,
            "run",
            *self._container_options(instance, container),
            self.image,
            "arangod",
            *instance.args,
        ]
        self._containers[instance.name] = container
        return self._spawn(instance, log_sink, command)

    def restart(self, instance: Instance, log_sink: LogSink) -> Instance:
        """Start the instance's existing container again, attached to its output."""
        container = self._container_of(instance)
        logger.info("Restarting container %s", container)
        return self._spawn(instance, log_sink, [self.docker, "start", "-a", container])

    def send_signal(self, instance: Instance, sig: int) -> None:
        """Signal the container's server; a container that is gone or stopped is ignored."""
        container = self._container_of(instance)
        command = [self.docker, "kill", "-s", signal.Signals(sig).name, container]
        result = self._executor.run(command, timeout=self.config.timeouts.container_command)
        if result.returncode == 0:
            return
        output = result.output.lower()
        if NO_SUCH_CONTAINER in output or NOT_RUNNING in output:
            logger.debug("Not signalling container %s: %s", container, result.output)
            return
        raise self._step_error("kill", command, result)

    def update_endpoint(self, instance: Instance, endpoint: str) -> None:
        """Move the container to a new published port, keeping its filesystem.

        Runs commit, rm, create and rmi strictly in sequence. A failing step
        aborts the operation with ContainerCommandError naming the step; the
        instance may be left without a container.
        """
        container = self._container_of(instance)
        temp_image = f"{container.lower()}-endpoint-swap"
        instance.args = rewrite_endpoint_args(instance.args, instance.endpoint, endpoint)
        instance.assign_endpoint(endpoint)

        self._run_step("commit", [self.docker, "commit", container, temp_image])
        self._run_step("rm", [self.docker, "rm", "-f", container])
        self._run_step(
            "create",
            [
                self.docker,
                "create",
                *self._container_options(instance, container),
                temp_image,
                "arangod",
                *instance.args,
            ],
        )
        self._run_step("rmi", [self.docker, "rmi", temp_image])
        logger.info("Container %s now published on %s", container, endpoint)

    def destroy(self, instance: Instance) -> None:
        container = self._containers.pop(instance.name, None)
        if container is not None:
            self._remove_container(container)

    def cleanup(self, retain: bool = False) -> None:
        """Force-remove every container of this run.

        Raises:
            ContainerCommandError: If a container exists but cannot be removed
        """
        if retain:
            logger.info("Keeping containers %s", ", ".join(self._containers.values()))
            return
        failures: List[ContainerCommandError] = []
        for container in list(self._containers.values()):
            try:
                self._remove_container(container)
            except ContainerCommandError as e:
                logger.error("Failed to remove container %s: %s", container, e)
                failures.append(e)
        self._containers.clear()
        if failures:
            raise failures[0]

    def _container_options(self, instance: Instance, container: str) -> List[str]:
        return [
            "-e",
            "ARANGO_NO_AUTH=1",
            "-p",
            f"{instance.port}:{self.container_port}",
            f"--name={container}",
        ]

    def _container_of(self, instance: Instance) -> str:
        container = self._containers.get(instance.name)
        if container is None:
            raise ContainerCommandError(
                f"Instance {instance.name} has no container",
                step="lookup",
                command=[],
            )
        return container

    def _remove_container(self, container: str) -> None:
        command = [self.docker, "rm", "-fv", container]
        result = self._executor.run(command, timeout=self.config.timeouts.container_command)
        if result.returncode != 0 and NO_SUCH_CONTAINER not in result.output.lower():
            raise self._step_error("rm", command, result)
        logger.debug("Removed container %s", container)

    def _run_step(self, step: str, command: List[str]) -> ProcessResult:
        result = self._executor.run(command, timeout=self.config.timeouts.container_command)
        if result.returncode != 0:
            raise self._step_error(step, command, result)
        return result

    @staticmethod
    def _step_error(
        step: str, command: List[str], result: ProcessResult
    ) -> ContainerCommandError:
        return ContainerCommandError(
            f"docker {step} failed (exit code {result.returncode}): {result.output}",
            step=step,
            command=command,
            returncode=result.returncode,
            output=result.output,
        )
