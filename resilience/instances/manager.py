"""Instance Manager: bootstraps, disturbs and tears down an ArangoDB test cluster."""

import logging
import re
import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from types import TracebackType
from typing import Callable, Dict, List, Optional, Set, Type

from ..core.config import load_config
from ..core.enums import InstanceRole, InstanceStatus
from ..core.errors import (
    ClusterError,
    DeadlineExceededError,
    InstanceStateError,
    NoCoordinatorError,
    UnknownInstanceError,
)
from ..core.log import get_logger, log_instance_event
from ..core.time import Deadline, poll_until
from ..core.types import ResilienceConfig
from ..core.value_objects import RunId
from ..utils.endpoints import EndpointAllocator, PortAllocator, endpoint_to_url
from ..utils.filesystem import atomic_write, ensure_dir
from .command_builder import agent_args, cluster_member_args, common_args
from .health_checker import HealthChecker, InstanceHealthChecker
from .instance import Instance
from .runners.base import Runner
from .runners.factory import create_runner

logger = get_logger(__name__)

ROLE_NAME_PREFIX: Dict[InstanceRole, str] = {
    InstanceRole.AGENT: "agent",
    InstanceRole.COORDINATOR: "coordinator",
    InstanceRole.PRIMARY: "dbserver",
}

_UNSAFE_LABEL_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class InstanceManager:
    """Owns the instances of one test cluster.

    The agency is started first; coordinators and dbservers follow, their
    arguments pointing at the agency's first endpoint. Every wait accepts an
    optional timeout and is unbounded without one.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        runner: Runner,
        allocator: PortAllocator,
        health_checker: HealthChecker,
        run_id: Optional[RunId] = None,
    ) -> None:
        """Initialize instance manager.

        Args:
            config: Framework configuration
            runner: Launch strategy used for every instance
            allocator: Endpoint source, owned by this manager
            health_checker: Readiness checker and shutdown request sender
            run_id: Identifier of this run (default: the runner's)
        """
        self.config = config
        self.run_id = run_id or runner.run_id
        self._runner = runner
        self._allocator = allocator
        self._health_checker = health_checker
        self._instances: List[Instance] = []
        self._destroyed: Set[Instance] = set()
        self._name_counters: Dict[str, int] = {}
        self._lock = threading.RLock()

    @classmethod
    def create(cls, config: Optional[ResilienceConfig] = None) -> "InstanceManager":
        """Build a manager with the default collaborators.

        Raises:
            ConfigurationError: If no launch strategy is configured
        """
        config = config or load_config()
        run_id = RunId.generate()
        allocator = EndpointAllocator(
            base_port=config.ports.base_port,
            port_offset=config.ports.port_offset,
            stride=config.ports.stride,
            ceiling=config.ports.ceiling,
            scan_width=config.ports.scan_width,
        )
        logger.debug(
            "Creating instance manager %s (%s runner)", run_id, config.runner_kind.value
        )
        return cls(
            config,
            runner=create_runner(config, run_id),
            allocator=allocator,
            health_checker=InstanceHealthChecker(config.timeouts),
            run_id=run_id,
        )

    def __enter__(self) -> "InstanceManager":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.cleanup(retain=exc_type is not None and self.config.retain_on_failure)

    @property
    def runner(self) -> Runner:
        return self._runner

    @property
    def instances(self) -> List[Instance]:
        """Snapshot of the tracked instances in start order."""
        with self._lock:
            return list(self._instances)

    # Role queries

    def agents(self) -> List[Instance]:
        return self._by_role(InstanceRole.AGENT)

    def coordinators(self) -> List[Instance]:
        return self._by_role(InstanceRole.COORDINATOR)

    def db_servers(self) -> List[Instance]:
        return self._by_role(InstanceRole.PRIMARY)

    def find_instance(self, name: str) -> Instance:
        """Look up a tracked instance by name.

        Raises:
            UnknownInstanceError: If no instance has this name
        """
        with self._lock:
            for instance in self._instances:
                if instance.name == name:
                    return instance
        raise UnknownInstanceError(f"No instance named {name!r} in run {self.run_id}")

    def get_endpoint(self, instance: Optional[Instance] = None) -> str:
        """Endpoint of ``instance``, or of the first coordinator.

        Raises:
            NoCoordinatorError: If no instance is given and there is no coordinator
        """
        if instance is not None:
            self._require_tracked(instance)
            return instance.endpoint
        coordinators = self.coordinators()
        if not coordinators:
            raise NoCoordinatorError(
                f"Run {self.run_id} has no coordinator to serve as cluster endpoint"
            )
        return coordinators[0].endpoint

    def get_endpoint_url(self, instance: Optional[Instance] = None) -> str:
        return endpoint_to_url(self.get_endpoint(instance))

    def get_agency_endpoint(self) -> str:
        """Bootstrap endpoint of the agency (its first agent).

        Raises:
            ClusterError: If no agent has been started
        """
        agents = self.agents()
        if not agents:
            raise ClusterError(
                "An agency must be started before coordinators and dbservers"
            )
        return agents[0].endpoint

    def exit_codes(self) -> Dict[str, int]:
        """Exit codes of all exited instances by name."""
        codes = {}
        for instance in self.instances:
            status, exit_code = instance.snapshot()
            if status is InstanceStatus.EXITED and exit_code is not None:
                codes[instance.name] = exit_code
        return codes

    # Startup

    def start_agency(
        self, agency_size: int = 1, wait_for_sync: bool = False
    ) -> List[Instance]:
        """Start ``agency_size`` agents one after another.

        The first allocated endpoint is the bootstrap endpoint every agent is
        told about. Returns once all agents are RUNNING; they may not serve
        requests yet.
        """
        if agency_size < 1:
            raise ClusterError(f"Agency size must be at least 1, got {agency_size}")

        agents = []
        bootstrap_endpoint: Optional[str] = None
        for _ in range(agency_size):
            endpoint = self._allocator.allocate_endpoint()
            if bootstrap_endpoint is None:
                bootstrap_endpoint = endpoint
            args = [
                *common_args(self.config.storage_engine),
                *agent_args(endpoint, agency_size, wait_for_sync, bootstrap_endpoint),
            ]
            agents.append(
                self._launch(self._next_name(InstanceRole.AGENT), InstanceRole.AGENT, endpoint, args)
            )
        logger.info(
            "Agency of %d started, bootstrap endpoint %s", agency_size, bootstrap_endpoint
        )
        return agents

    def start_coordinator(self, name: Optional[str] = None) -> Instance:
        return self._start_cluster_member(InstanceRole.COORDINATOR, name)

    def start_db_server(self, name: Optional[str] = None) -> Instance:
        return self._start_cluster_member(InstanceRole.PRIMARY, name)

    def start_cluster(
        self,
        num_agents: int = 1,
        num_coordinators: int = 1,
        num_db_servers: int = 2,
        timeout: Optional[float] = None,
    ) -> str:
        """Start a full cluster and wait until every instance is ready.

        Coordinators and dbservers are started by two concurrent chains once
        the agency is up.

        Returns:
            Endpoint of the first coordinator

        Raises:
            ClusterError: If fewer than one agent or one coordinator is requested
            DeadlineExceededError: If the cluster is not ready within timeout
        """
        if num_coordinators < 1:
            raise ClusterError("A cluster needs at least one coordinator as entry point")
        deadline = Deadline.after(timeout)
        self.start_agency(num_agents)

        with ThreadPoolExecutor(
            max_workers=2, thread_name_prefix=f"ClusterStart-{self.run_id}"
        ) as executor:
            coordinator_chain = executor.submit(
                self._start_chain, self.start_coordinator, num_coordinators
            )
            db_server_chain = executor.submit(
                self._start_chain, self.start_db_server, num_db_servers
            )
            coordinator_chain.result()
            db_server_chain.result()

        self.wait_for_all_instances(timeout=deadline.remaining())
        endpoint = self.get_endpoint()
        logger.info(
            "Cluster ready: %d agents, %d coordinators, %d dbservers at %s",
            num_agents,
            num_coordinators,
            num_db_servers,
            endpoint,
        )
        return endpoint

    # Readiness

    def wait_for_all_instances(self, timeout: Optional[float] = None) -> None:
        """Block until every tracked instance answers its health endpoint.

        Each round re-checks only the instances that failed the previous one.

        Raises:
            DeadlineExceededError: If a timeout is given and expires first
        """
        self._wait_until_ready(self.instances, timeout)

    def wait_for_instance(self, instance: Instance, timeout: Optional[float] = None) -> None:
        self._require_tracked(instance)
        self._wait_until_ready([instance], timeout)

    # Fault injection

    def kill(
        self,
        instance: Instance,
        sig: int = signal.SIGTERM,
        timeout: Optional[float] = None,
    ) -> None:
        """Send ``sig``, mark the instance KILLED and wait until it has exited."""
        self._require_tracked(instance)
        if instance.is_exited():
            logger.debug("Instance %s already exited", instance.name)
            return
        was_stopped = instance.status is InstanceStatus.STOPPED
        self._runner.send_signal(instance, sig)
        if was_stopped and sig not in (signal.SIGKILL, signal.SIGSTOP):
            self._runner.send_signal(instance, signal.SIGCONT)
        instance.transition_unless_exited(InstanceStatus.KILLED)
        log_instance_event(
            logger,
            "killed",
            instance_name=instance.name,
            signal=signal.Signals(sig).name,
        )
        self._wait_for_exit([instance], timeout, f"kill of {instance.name}")

    def shutdown(self, instance: Instance, timeout: Optional[float] = None) -> None:
        """Terminate gracefully with SIGTERM and wait until the instance exited."""
        self._require_tracked(instance)
        status = instance.status
        if status is InstanceStatus.EXITED:
            return
        if status not in (InstanceStatus.KILLED, InstanceStatus.SHUTTING_DOWN):
            self._resume_if_stopped(instance)
            self._runner.send_signal(instance, signal.SIGTERM)
            instance.transition_unless_exited(InstanceStatus.SHUTTING_DOWN)
            log_instance_event(logger, "shutting_down", instance_name=instance.name)
        self._wait_for_exit([instance], timeout, f"shutdown of {instance.name}")

    def sigstop(self, instance: Instance) -> None:
        """Suspend the instance's process."""
        self._require_status(instance, InstanceStatus.RUNNING, "suspend")
        self._runner.send_signal(instance, signal.SIGSTOP)
        instance.transition(InstanceStatus.STOPPED)
        log_instance_event(logger, "stopped", instance_name=instance.name)

    def sigcontinue(self, instance: Instance) -> None:
        """Resume an instance suspended by ``sigstop``."""
        self._require_status(instance, InstanceStatus.STOPPED, "resume")
        self._runner.send_signal(instance, signal.SIGCONT)
        instance.transition(InstanceStatus.RUNNING)
        log_instance_event(logger, "continued", instance_name=instance.name)

    # Restart and reconfiguration

    def restart(self, instance: Instance, timeout: Optional[float] = None) -> None:
        """Launch an exited instance again, then wait for the whole cluster.

        The wait covers every tracked instance, so it only returns once no
        other instance is exited either. Use :meth:`restart_cluster` to bring
        back several exited instances at once.

        Raises:
            InstanceStateError: If the instance has not exited
        """
        self._require_tracked(instance)
        deadline = Deadline.after(timeout)
        self._runner.restart(instance, self._handle_output)
        log_instance_event(logger, "restarted", instance_name=instance.name)
        self.wait_for_all_instances(timeout=deadline.remaining())

    def restart_cluster(self, timeout: Optional[float] = None) -> None:
        """Restart every exited instance, agents first, and wait for all."""
        deadline = Deadline.after(timeout)
        exited = [i for i in self.instances if i.is_exited()]
        exited.sort(key=lambda i: i.role is not InstanceRole.AGENT)
        for instance in exited:
            self._runner.restart(instance, self._handle_output)
        logger.info("Restarted %d instances", len(exited))
        self.wait_for_all_instances(timeout=deadline.remaining())

    def assign_new_endpoint(self, instance: Instance) -> str:
        """Move the instance to a freshly allocated endpoint.

        Takes effect with the next restart. Returns the new endpoint.
        """
        self._require_tracked(instance)
        old_endpoint = instance.endpoint
        new_endpoint = self._allocator.allocate_endpoint()
        try:
            self._runner.update_endpoint(instance, new_endpoint)
        except Exception:
            if instance.endpoint != new_endpoint:
                self._allocator.release_endpoint(new_endpoint)
            raise
        self._allocator.release_endpoint(old_endpoint)
        log_instance_event(
            logger,
            "endpoint_changed",
            instance_name=instance.name,
            old_endpoint=old_endpoint,
            endpoint=new_endpoint,
        )
        return new_endpoint

    def destroy(self, instance: Instance, timeout: Optional[float] = None) -> None:
        """Kill the instance if needed and remove it with all its data."""
        self._require_tracked(instance)
        if not instance.is_exited():
            self.kill(instance, signal.SIGKILL, timeout=timeout)
        self._runner.destroy(instance)
        with self._lock:
            self._instances.remove(instance)
            self._destroyed.add(instance)
        self._allocator.release_endpoint(instance.endpoint)
        log_instance_event(logger, "destroyed", instance_name=instance.name)

    def replace(self, instance: Instance, timeout: Optional[float] = None) -> Instance:
        """Destroy an instance and start a new one of the same role.

        The replacement gets a new name and a new endpoint. An instance this
        manager already destroyed may be replaced as well.

        Raises:
            ClusterError: If the instance is an agent
            UnknownInstanceError: If the instance was never managed here
        """
        if instance.role is InstanceRole.AGENT:
            raise ClusterError(f"Agent {instance.name} cannot be replaced")
        deadline = Deadline.after(timeout)
        with self._lock:
            tracked = instance in self._instances
            destroyed = instance in self._destroyed
        if tracked:
            self.destroy(instance, timeout=deadline.remaining())
        elif not destroyed:
            self._require_tracked(instance)
        replacement = self._start_cluster_member(instance.role, None)
        logger.info("Replaced %s by %s", instance.name, replacement.name)
        self.wait_for_all_instances(timeout=deadline.remaining())
        return replacement

    # Shutdown

    def shutdown_cluster(self, timeout: Optional[float] = None) -> None:
        """Ask the cluster to shut itself down via the first coordinator."""
        coordinator = self._first_live_coordinator()
        if coordinator is None:
            raise NoCoordinatorError(
                f"Run {self.run_id} has no running coordinator to shut the cluster down"
            )
        self._request_cluster_shutdown(coordinator)
        self._wait_for_exit(self.instances, timeout, "cluster shutdown")

    def cleanup(self, retain: bool = False, timeout: Optional[float] = None) -> None:
        """Stop every instance, then remove what the runner created.

        Without coordinators the remaining instances are killed directly;
        otherwise the cluster is asked to shut down gracefully. ``retain``
        keeps data directories or containers for post-mortem analysis.
        The runner cleanup and the endpoint release run even if stopping the
        instances fails.
        """
        try:
            live = [i for i in self.instances if not i.is_exited()]
            if live:
                coordinator = self._first_live_coordinator()
                if coordinator is None:
                    self._kill_all(live)
                else:
                    try:
                        self._request_cluster_shutdown(coordinator)
                    except ClusterError as e:
                        logger.warning("Graceful shutdown failed, killing instances: %s", e)
                        self._kill_all(live)
                self._wait_for_exit(self.instances, timeout, "cleanup")
        finally:
            try:
                self._runner.cleanup(retain=retain)
            finally:
                with self._lock:
                    released = list(self._instances)
                    self._instances.clear()
                for instance in released:
                    self._allocator.release_endpoint(instance.endpoint)
        logger.info("Cleaned up run %s (%d instances)", self.run_id, len(released))

    # Logs

    def save_server_logs(self, label: str, target_dir: Optional[Path] = None) -> Path:
        """Write each instance's captured output to ``<dir>/<label>/<name>.log``."""
        directory = ensure_dir(
            Path(target_dir or self.config.logs_dir) / self._safe_label(label)
        )
        for instance in self.instances:
            lines = list(instance.log_lines)
            atomic_write(
                directory / f"{instance.name}.log",
                "\n".join(lines) + ("\n" if lines else ""),
            )
        logger.debug("Saved server logs to %s", directory)
        return directory

    # Internals

    def _by_role(self, role: InstanceRole) -> List[Instance]:
        with self._lock:
            return [i for i in self._instances if i.role is role]

    def _next_name(self, role: InstanceRole) -> str:
        prefix = ROLE_NAME_PREFIX[role]
        with self._lock:
            taken = {i.name for i in self._instances}
            while True:
                self._name_counters[prefix] = self._name_counters.get(prefix, 0) + 1
                name = f"{prefix}-{self._name_counters[prefix]}"
                if name not in taken:
                    return name

    def _start_cluster_member(self, role: InstanceRole, name: Optional[str]) -> Instance:
        agency_endpoint = self.get_agency_endpoint()
        endpoint = self._allocator.allocate_endpoint()
        args = [
            *common_args(self.config.storage_engine),
            *cluster_member_args(role, endpoint, agency_endpoint),
        ]
        return self._launch(name or self._next_name(role), role, endpoint, args)

    def _start_chain(self, start: Callable[[], Instance], count: int) -> List[Instance]:
        return [start() for _ in range(count)]

    def _launch(
        self, name: str, role: InstanceRole, endpoint: str, args: List[str]
    ) -> Instance:
        with self._lock:
            if any(i.name == name for i in self._instances):
                self._allocator.release_endpoint(endpoint)
                raise ClusterError(f"Instance name {name!r} is already in use")
        instance = Instance(name, role, endpoint, args)
        try:
            self._runner.first_start(instance, self._handle_output)
        except Exception:
            self._allocator.release_endpoint(endpoint)
            raise
        with self._lock:
            self._instances.append(instance)
        return instance

    def _handle_output(self, instance: Instance, line: str) -> None:
        instance.append_output(line)
        output_logger = get_logger(f"instance.{instance.name}")
        output_logger.log(
            logging.INFO if self.config.log_immediate else logging.DEBUG,
            "%s",
            line,
            extra={"event_type": "output", "instance_name": instance.name},
        )

    def _require_tracked(self, instance: Instance) -> None:
        with self._lock:
            if instance not in self._instances:
                raise UnknownInstanceError(
                    f"Instance {instance.name} ({instance.role.value}, {instance.endpoint}) "
                    f"is not managed by run {self.run_id}"
                )

    def _require_status(
        self, instance: Instance, status: InstanceStatus, operation: str
    ) -> None:
        self._require_tracked(instance)
        current = instance.status
        if current is not status:
            raise InstanceStateError(
                f"Cannot {operation} {instance.name}: status is {current.value}, "
                f"expected {status.value}"
            )

    def _resume_if_stopped(self, instance: Instance) -> None:
        if instance.status is InstanceStatus.STOPPED:
            self._runner.send_signal(instance, signal.SIGCONT)
            instance.transition_unless_exited(InstanceStatus.RUNNING)

    def _first_live_coordinator(self) -> Optional[Instance]:
        for coordinator in self.coordinators():
            if coordinator.status in (InstanceStatus.RUNNING, InstanceStatus.STOPPED):
                return coordinator
        return None

    def _request_cluster_shutdown(self, coordinator: Instance) -> None:
        live = [i for i in self.instances if not i.is_exited()]
        for instance in live:
            self._resume_if_stopped(instance)
        self._health_checker.request_cluster_shutdown(coordinator.url)
        for instance in live:
            if instance.status is InstanceStatus.RUNNING:
                instance.transition_unless_exited(InstanceStatus.SHUTTING_DOWN)

    def _kill_all(self, instances: List[Instance]) -> None:
        for instance in instances:
            if instance.is_exited():
                continue
            was_stopped = instance.status is InstanceStatus.STOPPED
            self._runner.send_signal(instance, signal.SIGTERM)
            if was_stopped:
                self._runner.send_signal(instance, signal.SIGCONT)
            instance.transition_unless_exited(InstanceStatus.KILLED)

    def _wait_for_exit(
        self, instances: List[Instance], timeout: Optional[float], operation: str
    ) -> None:
        try:
            poll_until(
                lambda: all(i.is_exited() for i in instances),
                self.config.timeouts.kill_poll_interval,
                Deadline.after(timeout),
                operation,
            )
        except DeadlineExceededError as e:
            alive = [i.name for i in instances if not i.is_exited()]
            raise DeadlineExceededError(
                f"{operation} did not complete within {timeout}s; "
                f"still running: {', '.join(alive)}",
                timeout=e.timeout,
                elapsed=e.elapsed,
            ) from e

    def _wait_until_ready(
        self, instances: List[Instance], timeout: Optional[float]
    ) -> None:
        pending = list(instances)

        def all_ready() -> bool:
            nonlocal pending
            pending = self._health_checker.failing(pending)
            return not pending

        try:
            poll_until(
                all_ready,
                self.config.timeouts.health_retry_interval,
                Deadline.after(timeout),
                "waiting for instances",
            )
        except DeadlineExceededError as e:
            raise DeadlineExceededError(
                f"Instances not ready within {timeout}s: "
                + ", ".join(f"{i.name} ({i.endpoint})" for i in pending),
                timeout=e.timeout,
                elapsed=e.elapsed,
                details={"pending": [i.name for i in pending]},
            ) from e

    @staticmethod
    def _safe_label(label: str) -> str:
        return _UNSAFE_LABEL_CHARS.sub("_", label).strip("_") or "run"
