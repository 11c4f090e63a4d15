"""In-memory record of one cluster member."""

import threading
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Dict, FrozenSet, List, NamedTuple, Optional

from ..core.enums import InstanceRole, InstanceStatus
from ..core.errors import InstanceStateError
from ..core.process import ProcessHandle
from ..utils.endpoints import endpoint_to_url, port_from_endpoint

ExitCallback = Callable[[int], None]

MAX_LOG_LINES = 20000

_TRANSITIONS: Dict[InstanceStatus, FrozenSet[InstanceStatus]] = {
    InstanceStatus.NEW: frozenset({InstanceStatus.RUNNING}),
    InstanceStatus.RUNNING: frozenset(
        {
            InstanceStatus.STOPPED,
            InstanceStatus.KILLED,
            InstanceStatus.SHUTTING_DOWN,
            InstanceStatus.EXITED,
        }
    ),
    InstanceStatus.STOPPED: frozenset(
        {
            InstanceStatus.RUNNING,
            InstanceStatus.KILLED,
            InstanceStatus.SHUTTING_DOWN,
            InstanceStatus.EXITED,
        }
    ),
    InstanceStatus.KILLED: frozenset({InstanceStatus.EXITED}),
    InstanceStatus.SHUTTING_DOWN: frozenset({InstanceStatus.EXITED}),
    InstanceStatus.EXITED: frozenset({InstanceStatus.RUNNING}),
}


class InstanceSnapshot(NamedTuple):
    """Status and exit code read together."""

    status: InstanceStatus
    exit_code: Optional[int]


class Instance:
    """One arangod process (or container) managed by an InstanceManager.

    ``status`` and ``exit_code`` change together under the instance lock.
    The process handle is replaced on every restart; exit notifications of
    an earlier handle are ignored.
    """

    def __init__(
        self,
        name: str,
        role: InstanceRole,
        endpoint: str,
        args: Optional[List[str]] = None,
        max_log_lines: int = MAX_LOG_LINES,
    ) -> None:
        self.name = name
        self._role = role
        self._endpoint = endpoint
        self._status = InstanceStatus.NEW
        self._exit_code: Optional[int] = None
        self.args: List[str] = list(args or [])
        self.binary: Optional[str] = None
        self.data_dir: Optional[Path] = None
        self.process: Optional[ProcessHandle] = None
        self.log_lines: Deque[str] = deque(maxlen=max_log_lines)
        self._generation = 0
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return (
            f"Instance(name={self.name!r}, role={self._role.value}, "
            f"endpoint={self._endpoint!r}, status={self._status.value})"
        )

    @property
    def role(self) -> InstanceRole:
        return self._role

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def url(self) -> str:
        return endpoint_to_url(self._endpoint)

    @property
    def port(self) -> int:
        return port_from_endpoint(self._endpoint)

    @property
    def status(self) -> InstanceStatus:
        with self._lock:
            return self._status

    @property
    def exit_code(self) -> Optional[int]:
        with self._lock:
            return self._exit_code

    def snapshot(self) -> InstanceSnapshot:
        """Consistent (status, exit_code) pair."""
        with self._lock:
            return InstanceSnapshot(self._status, self._exit_code)

    def is_exited(self) -> bool:
        return self.status is InstanceStatus.EXITED

    def assign_endpoint(self, endpoint: str) -> None:
        with self._lock:
            self._endpoint = endpoint

    def transition(self, status: InstanceStatus) -> None:
        """Move to ``status``; setting the current status again is a no-op.

        Raises:
            InstanceStateError: If the transition is not allowed
        """
        with self._lock:
            if status is self._status:
                return
            self._check_transition(status)
            self._status = status

    def transition_unless_exited(self, status: InstanceStatus) -> bool:
        """Like ``transition`` but returns False if the process already exited."""
        with self._lock:
            if self._status is InstanceStatus.EXITED:
                return False
            self.transition(status)
            return True

    def start_process(
        self, spawn: Callable[[ExitCallback], ProcessHandle]
    ) -> ProcessHandle:
        """Attach a freshly spawned process and mark the instance RUNNING.

        ``spawn`` receives the exit callback to hand to the new process. The
        instance lock is held while spawning, so an exit notification cannot
        overtake the attachment.
        """
        with self._lock:
            self._check_transition(InstanceStatus.RUNNING)
            generation = self._generation + 1
            handle = spawn(lambda code: self.mark_exited(code, generation))
            self._generation = generation
            self.process = handle
            self._status = InstanceStatus.RUNNING
            self._exit_code = None
            return handle

    def mark_exited(self, exit_code: int, generation: Optional[int] = None) -> bool:
        """Record process exit. Returns False for stale or repeated notifications."""
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            if self._status is InstanceStatus.EXITED:
                return False
            self._check_transition(InstanceStatus.EXITED)
            self._status = InstanceStatus.EXITED
            self._exit_code = exit_code
            return True

    def append_output(self, line: str) -> None:
        self.log_lines.append(line)

    def _check_transition(self, status: InstanceStatus) -> None:
        if status not in _TRANSITIONS[self._status]:
            raise InstanceStateError(
                f"Instance {self.name} ({self._role.value}, {self._endpoint}) "
                f"cannot go from {self._status.value} to {status.value}",
                details={"instance": self.name, "from": self._status.value, "to": status.value},
            )
