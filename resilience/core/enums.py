"""Core enumerations for the resilience framework.

Kept free of imports from other core modules so every layer can depend on it.
"""

from enum import Enum
from typing import Optional


class InstanceRole(Enum):
    """Role of a cluster member."""

    AGENT = "agent"
    PRIMARY = "primary"
    COORDINATOR = "coordinator"

    @property
    def cluster_role(self) -> Optional[str]:
        """Value passed to ``--cluster.my-role`` (agents have none)."""
        if self is InstanceRole.PRIMARY:
            return "PRIMARY"
        if self is InstanceRole.COORDINATOR:
            return "COORDINATOR"
        return None


class InstanceStatus(Enum):
    """Lifecycle state of a cluster member."""

    NEW = "new"
    RUNNING = "running"
    STOPPED = "stopped"
    KILLED = "killed"
    SHUTTING_DOWN = "shutting_down"
    EXITED = "exited"


class RunnerKind(Enum):
    """Launcher strategy selected for one InstanceManager."""

    LOCAL = "local"
    DOCKER = "docker"
