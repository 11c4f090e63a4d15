"""
Resilience: test-cluster orchestration for ArangoDB resilience tests

Starts an agency, coordinators and dbservers from a local build or a docker
image, injects faults (kill, stop, restart, endpoint changes) and tears the
cluster down again.
"""

__version__ = "1.0.0"

# Core exports
from .core.enums import InstanceRole, InstanceStatus, RunnerKind
from .core.types import ResilienceConfig, TimeoutConfig, PortConfig
from .instances.instance import Instance
from .instances.manager import InstanceManager

__all__ = [
    "__version__",
    "InstanceRole",
    "InstanceStatus",
    "RunnerKind",
    "ResilienceConfig",
    "TimeoutConfig",
    "PortConfig",
    "Instance",
    "InstanceManager",
]
