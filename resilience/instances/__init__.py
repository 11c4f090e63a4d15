"""Instance management components.

API:
    - InstanceManager: Cluster orchestration for one test run
    - Instance: Record of one cluster member
    - InstanceHealthChecker: Readiness checks
"""

from .instance import Instance, InstanceSnapshot
from .health_checker import InstanceHealthChecker
from .manager import InstanceManager

__all__ = ["Instance", "InstanceSnapshot", "InstanceHealthChecker", "InstanceManager"]
