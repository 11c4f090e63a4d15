"""Core framework components."""

from .enums import InstanceRole, InstanceStatus, RunnerKind
from .value_objects import RunId

__all__ = ["InstanceRole", "InstanceStatus", "RunnerKind", "RunId"]
