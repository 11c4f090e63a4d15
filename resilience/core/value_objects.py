"""Domain primitives for run identification."""

import secrets
from dataclasses import dataclass


@dataclass(frozen=True)
class RunId:
    """Validated identifier of one InstanceManager run.

    Generated once per manager and used as prefix for every container name
    and temporary directory the run creates.
    """

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError("RunId cannot be empty")

        # Allow alphanumeric characters, underscores, and hyphens
        normalized = self.value.replace("_", "").replace("-", "")
        if not normalized.isalnum():
            raise ValueError(f"RunId must be alphanumeric with _ or -: {self.value}")

    @classmethod
    def generate(cls, prefix: str = "arango") -> "RunId":
        """Create a fresh random run identifier."""
        return cls(f"{prefix}-{secrets.token_hex(6)}")

    def qualify(self, name: str) -> str:
        """Derive a run-scoped name, e.g. a container name."""
        return f"{self.value}-{name}"

    def __str__(self) -> str:
        return self.value
