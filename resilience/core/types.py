"""Core type definitions for the resilience framework."""

from typing import Dict, Optional, Any
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from .enums import RunnerKind


STORAGE_ENGINES = ("rocksdb", "mmfiles")


class TimeoutConfig(BaseModel):
    """Polling intervals and request timeouts."""

    # Retry and polling intervals
    health_retry_interval: float = 0.1
    kill_poll_interval: float = 0.05

    # Per-request timeouts
    health_check_request: float = 2.0
    shutdown_request: float = 30.0

    # docker CLI commands (commit of a large data directory can be slow)
    container_command: float = 120.0


class PortConfig(BaseModel):
    """Scan window of the endpoint allocator."""

    base_port: int = 40000
    port_offset: int = 0
    stride: int = 100
    ceiling: int = 60000
    scan_width: int = 1000

    @property
    def start_port(self) -> int:
        """First port of the initial scan window."""
        return self.base_port + self.port_offset


class ResilienceConfig(BaseModel):
    """Main framework configuration."""

    # Launcher strategy, exactly one of these must be set
    arango_basepath: Optional[Path] = None
    docker_image: Optional[str] = None

    docker_container_port: int = 8529
    arango_wrapper: Optional[str] = None
    storage_engine: str = "rocksdb"

    temp_dir: Optional[Path] = None
    logs_dir: Path = Path("./server-logs")
    retain_on_failure: bool = True
    log_level: str = "INFO"
    log_immediate: bool = False

    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    ports: PortConfig = Field(default_factory=PortConfig)

    @property
    def runner_kind(self) -> RunnerKind:
        """Launcher strategy selected by this configuration."""
        if self.arango_basepath is not None:
            return RunnerKind.LOCAL
        return RunnerKind.DOCKER

    @model_validator(mode="after")
    def validate_config(self) -> "ResilienceConfig":
        """Validate configuration - no side effects."""
        from .errors import ConfigurationError

        if self.arango_basepath is None and not self.docker_image:
            raise ConfigurationError(
                "Must specify RESILIENCE_ARANGO_BASEPATH (source root dir including a "
                '"build" folder containing compiled binaries) or RESILIENCE_DOCKER_IMAGE '
                "to test a docker container"
            )
        if self.arango_basepath is not None and self.docker_image:
            raise ConfigurationError(
                "RESILIENCE_ARANGO_BASEPATH and RESILIENCE_DOCKER_IMAGE are mutually exclusive",
                details={
                    "arango_basepath": str(self.arango_basepath),
                    "docker_image": self.docker_image,
                },
            )
        if self.storage_engine not in STORAGE_ENGINES:
            raise ConfigurationError(
                f"Unknown storage engine '{self.storage_engine}', "
                f"expected one of {', '.join(STORAGE_ENGINES)}"
            )
        return self


# Health and status types
class HealthStatus(BaseModel):
    """Result of one readiness check."""

    is_healthy: bool
    response_time: float
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


# Process management types
class ProcessStats(BaseModel):
    """Process statistics."""

    pid: int
    memory_rss: int
    memory_vms: int
    cpu_percent: float
    num_threads: int
    status: str
