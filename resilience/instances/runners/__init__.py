"""Process launch strategies."""

from .base import LogSink, Runner
from .docker import DockerRunner
from .factory import create_runner
from .local import LocalRunner

__all__ = ["LogSink", "Runner", "DockerRunner", "LocalRunner", "create_runner"]
