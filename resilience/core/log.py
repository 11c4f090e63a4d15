"""Structured logging system with JSON output and rich terminal formatting."""

import logging
import threading
from typing import Any, Dict, Optional, Union, Protocol
from pathlib import Path

from .log_formatters import StructuredFormatter, ResilienceRichHandler, _log_context

ROOT_LOGGER_NAME = "resilience"


class Logger(Protocol):
    """Protocol for logger instances to enable dependency injection."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log error message."""

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""


class LogManager:
    """Central logging configuration and management.

    All framework loggers live below the ``resilience`` logger, which owns the
    handlers and does not propagate to the root logger.
    """

    def __init__(self) -> None:
        self._configured = False
        self._lock = threading.RLock()
        self._json_handler: Optional[logging.Handler] = None
        self._console_handler: Optional[logging.Handler] = None

    @property
    def root(self) -> logging.Logger:
        """The framework's top-level logger."""
        return logging.getLogger(ROOT_LOGGER_NAME)

    def configure(
        self,
        level: Union[int, str] = logging.INFO,
        log_file: Optional[Path] = None,
        enable_json: bool = True,
        enable_console: bool = True,
        console_level: Optional[Union[int, str]] = None,
    ) -> None:
        """Configure logging system. Repeated calls are ignored until reset."""
        with self._lock:
            if self._configured:
                return

            root = self.root
            root.setLevel(logging.DEBUG)
            root.propagate = False

            if enable_json and log_file:
                log_file = Path(log_file)
                log_file.parent.mkdir(parents=True, exist_ok=True)
                self._json_handler = logging.FileHandler(log_file)
                self._json_handler.setFormatter(StructuredFormatter(include_context=True))
                self._json_handler.setLevel(level)
                root.addHandler(self._json_handler)

            if enable_console:
                self._console_handler = ResilienceRichHandler(
                    show_time=True, show_path=False, markup=False
                )
                self._console_handler.setLevel(console_level or level)
                root.addHandler(self._console_handler)

            self._configured = True

    def add_file_logging(
        self, log_file: Path, level: Union[int, str] = logging.DEBUG
    ) -> None:
        """Add JSON file logging to an already configured system."""
        with self._lock:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_file)
            handler.setFormatter(StructuredFormatter(include_context=True))
            handler.setLevel(level)
            if self._json_handler is not None:
                self.root.removeHandler(self._json_handler)
                self._json_handler.close()
            self._json_handler = handler
            self.root.addHandler(handler)

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger below the framework root."""
        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
            return logging.getLogger(name)
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")

    def reset_configuration(self) -> None:
        """Remove handlers so the system can be configured again."""
        with self._lock:
            for handler in (self._json_handler, self._console_handler):
                if handler is None:
                    continue
                self.root.removeHandler(handler)
                try:
                    handler.close()
                except (OSError, RuntimeError):
                    pass  # Ignore handler close errors
            self._json_handler = None
            self._console_handler = None
            self._configured = False


# Global log manager instance
_log_manager = LogManager()


def configure_logging(**kwargs: Any) -> None:
    """Configure the global logging system."""
    _log_manager.configure(**kwargs)


def add_file_logging(log_file: Path, level: Union[int, str] = logging.DEBUG) -> None:
    """Add file logging to already-configured logging system."""
    _log_manager.add_file_logging(log_file, level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return _log_manager.get_logger(name)


def reset_logging() -> None:
    """Reset logging configuration to allow reconfiguration."""
    _log_manager.reset_configuration()


def log_process_event(
    logger: Logger, event: str, pid: Optional[int] = None, **kwargs: Any
) -> None:
    """Log a process-related event."""
    extra: Dict[str, Any] = {"event_type": "process", "process_event": event}
    if pid is not None:
        extra["pid"] = pid
    extra.update(kwargs)
    logger.info("Process %s %s", pid, event, extra=extra)


def log_instance_event(
    logger: Logger, event: str, instance_name: Optional[str] = None, **kwargs: Any
) -> None:
    """Log an instance lifecycle event."""
    extra: Dict[str, Any] = {"event_type": "instance", "instance_event": event}
    if instance_name is not None:
        extra["instance_name"] = instance_name
    extra.update(kwargs)
    logger.info("Instance %s %s", instance_name, event, extra=extra)


# Context management shortcuts
def set_log_context(**kwargs: Any) -> None:
    """Set logging context for current thread."""
    _log_context.set_context(**kwargs)


def get_log_context() -> Dict[str, Any]:
    """Get current logging context."""
    return _log_context.get_context()


def clear_log_context() -> None:
    """Clear current logging context."""
    _log_context.clear_context()


def log_context(**kwargs: Any) -> Any:
    """Context manager for temporary logging context."""
    return _log_context.context(**kwargs)
