"""JSON lines for log files, rich styling for the console, and the run context."""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text
from rich.theme import Theme

# Anything on a record beyond these came in through ``extra``
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}

EVENT_STYLES = {
    "process": "bright_blue",
    "instance": "bright_cyan",
    "output": "dim white",
}


class LogContext(threading.local):
    """Per-thread fields (run id, test name) attached to every JSON line."""

    def __init__(self) -> None:
        self.fields: Dict[str, Any] = {}

    def set_context(self, **kwargs: Any) -> None:
        self.fields.update(kwargs)

    def get_context(self) -> Dict[str, Any]:
        return dict(self.fields)

    def clear_context(self) -> None:
        self.fields = {}

    @contextmanager
    def context(self, **kwargs: Any) -> Iterator[None]:
        """Add fields for the duration of the block, then restore the previous ones."""
        previous = self.get_context()
        self.set_context(**kwargs)
        try:
            yield
        finally:
            self.fields = previous


_log_context = LogContext()


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Fields passed through ``extra``, such as instance names and endpoints, go
    under ``fields``; the thread's run context goes under ``context``.
    """

    def __init__(self, include_context: bool = True) -> None:
        super().__init__()
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        fields = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRIBUTES}
        if fields:
            entry["fields"] = fields
        if self.include_context and _log_context.fields:
            entry["context"] = _log_context.get_context()
        return json.dumps(entry, default=str)


class ResilienceRichHandler(RichHandler):
    """Console handler colouring records by their ``event_type``."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        console = Console(theme=Theme({"logging.level.info": "dim blue"}), stderr=True)
        super().__init__(*args, console=console, **kwargs)

    def render_message(self, record: logging.LogRecord, message: str) -> Text:
        text = Text(message)
        style = EVENT_STYLES.get(getattr(record, "event_type", None))
        if style:
            text.stylize(style)
        return text
