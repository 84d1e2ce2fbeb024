"""
JSON-lines logging for the tracker daemon.

Every record becomes one JSON object with ``timestamp``, ``level``,
``logger`` and ``message``. Records logged with
``extra={"user_id": ..., "device_id": ...}`` carry those keys as well, so
per-device failures can be filtered out of the container log. Tracebacks
land under ``exc_info``.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import json
import logging
from datetime import UTC, datetime

# Record attributes copied into the JSON line when a caller set them.
CONTEXT_FIELDS: tuple[str, ...] = ("user_id", "device_id")


class JSONFormatter(logging.Formatter):
    """Renders a record as one JSON object with tracker context keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Route all tracker logging to stderr as JSON lines.

    Called once by ``main()``. A repeated call swaps the handler rather
    than adding a second one.

    Args:
        level: Root level, as a number or a name such as ``"DEBUG"``.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    stream = logging.StreamHandler()
    stream.setFormatter(JSONFormatter())
    root.addHandler(stream)
