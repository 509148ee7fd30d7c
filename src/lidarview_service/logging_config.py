from __future__ import annotations

import json
import logging
from datetime import datetime, timezone


# Attributes passed with ``extra=`` by the middleware.
CONTEXT_FIELDS = ("request_id", "channel")


def split_event_message(message: str) -> tuple[str, dict[str, str]]:
    """Split ``"pointcloud_loaded source=a.laz resource_id=pc-1"`` into event and fields.

    Tokens that are not ``key=value`` pairs stay in the event text.
    """

    head: list[str] = []
    fields: dict[str, str] = {}
    for token in message.split(" "):
        key, sep, value = token.partition("=")
        if sep and key.isidentifier():
            fields[key] = value
        else:
            head.append(token)
    return " ".join(head), fields


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, with the key=value pairs of the message as fields."""

    def format(self, record: logging.LogRecord) -> str:
        event, fields = split_event_message(record.getMessage())
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": event,
        }
        if fields:
            payload["fields"] = fields
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                payload[name] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(*, level: str, json_logs: bool) -> None:
    log_level = logging.getLevelName(level.strip().upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(
        JsonLogFormatter()
        if json_logs
        else logging.Formatter("%(asctime)s %(levelname)-7s %(name)s %(message)s")
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    # The telemetry middleware already logs every request.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
