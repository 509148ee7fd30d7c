from __future__ import annotations

import json
import logging

import pytest

from lidarview_service.logging_config import (
    JsonLogFormatter,
    configure_logging,
    split_event_message,
)


@pytest.mark.parametrize(
    ("message", "event", "fields"),
    [
        ("viewer_started", "viewer_started", {}),
        (
            "pointcloud_loaded source=./data/a.laz resource_id=pc-1",
            "pointcloud_loaded",
            {"source": "./data/a.laz", "resource_id": "pc-1"},
        ),
        ("load failed: a=b=c x", "load failed: x", {"a": "b=c"}),
        ("ratio 3=4", "ratio 3=4", {}),
    ],
)
def test_split_event_message(message, event, fields) -> None:
    assert split_event_message(message) == (event, fields)


def test_json_formatter_carries_request_context() -> None:
    record = logging.LogRecord(
        name="lidarview.api",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="request_completed method=%s status=%s",
        args=("POST", 202),
        exc_info=None,
    )
    record.request_id = "req-1"
    record.channel = "bridge"

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["event"] == "request_completed"
    assert payload["fields"] == {"method": "POST", "status": "202"}
    assert payload["request_id"] == "req-1"
    assert payload["channel"] == "bridge"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "lidarview.api"
    assert "exception" not in payload


def test_configure_logging_replaces_root_handler() -> None:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    access = logging.getLogger("uvicorn.access")
    access_level = access.level
    try:
        configure_logging(level="debug", json_logs=True)

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonLogFormatter)
        assert access.level == logging.WARNING

        configure_logging(level="chatty", json_logs=False)
        assert root.level == logging.INFO
    finally:
        root.handlers = handlers
        root.setLevel(level)
        access.setLevel(access_level)
