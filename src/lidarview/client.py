from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import Any

import requests
from anyio.from_thread import BlockingPortal, start_blocking_portal
from pydantic import TypeAdapter

from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.models import (
    DatasetStatus,
    LoadingView,
    SelectionResponse,
    ToggleRequest,
    ToggleResponse,
    ViewerEvent,
)
from lidarview.settings import get_settings


_DATASET_LIST = TypeAdapter(list[DatasetStatus])


class LidarViewerClient(AbstractContextManager["LidarViewerClient"]):
    """Unified client supporting direct mode and service mode."""

    def __init__(
        self,
        *,
        mode: str = "direct",
        service_url: str | None = None,
        api_key: str | None = None,
        viewer: LidarViewer | None = None,
    ):
        normalized_mode = mode.strip().lower()
        if normalized_mode not in {"direct", "service"}:
            raise ValueError("mode must be 'direct' or 'service'.")

        self.mode = normalized_mode
        self.service_url = (service_url or "http://127.0.0.1:8000").rstrip("/")
        self.api_key = api_key

        self._session: requests.Session | None = None
        self._portal: BlockingPortal | None = None
        self._portal_cm = None
        self._viewer: LidarViewer | None = None

        if self.mode == "service":
            self._session = requests.Session()
            if self.api_key:
                self._session.headers.update({"X-API-Key": self.api_key})
        else:
            self._portal_cm = start_blocking_portal()
            self._portal = self._portal_cm.__enter__()
            self._viewer = viewer or LidarViewer(settings=get_settings())
            self._portal.call(self._viewer.start)

    def close(self) -> None:
        if self.mode == "direct":
            if self._portal and self._viewer:
                self._portal.call(self._viewer.stop)
            if self._portal_cm:
                self._portal_cm.__exit__(None, None, None)
            self._portal = None
            self._portal_cm = None
            self._viewer = None
        else:
            if self._session:
                self._session.close()
            self._session = None

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def list_datasets(self) -> list[DatasetStatus]:
        if self.mode == "direct":
            assert self._portal and self._viewer
            return self._portal.call(self._viewer.list_datasets)

        return _DATASET_LIST.validate_python(self._get("/v1/datasets"))

    def get_selection(self) -> SelectionResponse:
        if self.mode == "direct":
            assert self._portal and self._viewer
            return self._portal.call(self._viewer.get_selection)

        return SelectionResponse.model_validate(self._get("/v1/selection"))

    def toggle(self, *, source: str | None = None, dataset_id: str | None = None) -> ToggleResponse:
        request = ToggleRequest(source=source, dataset_id=dataset_id)
        if self.mode == "direct":
            assert self._portal and self._viewer
            if request.dataset_id is not None:
                return self._portal.call(self._viewer.toggle_dataset, request.dataset_id)
            return self._portal.call(self._viewer.toggle, str(request.source))

        assert self._session is not None
        response = self._session.post(
            f"{self.service_url}/v1/selection/toggle",
            json=request.model_dump(mode="json", exclude_none=True),
            timeout=30,
        )
        response.raise_for_status()
        return ToggleResponse.model_validate(response.json())

    def get_loading(self) -> LoadingView:
        if self.mode == "direct":
            assert self._portal and self._viewer
            return self._portal.call(self._viewer.loading)

        return LoadingView.model_validate(self._get("/v1/loading"))

    def get_ledger(self) -> dict[str, str]:
        if self.mode == "direct":
            assert self._portal and self._viewer
            return self._portal.call(self._viewer.ledger)

        return dict(self._get("/v1/ledger"))

    def settle(self) -> None:
        if self.mode != "direct":
            raise NotImplementedError("settle is only available in direct mode.")
        assert self._portal and self._viewer
        self._portal.call(self._viewer.settle)

    def stream_events(self, *, since: int | None = None) -> Iterator[ViewerEvent]:
        if self.mode == "direct":
            assert self._portal and self._viewer
            cursor = since
            while True:
                rows = self._portal.call(self._viewer.events.list_events, cursor, 200)
                if rows:
                    for row in rows:
                        cursor = row.id
                        yield row
                    continue
                self._portal.call(self._wait_for_events)

        assert self._session is not None
        response = self._session.get(
            f"{self.service_url}/v1/events",
            params={"since": since},
            stream=True,
            timeout=120,
        )
        response.raise_for_status()

        event_type = "message"
        event_id: int | None = None
        data_parts: list[str] = []

        for raw_line in response.iter_lines(decode_unicode=True):
            if raw_line is None:
                continue
            line = raw_line.strip()
            if not line:
                if data_parts:
                    payload = json.loads("\n".join(data_parts))
                    payload.setdefault("type", event_type)
                    payload.setdefault("id", event_id)
                    yield ViewerEvent.model_validate(payload)
                event_type = "message"
                event_id = None
                data_parts = []
                continue

            if line.startswith("event:"):
                event_type = line.split(":", 1)[1].strip()
            elif line.startswith("id:"):
                value = line.split(":", 1)[1].strip()
                event_id = int(value) if value.isdigit() else None
            elif line.startswith("data:"):
                data_parts.append(line.split(":", 1)[1].strip())

    async def _wait_for_events(self) -> None:
        assert self._viewer is not None
        stream = self._viewer.events.stream(
            since_id=self._viewer.events.last_id,
            heartbeat_seconds=1.0,
        )
        try:
            await stream.__anext__()
        finally:
            await stream.aclose()

    def _get(self, path: str) -> Any:
        assert self._session is not None
        response = self._session.get(f"{self.service_url}{path}", timeout=30)
        response.raise_for_status()
        return response.json()
