from __future__ import annotations

import logging
from collections.abc import Callable
from typing import AsyncIterator

from lidarview.catalog import (
    BASEMAPS,
    MAP_ATTRIBUTION,
    DatasetCatalog,
    load_catalog,
)
from lidarview.control.base import PointCloudControl
from lidarview.control.factory import create_control, display_options
from lidarview.events import EventBus
from lidarview.ledger import ResourceLedger
from lidarview.loading import aggregate_loading_state
from lidarview.models import (
    BasemapName,
    ControlState,
    DatasetStatus,
    LoadingView,
    MapConfig,
    SelectionResponse,
    ToggleResponse,
    ViewerEvent,
)
from lidarview.reconciler import Reconciler, ReconcilerStats
from lidarview.selection import SelectionSet
from lidarview.settings import Settings, get_settings


logger = logging.getLogger("lidarview.engine")


class UnknownBasemapError(KeyError):
    pass


class LidarViewer:
    """Core orchestrator of a viewer session.

    Owns the selection, the ledger and the reconciler, holds the control
    handle once the control reports ready, and turns the control's reported
    state into the loading view shown by the overlay.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        catalog: DatasetCatalog | None = None,
        control: PointCloudControl | None = None,
    ):
        self.settings = settings or get_settings()
        self.catalog = catalog or load_catalog(self.settings.lidar_catalog_file)
        self.events = EventBus(capacity=self.settings.lidar_event_buffer)
        self.selection = SelectionSet(
            self.catalog.default_selection(self.settings.default_dataset_ids)
        )
        self._ledger = ResourceLedger()
        self._reconciler = Reconciler(
            selection=self.selection,
            ledger=self._ledger,
            listener=self.events.publish,
        )
        self._control = control
        self._basemap = self._parse_basemap(self.settings.lidar_basemap)
        self._loading = LoadingView()
        self._unsubscribers: list[Callable[[], None]] = []
        self._started = False

    @property
    def control(self) -> PointCloudControl | None:
        return self._control

    @property
    def control_ready(self) -> bool:
        return self._reconciler.is_ready

    @property
    def stats(self) -> ReconcilerStats:
        return self._reconciler.stats

    @property
    def in_flight(self) -> list[str]:
        return self._reconciler.in_flight

    async def start(self) -> None:
        if self._started:
            return
        if self._control is None:
            self._control = create_control(self.settings)

        self._unsubscribers = [
            self.selection.subscribe(self._on_selection_changed),
            self._control.subscribe(self._on_control_state),
            self._control.add_reset_callback(self._on_control_reset),
        ]
        self._on_control_state(self._control.state)
        self._unsubscribers.append(self._control.add_ready_callback(self._on_control_ready))
        await self._control.start()
        self._started = True
        logger.info(
            "viewer_started backend=%s datasets=%d active=%d",
            self.settings.control_backend,
            len(self.catalog),
            len(self.selection),
        )

    async def stop(self) -> None:
        if not self._started:
            return
        await self._reconciler.close()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._control is not None:
            await self._control.stop()
        self._started = False

    def toggle(self, source: str) -> ToggleResponse:
        dataset = self.catalog.by_source(source)
        active_now = self.selection.toggle(dataset.source)
        return ToggleResponse(
            active=list(self.selection),
            source=source,
            active_now=active_now,
        )

    def toggle_dataset(self, dataset_id: str) -> ToggleResponse:
        return self.toggle(self.catalog.get(dataset_id).source)

    def get_selection(self) -> SelectionResponse:
        return SelectionResponse(active=list(self.selection))

    def list_datasets(self) -> list[DatasetStatus]:
        return [
            DatasetStatus(
                id=dataset.id,
                name=dataset.name,
                source=dataset.source,
                active=dataset.source in self.selection,
                loaded=dataset.source in self._ledger,
            )
            for dataset in self.catalog
        ]

    def loading(self) -> LoadingView:
        return self._loading

    def ledger(self) -> dict[str, str]:
        return self._ledger.snapshot()

    def map_config(self) -> MapConfig:
        options = self._control.state.options if self._control else display_options(self.settings)
        return MapConfig(
            basemap=self._basemap,
            style_url=BASEMAPS[self._basemap.value],
            basemaps=dict(BASEMAPS),
            center=(self.settings.lidar_map_center_lon, self.settings.lidar_map_center_lat),
            zoom=self.settings.lidar_map_zoom,
            pitch=self.settings.lidar_map_pitch,
            max_pitch=self.settings.lidar_map_max_pitch,
            attribution=MAP_ATTRIBUTION,
            options=options,
        )

    def set_basemap(self, name: str) -> MapConfig:
        basemap = self._parse_basemap(name)
        if basemap != self._basemap:
            self._basemap = basemap
            self.events.publish(
                "basemap.changed",
                {"basemap": basemap.value, "style_url": BASEMAPS[basemap.value]},
            )
        return self.map_config()

    async def settle(self) -> None:
        await self._reconciler.drain()

    async def stream_events(self, *, since: int | None) -> AsyncIterator[ViewerEvent]:
        async for item in self.events.stream(
            since_id=since,
            heartbeat_seconds=self.settings.lidar_event_heartbeat_seconds,
        ):
            yield item

    def _on_control_ready(self, control: PointCloudControl) -> None:
        logger.info("control_ready backend=%s", type(control).__name__)
        self.events.publish("control.ready", {"backend": self.settings.control_backend})
        self._reconciler.attach(control)

    def _on_control_reset(self, control: PointCloudControl) -> None:
        logger.info("control_reloaded backend=%s", type(control).__name__)
        self._reconciler.reset()

    def _on_selection_changed(self, active: tuple[str, ...]) -> None:
        self.events.publish("selection.changed", {"active": list(active)})
        self._reconciler.reconcile()

    def _on_control_state(self, state: ControlState) -> None:
        view = aggregate_loading_state(
            state,
            assumed_total=self.settings.lidar_assumed_total_points,
        )
        if view == self._loading:
            return
        self._loading = view
        self.events.publish("loading.changed", view.model_dump(mode="json"))

    @staticmethod
    def _parse_basemap(name: str) -> BasemapName:
        try:
            return BasemapName(str(name).strip().lower())
        except ValueError:
            raise UnknownBasemapError(name) from None
