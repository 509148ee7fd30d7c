from __future__ import annotations

import uuid
from collections.abc import Iterable

import anyio

from lidarview.control.base import PointCloudControl, PointCloudLoadError
from lidarview.models import ControlState, DisplayOptions, PointCloudInfo, StreamingProgress


class SimulatedPointCloudControl(PointCloudControl):
    """In-process stand-in for the browser control.

    Loads sleep for ``load_seconds`` while streaming ``points_per_source``
    points in ``progress_steps`` increments, so the loading overlay sees the
    same shape of state a real streaming load produces.
    """

    def __init__(
        self,
        *,
        load_seconds: float = 1.5,
        points_per_source: int = 3_000_000,
        progress_steps: int = 10,
        fail_sources: Iterable[str] = (),
        options: DisplayOptions | None = None,
    ):
        super().__init__(options=options)
        self.load_seconds = max(0.0, float(load_seconds))
        self.points_per_source = max(0, int(points_per_source))
        self.progress_steps = max(1, int(progress_steps))
        self.fail_sources = set(fail_sources)

        self._clouds: dict[str, str] = {}
        self._active_loads = 0
        self._streamed_points = 0

    async def start(self) -> None:
        # Nothing to attach to: ready as soon as it starts.
        self.mark_ready()

    @property
    def loaded(self) -> dict[str, str]:
        """resource id -> source for every point cloud currently held."""
        return dict(self._clouds)

    async def load_point_cloud(self, source: str) -> PointCloudInfo:
        if self._active_loads == 0:
            self._streamed_points = 0
        self._active_loads += 1
        self._publish()
        try:
            step_delay = self.load_seconds / self.progress_steps
            step_points = self.points_per_source // self.progress_steps
            for _ in range(self.progress_steps):
                await anyio.sleep(step_delay)
                self._streamed_points += step_points
                self._publish()

            if source in self.fail_sources:
                raise PointCloudLoadError(f"Simulated failure loading '{source}'.")

            resource_id = f"pc-{uuid.uuid4().hex[:12]}"
            self._clouds[resource_id] = source
            return PointCloudInfo(id=resource_id, source=source, point_count=self.points_per_source)
        finally:
            self._active_loads -= 1
            self._publish()

    def unload_point_cloud(self, resource_id: str) -> None:
        if self._clouds.pop(resource_id, None) is None:
            raise KeyError(resource_id)

    def _publish(self) -> None:
        busy = self._active_loads > 0
        self._set_state(
            ControlState(
                loading=busy,
                streaming_active=busy,
                streaming_progress=StreamingProgress(
                    loaded_points=self._streamed_points,
                    is_loading=busy,
                ),
                options=self.state.options,
            )
        )
