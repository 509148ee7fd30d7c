from __future__ import annotations

from lidarview.control.base import PointCloudControl
from lidarview.control.bridge import BridgePointCloudControl
from lidarview.control.simulated import SimulatedPointCloudControl
from lidarview.models import DisplayOptions
from lidarview.settings import Settings


def display_options(settings: Settings) -> DisplayOptions:
    return DisplayOptions(
        point_size=settings.lidar_point_size,
        color_scheme=settings.lidar_color_scheme,
        use_percentile=settings.lidar_use_percentile,
    )


def create_control(settings: Settings) -> PointCloudControl:
    backend = settings.control_backend
    if backend == "simulated":
        return SimulatedPointCloudControl(
            load_seconds=settings.lidar_sim_load_seconds,
            points_per_source=settings.lidar_sim_points_per_source,
            fail_sources=settings.sim_fail_sources,
            options=display_options(settings),
        )
    if backend == "bridge":
        return BridgePointCloudControl(options=display_options(settings))
    raise ValueError(f"Unsupported LIDAR_CONTROL_BACKEND='{settings.lidar_control_backend}'")
