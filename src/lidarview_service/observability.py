from __future__ import annotations

from collections.abc import Callable

from prometheus_client import Counter, Gauge, Histogram, generate_latest

from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.models import ViewerEvent


HTTP_REQUESTS_TOTAL = Counter(
    "lidar_http_requests_total",
    "Total HTTP requests handled by the viewer API.",
    labelnames=("channel", "method", "path", "status"),
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "lidar_http_request_duration_seconds",
    "HTTP request duration in seconds.",
    labelnames=("method", "path"),
    buckets=(0.005, 0.01, 0.05, 0.1, 0.3, 1.0, 3.0, 10.0),
)

SELECTION_TOGGLES_TOTAL = Counter(
    "lidar_selection_toggles_total",
    "Dataset toggles grouped by resulting state.",
    labelnames=("state",),
)

POINTCLOUD_OPERATIONS_TOTAL = Counter(
    "lidar_pointcloud_operations_total",
    "Point-cloud operations issued to the control, grouped by outcome.",
    labelnames=("operation", "outcome"),
)

POINTCLOUDS_LOADED = Gauge(
    "lidar_pointclouds_loaded",
    "Point clouds currently recorded as loaded.",
)

POINTCLOUD_LOADS_IN_FLIGHT = Gauge(
    "lidar_pointcloud_loads_in_flight",
    "Point-cloud loads currently in flight.",
)

LOADING_PROGRESS_PERCENT = Gauge(
    "lidar_loading_progress_percent",
    "Approximate streaming progress shown by the loading overlay.",
)

_OPERATION_EVENTS: dict[str, tuple[str, str]] = {
    "pointcloud.load_started": ("load", "started"),
    "pointcloud.loaded": ("load", "succeeded"),
    "pointcloud.load_failed": ("load", "failed"),
    "pointcloud.unloaded": ("unload", "succeeded"),
    "pointcloud.unload_failed": ("unload", "failed"),
    "pointcloud.stale_unloaded": ("unload", "stale"),
}


def record_http_request(
    method: str,
    path: str,
    status_code: int,
    duration_seconds: float | None,
    *,
    channel: str = "api",
) -> None:
    m = method.upper().strip()
    p = path.strip() or "_unknown"
    HTTP_REQUESTS_TOTAL.labels(channel=channel, method=m, path=p, status=str(int(status_code))).inc()
    # Streams stay open for minutes; their duration is not a latency.
    if duration_seconds is not None:
        HTTP_REQUEST_DURATION_SECONDS.labels(method=m, path=p).observe(max(0.0, duration_seconds))


def record_toggle(active_now: bool) -> None:
    SELECTION_TOGGLES_TOTAL.labels(state="on" if active_now else "off").inc()


def record_viewer_event(event: ViewerEvent) -> None:
    labels = _OPERATION_EVENTS.get(event.type)
    if labels is None:
        return
    operation, outcome = labels
    POINTCLOUD_OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()


def install_viewer_metrics(viewer: LidarViewer) -> Callable[[], None]:
    return viewer.events.add_listener(record_viewer_event)


def update_viewer_gauges(viewer: LidarViewer) -> None:
    POINTCLOUDS_LOADED.set(float(len(viewer.ledger())))
    POINTCLOUD_LOADS_IN_FLIGHT.set(float(len(viewer.in_flight)))
    LOADING_PROGRESS_PERCENT.set(float(viewer.loading().progress_percent))


def render_metrics(viewer: LidarViewer) -> bytes:
    update_viewer_gauges(viewer)
    return generate_latest()
