"""Point-cloud viewer core: dataset selection, reconciliation and loading state."""

from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.client import LidarViewerClient

__all__ = ["LidarViewer", "LidarViewerClient"]
