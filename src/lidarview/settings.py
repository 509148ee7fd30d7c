from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    lidar_catalog_file: Path | None = Field(default=None, alias="LIDAR_CATALOG_FILE")
    lidar_default_datasets: str = Field(default="", alias="LIDAR_DEFAULT_DATASETS")
    lidar_control_backend: str = Field(default="simulated", alias="LIDAR_CONTROL_BACKEND")

    lidar_assumed_total_points: int = Field(
        default=5_000_000,
        alias="LIDAR_ASSUMED_TOTAL_POINTS",
        ge=1,
    )
    lidar_point_size: float = Field(default=3.0, alias="LIDAR_POINT_SIZE", gt=0, le=50)
    lidar_color_scheme: str = Field(default="elevation", alias="LIDAR_COLOR_SCHEME")
    lidar_use_percentile: bool = Field(default=True, alias="LIDAR_USE_PERCENTILE")

    lidar_viewer_title: str = Field(default="Cologne LidarData MapViewer", alias="LIDAR_VIEWER_TITLE")
    lidar_basemap: str = Field(default="dark", alias="LIDAR_BASEMAP")
    lidar_map_center_lon: float = Field(default=6.9531, alias="LIDAR_MAP_CENTER_LON", ge=-180, le=180)
    lidar_map_center_lat: float = Field(default=50.9352, alias="LIDAR_MAP_CENTER_LAT", ge=-90, le=90)
    lidar_map_zoom: float = Field(default=12.0, alias="LIDAR_MAP_ZOOM", ge=0, le=24)
    lidar_map_pitch: float = Field(default=60.0, alias="LIDAR_MAP_PITCH", ge=0, le=85)
    lidar_map_max_pitch: float = Field(default=85.0, alias="LIDAR_MAP_MAX_PITCH", ge=0, le=85)

    lidar_sim_load_seconds: float = Field(
        default=1.5,
        alias="LIDAR_SIM_LOAD_SECONDS",
        ge=0.0,
        le=600.0,
    )
    lidar_sim_points_per_source: int = Field(
        default=3_000_000,
        alias="LIDAR_SIM_POINTS_PER_SOURCE",
        ge=0,
    )
    lidar_sim_fail_sources: str = Field(default="", alias="LIDAR_SIM_FAIL_SOURCES")

    lidar_event_buffer: int = Field(default=500, alias="LIDAR_EVENT_BUFFER", ge=10, le=100_000)
    lidar_event_heartbeat_seconds: float = Field(
        default=10.0,
        alias="LIDAR_EVENT_HEARTBEAT_SECONDS",
        ge=1.0,
        le=300.0,
    )

    lidar_log_level: str = Field(default="INFO", alias="LIDAR_LOG_LEVEL")
    lidar_log_json: bool = Field(default=False, alias="LIDAR_LOG_JSON")
    lidar_enable_metrics: bool = Field(default=True, alias="LIDAR_ENABLE_METRICS")

    lidar_api_key: str | None = Field(default=None, alias="LIDAR_API_KEY")
    lidar_cors_origins: str = Field(default="", alias="LIDAR_CORS_ORIGINS")
    lidar_max_request_mb: int = Field(default=1, alias="LIDAR_MAX_REQUEST_MB", ge=1, le=50)
    lidar_host: str = Field(default="127.0.0.1", alias="LIDAR_HOST")
    lidar_port: int = Field(default=8000, alias="LIDAR_PORT", ge=1, le=65535)

    @property
    def cors_origins(self) -> list[str]:
        if not self.lidar_cors_origins.strip():
            return []
        return [item.strip() for item in self.lidar_cors_origins.split(",") if item.strip()]

    @property
    def default_dataset_ids(self) -> list[str]:
        return [item.strip() for item in self.lidar_default_datasets.split(",") if item.strip()]

    @property
    def sim_fail_sources(self) -> set[str]:
        return {item.strip() for item in self.lidar_sim_fail_sources.split(",") if item.strip()}

    @property
    def control_backend(self) -> str:
        return self.lidar_control_backend.strip().lower()


@lru_cache
def get_settings() -> Settings:
    return Settings()
