from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from lidarview.security.sources import validate_source_location


class BasemapName(str, Enum):
    dark = "dark"
    light = "light"


class Dataset(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1, max_length=120)
    name: str = Field(min_length=1)
    source: str

    @field_validator("id", "name")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank.")
        return value

    @field_validator("source")
    @classmethod
    def _validate_source(cls, value: str) -> str:
        return validate_source_location(value)


class DisplayOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    point_size: float = Field(default=3.0, gt=0)
    color_scheme: str = "elevation"
    use_percentile: bool = True


class StreamingProgress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    loaded_points: int = Field(default=0, ge=0)
    is_loading: bool = False


class ControlState(BaseModel):
    """State reported by the point-cloud control."""

    model_config = ConfigDict(extra="ignore")

    loading: bool = False
    streaming_active: bool = False
    streaming_progress: StreamingProgress | None = None
    options: DisplayOptions = Field(default_factory=DisplayOptions)


class PointCloudInfo(BaseModel):
    id: str = Field(min_length=1)
    source: str | None = None
    point_count: int | None = None


class LoadingView(BaseModel):
    is_loading: bool = False
    progress_percent: float = Field(default=0.0, ge=0, le=100)
    points_loaded: int | None = None
    points_loaded_label: str | None = None


class DatasetStatus(BaseModel):
    id: str
    name: str
    source: str
    active: bool
    loaded: bool


class SelectionResponse(BaseModel):
    active: list[str]


class ToggleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: str | None = None
    dataset_id: str | None = None

    @model_validator(mode="after")
    def _exactly_one_target(self) -> "ToggleRequest":
        if (self.source is None) == (self.dataset_id is None):
            raise ValueError("Provide exactly one of source or dataset_id.")
        return self


class ToggleResponse(SelectionResponse):
    source: str
    active_now: bool


class BasemapRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    basemap: BasemapName


class MapConfig(BaseModel):
    basemap: BasemapName
    style_url: str
    basemaps: dict[str, str]
    center: tuple[float, float]
    zoom: float
    pitch: float
    max_pitch: float
    attribution: str
    options: DisplayOptions


class LoadOutcome(BaseModel):
    model_config = ConfigDict(extra="forbid")

    resource_id: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "LoadOutcome":
        if (self.resource_id is None) == (self.error is None):
            raise ValueError("Provide exactly one of resource_id or error.")
        return self


class ControlCommand(BaseModel):
    request_id: str
    action: str
    source: str | None = None
    resource_id: str | None = None


class ViewerEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int | None = None
    type: str
    timestamp: datetime
    payload: dict[str, Any] = Field(default_factory=dict)
