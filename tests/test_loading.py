from __future__ import annotations

import pytest

from lidarview.loading import aggregate_loading_state, format_points_label, progress_percent
from lidarview.models import ControlState, StreamingProgress


def _streaming(points: int, *, is_loading: bool = True, active: bool = True, busy: bool = False):
    return ControlState(
        loading=busy,
        streaming_active=active,
        streaming_progress=StreamingProgress(loaded_points=points, is_loading=is_loading),
    )


@pytest.mark.parametrize(
    ("points", "expected"),
    [(0, 0.0), (2_500_000, 50.0), (5_000_000, 100.0), (10_000_000, 100.0)],
)
def test_progress_is_clamped_to_assumed_total(points: int, expected: float) -> None:
    assert progress_percent(points) == expected


def test_progress_uses_custom_total() -> None:
    assert progress_percent(500, assumed_total=1000) == 50.0
    assert progress_percent(10, assumed_total=0) == 100.0


def test_points_label() -> None:
    assert format_points_label(None) is None
    assert format_points_label(0) is None
    assert format_points_label(1_234_567) == "1.23M"
    assert format_points_label(10_000) == "0.01M"


def test_idle_state_without_streaming_record() -> None:
    view = aggregate_loading_state(ControlState())

    assert view.is_loading is False
    assert view.progress_percent == 0.0
    assert view.points_loaded is None
    assert view.points_loaded_label is None


def test_coarse_busy_flag_alone_shows_loading() -> None:
    view = aggregate_loading_state(ControlState(loading=True))

    assert view.is_loading is True
    assert view.progress_percent == 0.0


def test_streaming_load_shows_progress_and_label() -> None:
    view = aggregate_loading_state(_streaming(2_500_000))

    assert view.is_loading is True
    assert view.progress_percent == 50.0
    assert view.points_loaded == 2_500_000
    assert view.points_loaded_label == "2.50M"


@pytest.mark.parametrize(
    "state",
    [
        _streaming(1_000_000, is_loading=False),
        _streaming(1_000_000, active=False),
    ],
)
def test_streaming_needs_both_flags(state: ControlState) -> None:
    view = aggregate_loading_state(state)

    assert view.is_loading is False
    assert view.progress_percent == 20.0


def test_busy_flag_wins_over_finished_stream() -> None:
    view = aggregate_loading_state(_streaming(7_000_000, is_loading=False, busy=True))

    assert view.is_loading is True
    assert view.progress_percent == 100.0
    assert view.points_loaded_label == "7.00M"
