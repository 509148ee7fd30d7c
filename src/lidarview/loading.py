from __future__ import annotations

from lidarview.models import ControlState, LoadingView


# Heuristic denominator: the real point count of a streaming load is unknown
# until it finishes, so the bar saturates once this many points arrived.
ASSUMED_TOTAL_POINTS = 5_000_000


def format_points_label(points: int | None) -> str | None:
    if not points:
        return None
    return f"{points / 1_000_000:.2f}M"


def progress_percent(loaded_points: int, assumed_total: int = ASSUMED_TOTAL_POINTS) -> float:
    total = max(1, int(assumed_total))
    return max(0.0, min(100.0, 100.0 * loaded_points / total))


def aggregate_loading_state(
    state: ControlState,
    *,
    assumed_total: int = ASSUMED_TOTAL_POINTS,
) -> LoadingView:
    """Fold the coarse busy flag and the streaming record into one view."""

    streaming = state.streaming_progress
    is_loading = bool(
        state.loading
        or (state.streaming_active and streaming is not None and streaming.is_loading)
    )

    if streaming is None:
        return LoadingView(is_loading=is_loading)

    return LoadingView(
        is_loading=is_loading,
        progress_percent=progress_percent(streaming.loaded_points, assumed_total),
        points_loaded=streaming.loaded_points,
        points_loaded_label=format_points_label(streaming.loaded_points),
    )
