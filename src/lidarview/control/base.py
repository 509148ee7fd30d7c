from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

from lidarview.models import ControlState, DisplayOptions, PointCloudInfo


logger = logging.getLogger("lidarview.control")

ReadyCallback = Callable[["PointCloudControl"], None]
ResetCallback = Callable[["PointCloudControl"], None]
StateListener = Callable[[ControlState], None]


class PointCloudLoadError(RuntimeError):
    """Raised when a point cloud cannot be loaded (unreachable or malformed source)."""


class PointCloudControl(ABC):
    """Interface of the control that decodes, streams and renders point clouds."""

    def __init__(self, *, options: DisplayOptions | None = None):
        self._state = ControlState(options=options or DisplayOptions())
        self._state_listeners: list[StateListener] = []
        self._ready_callbacks: list[ReadyCallback] = []
        self._reset_callbacks: list[ResetCallback] = []
        self._ready = False

    @abstractmethod
    async def load_point_cloud(self, source: str) -> PointCloudInfo:
        raise NotImplementedError

    @abstractmethod
    def unload_point_cloud(self, resource_id: str) -> None:
        raise NotImplementedError

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    def add_ready_callback(self, callback: ReadyCallback) -> Callable[[], None]:
        if self._ready:
            callback(self)
            return lambda: None
        self._ready_callbacks.append(callback)

        def _remove() -> None:
            if callback in self._ready_callbacks:
                self._ready_callbacks.remove(callback)

        return _remove

    def add_reset_callback(self, callback: ResetCallback) -> Callable[[], None]:
        self._reset_callbacks.append(callback)

        def _remove() -> None:
            if callback in self._reset_callbacks:
                self._reset_callbacks.remove(callback)

        return _remove

    def mark_ready(self) -> None:
        """Report readiness. A second report means the control was recreated empty."""
        if self._ready:
            logger.warning("control_reset backend=%s", type(self).__name__)
            for callback in list(self._reset_callbacks):
                callback(self)
            return
        self._ready = True
        callbacks, self._ready_callbacks = self._ready_callbacks, []
        for callback in callbacks:
            callback(self)

    @property
    def state(self) -> ControlState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return _unsubscribe

    def _set_state(self, state: ControlState) -> None:
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("control_state_listener_failed")
