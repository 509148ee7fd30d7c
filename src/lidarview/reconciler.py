from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from lidarview.control.base import PointCloudControl
from lidarview.ledger import ResourceLedger
from lidarview.selection import SelectionSet


logger = logging.getLogger("lidarview.reconciler")

ReconcileListener = Callable[[str, dict[str, Any]], Any]


class ControlAlreadyAttachedError(RuntimeError):
    pass


@dataclass(slots=True)
class ReconcilePlan:
    to_unload: list[str] = field(default_factory=list)
    to_load: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_unload and not self.to_load


@dataclass(slots=True)
class ReconcilerStats:
    passes: int = 0
    loads_started: int = 0
    loads_succeeded: int = 0
    loads_failed: int = 0
    unloads: int = 0
    unload_failures: int = 0
    stale_loads: int = 0
    resets: int = 0


class Reconciler:
    """Drives the control until the loaded point clouds match the selection.

    Every pass diffs the selection against the ledger, unloads what is no
    longer wanted, then starts one load task per missing source. A source
    with a load in flight is never loaded a second time; the pass started by
    that load's completion picks up whatever changed in the meantime.
    """

    def __init__(
        self,
        *,
        selection: SelectionSet,
        ledger: ResourceLedger,
        listener: ReconcileListener | None = None,
    ):
        self._selection = selection
        self._ledger = ledger
        self._listener = listener
        self._control: PointCloudControl | None = None
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        self._reconciling = False
        self._rerun_requested = False
        self._closed = False
        self.stats = ReconcilerStats()

    @property
    def control(self) -> PointCloudControl | None:
        return self._control

    @property
    def is_ready(self) -> bool:
        return self._control is not None and not self._closed

    @property
    def in_flight(self) -> list[str]:
        return list(self._in_flight)

    def attach(self, control: PointCloudControl) -> ReconcilePlan:
        """Hand over the control once it is ready, then run the first pass."""
        if self._control is control:
            return ReconcilePlan()
        if self._control is not None:
            raise ControlAlreadyAttachedError("A point-cloud control is already attached.")
        self._control = control
        self._closed = False
        return self.reconcile()

    def reconcile(self) -> ReconcilePlan:
        if not self.is_ready:
            logger.debug("reconcile_deferred reason=control_not_ready")
            return ReconcilePlan()

        # A request made from inside a pass (e.g. by a listener) becomes one
        # more pass once the current one is done.
        if self._reconciling:
            self._rerun_requested = True
            return ReconcilePlan()

        self._reconciling = True
        plan = ReconcilePlan()
        try:
            while True:
                self._rerun_requested = False
                step = self._run_pass()
                plan.to_unload.extend(step.to_unload)
                plan.to_load.extend(step.to_load)
                if not self._rerun_requested:
                    break
        finally:
            self._reconciling = False
        return plan

    async def drain(self) -> None:
        """Wait until no load is in flight, including loads started meanwhile."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
        if self._control is not None:
            for source in self._ledger.sources():
                self._unload(source)
        # Detached; a restarted control attaches again once it reports ready.
        self._control = None

    def reset(self) -> ReconcilePlan:
        """Forget what the control held after it was recreated empty, then reload.

        Nothing is unloaded: the resource ids belong to the discarded control.
        """
        if not self.is_ready:
            return ReconcilePlan()
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
        dropped = self._ledger.sources()
        for source in dropped:
            self._ledger.release(source)
        self.stats.resets += 1
        logger.warning("reconciler_reset dropped=%d", len(dropped))
        self._emit("control.reset", {"dropped": dropped})
        return self.reconcile()

    def _run_pass(self) -> ReconcilePlan:
        self.stats.passes += 1
        desired = self._selection.snapshot()
        to_unload = [source for source in self._ledger.sources() if source not in desired]
        to_load = [
            source
            for source in desired
            if source not in self._ledger and source not in self._in_flight
        ]

        for source in to_unload:
            self._unload(source)
        for source in to_load:
            self._start_load(source)

        if to_unload or to_load:
            logger.info(
                "reconcile_pass unload=%d load=%d in_flight=%d",
                len(to_unload),
                len(to_load),
                len(self._in_flight),
            )
        return ReconcilePlan(to_unload=to_unload, to_load=to_load)

    def _unload(self, source: str) -> None:
        assert self._control is not None
        resource_id = self._ledger.get(source)
        error: Exception | None = None
        try:
            self._control.unload_point_cloud(str(resource_id))
        except Exception as exc:
            error = exc
        # The entry goes away even when the unload failed, otherwise the
        # source could never be loaded again.
        self._ledger.release(source)

        if error is not None:
            self.stats.unload_failures += 1
            logger.warning(
                "pointcloud_unload_failed source=%s resource_id=%s error=%s",
                source,
                resource_id,
                error,
            )
            self._emit(
                "pointcloud.unload_failed",
                {"source": source, "resource_id": resource_id, "error": str(error)},
            )
            return

        self.stats.unloads += 1
        self._emit("pointcloud.unloaded", {"source": source, "resource_id": resource_id})

    def _start_load(self, source: str) -> None:
        self.stats.loads_started += 1
        self._in_flight[source] = asyncio.create_task(
            self._load(source),
            name=f"lidar-load-{source}",
        )
        self._emit("pointcloud.load_started", {"source": source})

    async def _load(self, source: str) -> None:
        assert self._control is not None
        try:
            info = await self._control.load_point_cloud(source)
        except Exception as exc:
            self.stats.loads_failed += 1
            logger.error("pointcloud_load_failed source=%s error=%s", source, exc)
            self._emit("pointcloud.load_failed", {"source": source, "error": str(exc)})
            return
        finally:
            # After a reset the slot may already hold a newer load.
            if self._in_flight.get(source) is asyncio.current_task():
                del self._in_flight[source]

        if source not in self._selection or self._closed:
            self._discard_stale(source, info.id)
        else:
            self._ledger.record(source, info.id)
            self.stats.loads_succeeded += 1
            logger.info("pointcloud_loaded source=%s resource_id=%s", source, info.id)
            self._emit("pointcloud.loaded", {"source": source, "resource_id": info.id})

        self.reconcile()

    def _discard_stale(self, source: str, resource_id: str) -> None:
        """Unload a point cloud whose source was deselected while it loaded."""
        assert self._control is not None
        self.stats.stale_loads += 1
        try:
            self._control.unload_point_cloud(resource_id)
        except Exception as exc:
            self.stats.unload_failures += 1
            logger.warning(
                "pointcloud_unload_failed source=%s resource_id=%s error=%s",
                source,
                resource_id,
                exc,
            )
            self._emit(
                "pointcloud.unload_failed",
                {"source": source, "resource_id": resource_id, "error": str(exc)},
            )
            return

        self.stats.unloads += 1
        logger.info("pointcloud_stale_unloaded source=%s resource_id=%s", source, resource_id)
        self._emit("pointcloud.stale_unloaded", {"source": source, "resource_id": resource_id})

    def _emit(self, event_type: str, payload: dict[str, Any]) -> None:
        if self._listener is None:
            return
        try:
            self._listener(event_type, payload)
        except Exception:
            logger.exception("reconcile_listener_failed event=%s", event_type)
