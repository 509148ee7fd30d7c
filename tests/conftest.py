from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any

import anyio
import pytest
from anyio.from_thread import BlockingPortal, start_blocking_portal

from lidarview.catalog import DatasetCatalog, build_catalog
from lidarview.control.base import PointCloudControl, PointCloudLoadError
from lidarview.control.simulated import SimulatedPointCloudControl
from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.ledger import ResourceLedger
from lidarview.models import PointCloudInfo
from lidarview.reconciler import Reconciler
from lidarview.selection import SelectionSet
from lidarview.settings import Settings


D1 = "./data/d1.laz"
D2 = "./data/d2.laz"
D3 = "https://example.org/lidar/d3.laz"


class FakeControl(PointCloudControl):
    """Control whose loads only finish when the test completes or fails them."""

    def __init__(self):
        super().__init__()
        self.load_calls: list[str] = []
        self.unload_calls: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self.failing_unloads: set[str] = set()
        self._gates: dict[str, list[asyncio.Future[str]]] = {}
        self._counter = 0

    async def load_point_cloud(self, source: str) -> PointCloudInfo:
        self.load_calls.append(source)
        self.calls.append(("load", source))
        gate: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._gates.setdefault(source, []).append(gate)
        resource_id = await gate
        return PointCloudInfo(id=resource_id, source=source)

    def unload_point_cloud(self, resource_id: str) -> None:
        self.unload_calls.append(resource_id)
        self.calls.append(("unload", resource_id))
        if resource_id in self.failing_unloads:
            raise RuntimeError(f"cannot unload {resource_id}")

    def pending(self, source: str) -> int:
        return len([gate for gate in self._gates.get(source, []) if not gate.done()])

    def complete(self, source: str) -> str:
        self._counter += 1
        resource_id = f"res-{self._counter}"
        self._next_gate(source).set_result(resource_id)
        return resource_id

    def fail(self, source: str, message: str = "unreachable") -> None:
        self._next_gate(source).set_exception(PointCloudLoadError(message))

    def _next_gate(self, source: str) -> asyncio.Future[str]:
        for gate in self._gates.get(source, []):
            if not gate.done():
                return gate
        raise AssertionError(f"no pending load for {source}")


class JitterControl(PointCloudControl):
    """Completes every load after a random short delay and tracks what it holds."""

    def __init__(self, seed: int):
        super().__init__()
        self._random = random.Random(seed)
        self._counter = 0
        self.held: dict[str, str] = {}
        self.load_calls: list[str] = []

    async def load_point_cloud(self, source: str) -> PointCloudInfo:
        self.load_calls.append(source)
        await anyio.sleep(self._random.random() * 0.01)
        self._counter += 1
        resource_id = f"jit-{self._counter}"
        self.held[resource_id] = source
        return PointCloudInfo(id=resource_id, source=source)

    def unload_point_cloud(self, resource_id: str) -> None:
        self.held.pop(resource_id)


@dataclass
class Rig:
    selection: SelectionSet
    ledger: ResourceLedger
    reconciler: Reconciler
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def event_types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]


def make_rig(initial: tuple[str, ...] = (D1,), *, wired: bool = True) -> Rig:
    selection = SelectionSet(initial)
    ledger = ResourceLedger()
    events: list[tuple[str, dict[str, Any]]] = []
    reconciler = Reconciler(
        selection=selection,
        ledger=ledger,
        listener=lambda event_type, payload: events.append((event_type, payload)),
    )
    if wired:
        selection.subscribe(lambda _active: reconciler.reconcile())
    return Rig(selection=selection, ledger=ledger, reconciler=reconciler, events=events)


async def tick(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def catalog() -> DatasetCatalog:
    return build_catalog(
        [
            {"id": "dataset-1", "name": "Dataset 1", "source": D1},
            {"id": "dataset-2", "name": "Dataset 2", "source": D2},
            {"id": "dataset-3", "name": "Dataset 3", "source": D3},
        ]
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        lidar_catalog_file=None,
        lidar_default_datasets="dataset-1",
        lidar_control_backend="simulated",
        lidar_sim_load_seconds=0.05,
        lidar_sim_points_per_source=1_000_000,
        lidar_sim_fail_sources="",
        lidar_event_heartbeat_seconds=1.0,
        lidar_basemap="dark",
        lidar_enable_metrics=True,
        lidar_api_key=None,
    )


@pytest.fixture
def viewer(test_settings: Settings, catalog: DatasetCatalog):
    engine = LidarViewer(
        settings=test_settings,
        catalog=catalog,
        control=SimulatedPointCloudControl(load_seconds=0.05, points_per_source=1_000_000),
    )
    with start_blocking_portal() as portal:
        portal.call(engine.start)
        try:
            yield ViewerHarness(engine=engine, portal=portal)
        finally:
            portal.call(engine.stop)


class ViewerHarness:
    def __init__(self, *, engine: LidarViewer, portal: BlockingPortal):
        self.engine = engine
        self._portal = portal

    def toggle(self, source: str):
        return self._portal.call(self.engine.toggle, source)

    def toggle_dataset(self, dataset_id: str):
        return self._portal.call(self.engine.toggle_dataset, dataset_id)

    def set_basemap(self, name: str):
        return self._portal.call(self.engine.set_basemap, name)

    def settle(self) -> None:
        self._portal.call(self.engine.settle)

    def start(self) -> None:
        self._portal.call(self.engine.start)

    def stop(self) -> None:
        self._portal.call(self.engine.stop)


def wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.02)
    raise TimeoutError(f"condition not met within {timeout}s")


@pytest.fixture
def fake_control() -> FakeControl:
    return FakeControl()
