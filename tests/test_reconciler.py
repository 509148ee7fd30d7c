from __future__ import annotations

import random

import pytest

from lidarview.reconciler import ControlAlreadyAttachedError
from tests.conftest import D1, D2, D3, FakeControl, JitterControl, make_rig, tick


pytestmark = pytest.mark.anyio


async def test_reconcile_waits_for_control(fake_control: FakeControl) -> None:
    rig = make_rig((D1,))

    plan = rig.reconciler.reconcile()
    assert plan.is_empty
    assert fake_control.load_calls == []

    plan = rig.reconciler.attach(fake_control)
    await tick()
    assert plan.to_load == [D1]
    assert fake_control.load_calls == [D1]


async def test_toggle_scenario_loads_and_unloads_once(fake_control: FakeControl) -> None:
    rig = make_rig((D1,))
    rig.reconciler.attach(fake_control)
    await tick()
    d1_id = fake_control.complete(D1)
    await tick()
    assert rig.ledger.snapshot() == {D1: d1_id}

    rig.selection.toggle(D2)
    await tick()
    assert fake_control.load_calls == [D1, D2]

    d2_id = fake_control.complete(D2)
    await tick()
    assert rig.ledger.snapshot() == {D1: d1_id, D2: d2_id}

    rig.selection.toggle(D1)
    await tick()
    assert fake_control.unload_calls == [d1_id]
    assert rig.ledger.snapshot() == {D2: d2_id}
    assert fake_control.load_calls == [D1, D2]


async def test_second_pass_without_changes_issues_nothing(fake_control: FakeControl) -> None:
    rig = make_rig((D1, D2))
    rig.reconciler.attach(fake_control)
    await tick()
    fake_control.complete(D1)
    fake_control.complete(D2)
    await tick()

    calls_before = list(fake_control.calls)
    first = rig.reconciler.reconcile()
    second = rig.reconciler.reconcile()
    await tick()

    assert first.is_empty
    assert second.is_empty
    assert fake_control.calls == calls_before


async def test_in_flight_source_is_not_loaded_twice(fake_control: FakeControl) -> None:
    rig = make_rig((D1,))
    rig.reconciler.attach(fake_control)
    await tick()

    rig.selection.toggle(D2)
    rig.reconciler.reconcile()
    rig.selection.toggle(D3)
    rig.reconciler.reconcile()
    await tick()

    assert fake_control.load_calls.count(D1) == 1
    assert fake_control.load_calls.count(D2) == 1
    assert fake_control.pending(D2) == 1
    assert sorted(rig.reconciler.in_flight) == sorted([D1, D2, D3])


async def test_retoggle_during_load_keeps_single_load(fake_control: FakeControl) -> None:
    rig = make_rig(())
    rig.reconciler.attach(fake_control)

    rig.selection.toggle(D2)
    rig.selection.toggle(D2)
    rig.selection.toggle(D2)
    await tick()
    assert fake_control.load_calls == [D2]

    d2_id = fake_control.complete(D2)
    await tick()
    assert rig.ledger.snapshot() == {D2: d2_id}
    assert fake_control.unload_calls == []


async def test_stale_load_is_unloaded_and_never_recorded(fake_control: FakeControl) -> None:
    rig = make_rig(())
    rig.reconciler.attach(fake_control)

    rig.selection.toggle(D1)
    await tick()
    rig.selection.toggle(D1)
    await tick()
    assert fake_control.unload_calls == []

    d1_id = fake_control.complete(D1)
    await tick()

    assert fake_control.unload_calls == [d1_id]
    assert D1 not in rig.ledger
    assert "pointcloud.stale_unloaded" in rig.event_types()
    assert rig.reconciler.stats.stale_loads == 1


async def test_failed_load_is_retried_on_next_trigger(fake_control: FakeControl) -> None:
    rig = make_rig((D1,))
    rig.reconciler.attach(fake_control)
    await tick()

    fake_control.fail(D1)
    await tick()
    assert D1 not in rig.ledger
    assert fake_control.load_calls == [D1]
    assert "pointcloud.load_failed" in rig.event_types()

    rig.selection.toggle(D2)
    await tick()
    assert fake_control.load_calls.count(D1) == 2
    assert fake_control.load_calls.count(D2) == 1

    d1_id = fake_control.complete(D1)
    await tick()
    assert rig.ledger.get(D1) == d1_id


async def test_failed_unload_still_clears_ledger(fake_control: FakeControl) -> None:
    rig = make_rig((D1,))
    rig.reconciler.attach(fake_control)
    await tick()
    d1_id = fake_control.complete(D1)
    await tick()
    fake_control.failing_unloads.add(d1_id)

    rig.selection.toggle(D1)
    await tick()
    assert D1 not in rig.ledger
    assert rig.reconciler.stats.unload_failures == 1
    assert "pointcloud.unload_failed" in rig.event_types()

    rig.selection.toggle(D1)
    await tick()
    assert fake_control.load_calls == [D1, D1]


async def test_unloads_run_before_loads_in_one_pass(fake_control: FakeControl) -> None:
    rig = make_rig((D1,), wired=False)
    rig.reconciler.attach(fake_control)
    await tick()
    d1_id = fake_control.complete(D1)
    await tick()

    rig.selection.toggle(D1)
    rig.selection.toggle(D2)
    plan = rig.reconciler.reconcile()
    await tick()

    assert plan.to_unload == [D1]
    assert plan.to_load == [D2]
    assert fake_control.calls[-2:] == [("unload", d1_id), ("load", D2)]


async def test_reconcile_requested_during_pass_runs_again(fake_control: FakeControl) -> None:
    rig = make_rig((), wired=False)

    def listener(event_type: str, payload: dict) -> None:
        rig.events.append((event_type, payload))
        if event_type == "pointcloud.load_started" and payload["source"] == D1:
            rig.selection.toggle(D2)
            rig.reconciler.reconcile()

    rig.reconciler._listener = listener
    rig.reconciler.attach(fake_control)
    rig.selection.toggle(D1)

    plan = rig.reconciler.reconcile()
    await tick()

    assert plan.to_load == [D1, D2]
    assert fake_control.load_calls == [D1, D2]


async def test_attaching_a_second_control_is_rejected(fake_control: FakeControl) -> None:
    rig = make_rig(())
    rig.reconciler.attach(fake_control)
    assert rig.reconciler.attach(fake_control).is_empty

    with pytest.raises(ControlAlreadyAttachedError):
        rig.reconciler.attach(FakeControl())


async def test_close_cancels_loads_and_releases_ledger(fake_control: FakeControl) -> None:
    rig = make_rig((D1, D2))
    rig.reconciler.attach(fake_control)
    await tick()
    d1_id = fake_control.complete(D1)
    await tick()

    await rig.reconciler.close()

    assert rig.reconciler.in_flight == []
    assert len(rig.ledger) == 0
    assert fake_control.unload_calls == [d1_id]
    assert rig.reconciler.reconcile().is_empty


@pytest.mark.parametrize("seed", [1, 7, 42, 2024])
async def test_random_toggles_converge(seed: int) -> None:
    rng = random.Random(seed)
    control = JitterControl(seed)
    rig = make_rig((D1,))
    rig.reconciler.attach(control)

    for _ in range(60):
        rig.selection.toggle(rng.choice([D1, D2, D3]))
        await tick(rng.randint(0, 3))

    await rig.reconciler.drain()

    assert set(rig.ledger.sources()) == set(rig.selection)
    assert set(control.held) == set(rig.ledger.snapshot().values())


async def test_reset_forgets_ledger_and_reloads_selection(fake_control: FakeControl) -> None:
    rig = make_rig((D1, D2))
    rig.reconciler.attach(fake_control)
    await tick()
    fake_control.complete(D1)
    await tick()

    plan = rig.reconciler.reset()
    await tick()

    assert plan.to_load == [D1, D2]
    assert len(rig.ledger) == 0
    assert fake_control.unload_calls == []
    assert fake_control.load_calls == [D1, D2, D1, D2]
    assert fake_control.pending(D2) == 1
    assert rig.reconciler.stats.resets == 1
    assert ("control.reset", {"dropped": [D1]}) in rig.events

    d2_id = fake_control.complete(D2)
    await tick()
    assert rig.ledger.snapshot() == {D2: d2_id}
    assert rig.reconciler.in_flight == [D1]


async def test_reset_before_attach_is_ignored() -> None:
    rig = make_rig((D1,))

    assert rig.reconciler.reset().is_empty
    assert rig.reconciler.stats.resets == 0


async def test_closed_reconciler_accepts_a_new_attach(fake_control: FakeControl) -> None:
    rig = make_rig((D1,))
    rig.reconciler.attach(fake_control)
    await tick()
    fake_control.complete(D1)
    await tick()
    await rig.reconciler.close()

    plan = rig.reconciler.attach(fake_control)
    await tick()

    assert plan.to_load == [D1]
    assert rig.reconciler.is_ready
    assert fake_control.load_calls == [D1, D1]
