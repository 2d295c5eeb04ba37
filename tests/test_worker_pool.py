"""Tests for the bounded worker pool and the run state machine."""

import asyncio

import pytest

from docembed.errors import InvalidStateTransitionError
from docembed.pipeline.state import RunState, RunStateMachine
from docembed.pipeline.worker_pool import BoundedWorkerPool, peak_in_flight


@pytest.mark.asyncio
async def test_results_keep_input_order():
    """Later items finish first; results are still in input order."""
    pool = BoundedWorkerPool(max_in_flight=5)

    async def work(item, index):
        await asyncio.sleep(0.01 * (5 - index))
        return item * 10

    results = await pool.map(work, [1, 2, 3, 4, 5])
    assert [r.index for r in results] == [0, 1, 2, 3, 4]
    assert [r.value for r in results] == [10, 20, 30, 40, 50]


@pytest.mark.asyncio
async def test_in_flight_calls_are_capped():
    pool = BoundedWorkerPool(max_in_flight=3)
    active = 0
    peak = 0

    async def work(item, index):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.005)
        active -= 1
        return item

    results = await pool.map(work, list(range(20)))
    assert peak <= 3
    assert peak_in_flight(results) <= 3
    assert peak_in_flight(results) > 1


@pytest.mark.asyncio
async def test_concurrent_maps_on_one_pool_are_counted_separately():
    """Two documents sharing a pool each get their own cap and peak."""
    pool = BoundedWorkerPool(max_in_flight=2)
    active = 0
    peak = 0

    async def work(item, index):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.005)
        active -= 1
        return item

    first, second = await asyncio.gather(
        pool.map(work, list(range(6))),
        pool.map(work, list(range(6))),
    )

    assert peak_in_flight(first) == 2
    assert peak_in_flight(second) == 2
    # both calls ran side by side, each up to its own limit
    assert peak > 2
    assert peak <= 4


@pytest.mark.asyncio
async def test_errors_are_captured_per_task():
    pool = BoundedWorkerPool(max_in_flight=2)

    async def work(item, index):
        if index == 1:
            raise RuntimeError("boom")
        return item

    results = await pool.map(work, ["a", "b", "c"])
    assert [r.ok for r in results] == [True, False, True]
    assert str(results[1].error) == "boom"
    assert results[2].value == "c"


@pytest.mark.asyncio
async def test_uncaptured_error_propagates_and_cancels_the_rest():
    pool = BoundedWorkerPool(max_in_flight=1)
    started = []

    async def work(item, index):
        started.append(index)
        if index == 0:
            raise KeyError("missing")
        await asyncio.sleep(0.01)
        return item

    with pytest.raises(KeyError):
        await pool.map(work, [0, 1, 2, 3], capture_errors=False)
    assert len(started) < 4


def test_pool_size_must_be_positive():
    with pytest.raises(ValueError):
        BoundedWorkerPool(0)


def test_state_machine_chunked_lifecycle():
    machine = RunStateMachine("doc-1", "text")
    for state in (
        RunState.BUDGET_CHECKED,
        RunState.PARTS_GENERATING,
        RunState.AGGREGATING,
        RunState.PERSISTED,
    ):
        machine.advance(state)
    assert machine.is_terminal
    assert machine.history[0] == RunState.NOT_STARTED
    assert machine.history[-1] == RunState.PERSISTED


def test_state_machine_allows_early_skip():
    machine = RunStateMachine("doc-1", "text")
    machine.advance(RunState.SKIPPED)
    assert machine.is_terminal


@pytest.mark.parametrize("path", [
    [RunState.DIRECT_GENERATING],
    [RunState.BUDGET_CHECKED, RunState.AGGREGATING],
    [RunState.BUDGET_CHECKED, RunState.DIRECT_GENERATING, RunState.AGGREGATING],
    [RunState.FAILED, RunState.PERSISTED],
])
def test_state_machine_rejects_illegal_transitions(path):
    machine = RunStateMachine("doc-1", "text")
    with pytest.raises(InvalidStateTransitionError):
        for state in path:
            machine.advance(state)
