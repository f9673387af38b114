import asyncio
import random
from collections import Counter

import pytest

from astra.errors import AuthorizationGap, RemoteFailure
from astra.models import TaskStatus
from board.repository import TaskRepository
from board.state import BoardState
from board.sync_engine import MoveOutcome, OptimisticSyncEngine
from board.transitions import Loaded, MoveCommand, Position

TODO, DOING, DONE = TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.DONE


async def _setup(store, contents=("a", "b", "c")):
    repo = TaskRepository(store)
    tasks = [await repo.create("u1", TODO, c) for c in contents]
    state = BoardState()
    state.dispatch(Loaded(await repo.load("u1")))
    return repo, state, OptimisticSyncEngine(repo, state), tasks


@pytest.mark.asyncio
async def test_successful_move_is_applied_and_persisted(store):
    repo, state, engine, (a, b, c) = await _setup(store)

    outcome = await engine.move("u1", MoveCommand(b.id, Position(TODO, 1), Position(DONE, 0)))

    assert outcome == MoveOutcome.CONFIRMED
    assert state.board.column(TODO).task_ids() == [a.id, c.id]
    assert state.board.column(DONE).task_ids() == [b.id]
    remote = await repo.fetch("u1")
    assert remote.column(DONE).task_ids() == [b.id]


@pytest.mark.asyncio
async def test_move_is_visible_before_remote_confirmation(store):
    repo, state, engine, (a, b, c) = await _setup(store)
    seen = []

    original_update = store.update

    async def observing_update(*args, **kwargs):
        seen.append(state.board.column(DOING).task_ids())
        return await original_update(*args, **kwargs)

    store.update = observing_update
    await engine.move("u1", MoveCommand(a.id, Position(TODO, 0), Position(DOING, 0)))

    assert seen == [[a.id]]


@pytest.mark.asyncio
async def test_noop_moves_issue_no_remote_call(store):
    _, state, engine, (a, _, _) = await _setup(store)
    before = state.board
    store.calls.clear()

    assert await engine.move("u1", MoveCommand(a.id, Position(TODO, 0), None)) == MoveOutcome.NOOP
    assert await engine.move("u1", MoveCommand(a.id, Position(TODO, 0), Position(TODO, 0))) == MoveOutcome.NOOP
    assert state.board is before
    assert store.calls == []


@pytest.mark.asyncio
async def test_failed_move_reconciles_to_remote_state(store):
    repo, state, engine, (a, b, c) = await _setup(store)
    store.fail_on.add("update")

    outcome = await engine.move("u1", MoveCommand(c.id, Position(TODO, 2), Position(DONE, 0)))

    assert outcome == MoveOutcome.RECONCILED
    remote = await repo.fetch("u1")
    assert state.board == remote
    assert state.board.column(TODO).task_ids() == [a.id, b.id, c.id]


@pytest.mark.asyncio
async def test_failed_move_with_failed_reload_rolls_back_locally(store):
    _, state, engine, (a, b, c) = await _setup(store)
    store.fail_on.update({"update", "select"})

    outcome = await engine.move("u1", MoveCommand(a.id, Position(TODO, 0), Position(DOING, 0)))

    assert outcome == MoveOutcome.ROLLED_BACK
    assert state.board.degraded
    assert state.board.column(TODO).task_ids() == [a.id, b.id, c.id]
    assert state.board.column(DOING).task_ids() == []


@pytest.mark.asyncio
async def test_reconciliation_converges_even_if_remote_changed(store):
    repo, state, engine, (a, b, c) = await _setup(store)
    # Another client finished `b` meanwhile; our local view does not know.
    await repo.update_status("u1", b.id, DONE)
    store.fail_on.add("update")

    await engine.move("u1", MoveCommand(a.id, Position(TODO, 0), Position(DOING, 0)))

    assert state.board == await repo.fetch("u1")
    assert state.board.column(DONE).task_ids() == [b.id]


@pytest.mark.asyncio
async def test_move_requires_user(store):
    _, state, engine, (a, _, _) = await _setup(store)
    before = state.board
    with pytest.raises(AuthorizationGap):
        await engine.move(None, MoveCommand(a.id, Position(TODO, 0), Position(DONE, 0)))
    assert state.board is before


class _GatedStore:
    """Wraps a store so each task's update waits for an explicit release."""

    def __init__(self, inner):
        self.inner = inner
        self.gates = {}
        self.fail_ids = set()
        self.applied = []

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def update(self, table, row_id, patch, filters):
        gate = self.gates.setdefault(row_id, asyncio.Event())
        await gate.wait()
        if row_id in self.fail_ids:
            raise RemoteFailure(f"update of {row_id} rejected")
        self.applied.append((row_id, patch["status"]))
        return await self.inner.update(table, row_id, patch, filters)


@pytest.mark.asyncio
async def test_concurrent_moves_of_different_tasks_do_not_interfere(store):
    repo, state, _, (a, b, c) = await _setup(store)
    gated = _GatedStore(store)
    engine = OptimisticSyncEngine(TaskRepository(gated), state)
    gated.fail_ids.add(a.id)

    move_a = asyncio.create_task(
        engine.move("u1", MoveCommand(a.id, Position(TODO, 0), Position(DONE, 0)))
    )
    move_b = asyncio.create_task(
        engine.move("u1", MoveCommand(b.id, Position(TODO, 1), Position(DOING, 0)))
    )
    await asyncio.sleep(0)

    # Both optimistic moves are visible.
    assert state.board.column(DONE).task_ids() == [a.id]
    assert state.board.column(DOING).task_ids() == [b.id]

    # a fails first and reloads while b is still in flight.
    gated.gates.setdefault(a.id, asyncio.Event()).set()
    assert await move_a == MoveOutcome.RECONCILED
    assert state.board.column(DOING).task_ids() == [b.id]
    assert a.id in state.board.column(TODO).task_ids()

    gated.gates.setdefault(b.id, asyncio.Event()).set()
    assert await move_b == MoveOutcome.CONFIRMED

    assert state.board == await repo.fetch("u1")
    assert Counter(state.board.all_task_ids()) == Counter([a.id, b.id, c.id])


@pytest.mark.asyncio
async def test_stale_reconciliation_is_dropped_after_view_closes(store):
    repo, state, _, (a, _, _) = await _setup(store)
    gated = _GatedStore(store)
    gated.fail_ids.add(a.id)
    engine = OptimisticSyncEngine(TaskRepository(gated), state)

    move = asyncio.create_task(
        engine.move("u1", MoveCommand(a.id, Position(TODO, 0), Position(DONE, 0)))
    )
    await asyncio.sleep(0)
    state.close()
    gated.gates.setdefault(a.id, asyncio.Event()).set()

    assert await move == MoveOutcome.STALE


@pytest.mark.asyncio
async def test_random_moves_with_failures_keep_task_multiset(store):
    repo, state, engine, tasks = await _setup(store, contents=[str(i) for i in range(6)])
    expected = Counter(t.id for t in tasks)
    rng = random.Random(11)
    columns = [TODO, DOING, DONE]

    for step in range(60):
        if step % 3 == 0:
            store.fail_on.add("update")
        else:
            store.fail_on.discard("update")

        src = rng.choice([c for c in columns if state.board.column(c).tasks])
        idx = rng.randrange(len(state.board.column(src).tasks))
        dst = rng.choice(columns)
        dst_idx = rng.randrange(len(state.board.column(dst).tasks) + 1)
        task_id = state.board.column(src).tasks[idx].id

        await engine.move("u1", MoveCommand(task_id, Position(src, idx), Position(dst, dst_idx)))

        assert Counter(state.board.all_task_ids()) == expected
        remote = await repo.fetch("u1")
        for col in columns:
            assert set(state.board.column(col).task_ids()) == set(remote.column(col).task_ids())


@pytest.mark.asyncio
async def test_moves_of_the_same_task_reach_the_store_in_issue_order(store):
    repo, state, _, (a, _, _) = await _setup(store)
    gated = _GatedStore(store)
    engine = OptimisticSyncEngine(TaskRepository(gated), state)

    first = asyncio.create_task(
        engine.move("u1", MoveCommand(a.id, Position(TODO, 0), Position(DOING, 0)))
    )
    second = asyncio.create_task(
        engine.move("u1", MoveCommand(a.id, Position(DOING, 0), Position(DONE, 0)))
    )
    await asyncio.sleep(0)
    assert state.board.column(DONE).task_ids() == [a.id]

    gated.gates.setdefault(a.id, asyncio.Event()).set()
    assert await first == MoveOutcome.CONFIRMED
    assert await second == MoveOutcome.CONFIRMED

    assert gated.applied == [(a.id, DOING), (a.id, DONE)]
    assert (await repo.fetch("u1")).column(DONE).task_ids() == [a.id]


class _HeldReloadStore:
    """Rejects every update and holds each select until its gate is set."""

    def __init__(self, inner):
        self.inner = inner
        self.reloads = []
        self.failing = set()

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def update(self, table, row_id, patch, filters):
        raise RemoteFailure(f"update of {row_id} rejected")

    async def select(self, table, filters, order=None):
        index = len(self.reloads)
        gate = asyncio.Event()
        self.reloads.append(gate)
        await gate.wait()
        if index in self.failing:
            raise RemoteFailure("select unavailable")
        return await self.inner.select(table, filters, order)


@pytest.mark.asyncio
async def test_older_reload_still_applies_when_newer_reload_fails(store):
    repo, state, _, (a, b, c) = await _setup(store)
    held = _HeldReloadStore(store)
    engine = OptimisticSyncEngine(TaskRepository(held), state)

    move_a = asyncio.create_task(
        engine.move("u1", MoveCommand(a.id, Position(TODO, 0), Position(DONE, 0)))
    )
    move_b = asyncio.create_task(
        engine.move("u1", MoveCommand(b.id, Position(TODO, 1), Position(DOING, 0)))
    )
    await asyncio.sleep(0)
    assert len(held.reloads) == 2

    # b's reload is newer but fails; a's older reload succeeds afterwards.
    held.failing.add(1)
    held.reloads[1].set()
    assert await move_b == MoveOutcome.ROLLED_BACK

    held.reloads[0].set()
    assert await move_a == MoveOutcome.RECONCILED

    assert state.board == await repo.fetch("u1")
    assert state.board.column(DONE).task_ids() == []


@pytest.mark.asyncio
async def test_reload_older_than_an_applied_one_is_dropped(store):
    repo, state, _, (a, b, c) = await _setup(store)
    held = _HeldReloadStore(store)
    engine = OptimisticSyncEngine(TaskRepository(held), state)

    move_a = asyncio.create_task(
        engine.move("u1", MoveCommand(a.id, Position(TODO, 0), Position(DONE, 0)))
    )
    move_b = asyncio.create_task(
        engine.move("u1", MoveCommand(b.id, Position(TODO, 1), Position(DOING, 0)))
    )
    await asyncio.sleep(0)

    held.reloads[1].set()
    assert await move_b == MoveOutcome.RECONCILED
    applied = state.board

    held.reloads[0].set()
    assert await move_a == MoveOutcome.STALE
    assert state.board is applied
    assert state.board == await repo.fetch("u1")
