"""Tests for the single-flight session gate."""

import asyncio
import traceback

import pytest

from actual_mcp_server.errors import InitializationError
from actual_mcp_server.session import SessionGate, SessionState

from conftest import FakeBudgetStore


class TestEnsureReady:

    @pytest.mark.asyncio
    async def test_first_call_runs_setup(self, gate, store):
        await gate.ensure_ready()

        assert gate.state is SessionState.READY
        assert store.open_calls == 1
        assert store.loaded_budget == "budget-1"

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_share_one_setup(self, settings):
        store = FakeBudgetStore(setup_delay=0.05)
        gate = SessionGate(store, settings)

        await asyncio.gather(gate.ensure_ready(), gate.ensure_ready())

        assert store.open_calls == 1
        assert store.load_calls == 1
        assert gate.state is SessionState.READY

    @pytest.mark.asyncio
    async def test_many_concurrent_callers(self, settings):
        store = FakeBudgetStore(setup_delay=0.01)
        gate = SessionGate(store, settings)

        results = await asyncio.gather(*(gate.ensure_ready() for _ in range(25)))

        assert results == [None] * 25
        assert store.open_calls == 1

    @pytest.mark.asyncio
    async def test_ready_is_idempotent(self, gate, store):
        await gate.ensure_ready()
        for _ in range(50):
            await gate.ensure_ready()

        assert store.open_calls == 1

    @pytest.mark.asyncio
    async def test_state_is_initializing_while_setup_runs(self, settings):
        store = FakeBudgetStore(setup_delay=0.05)
        gate = SessionGate(store, settings)

        task = asyncio.create_task(gate.ensure_ready())
        await asyncio.sleep(0.01)
        assert gate.state is SessionState.INITIALIZING

        await task
        assert gate.state is SessionState.READY


class TestFailure:

    @pytest.mark.asyncio
    async def test_all_concurrent_callers_get_the_same_error(self, settings):
        error = InitializationError("bad credential")
        store = FakeBudgetStore(setup_delay=0.01, fail_with=error)
        gate = SessionGate(store, settings)

        results = await asyncio.gather(
            gate.ensure_ready(), gate.ensure_ready(), gate.ensure_ready(),
            return_exceptions=True,
        )

        assert all(r is error for r in results)
        assert store.open_calls == 1
        assert gate.state is SessionState.FAILED

    @pytest.mark.asyncio
    async def test_failure_is_sticky(self, settings):
        store = FakeBudgetStore(setup_delay=0.01, fail_with=RuntimeError("bad credential"))
        gate = SessionGate(store, settings)

        await asyncio.gather(*(gate.ensure_ready() for _ in range(3)), return_exceptions=True)

        with pytest.raises(RuntimeError, match="bad credential"):
            await gate.ensure_ready()
        assert store.open_calls == 1

    @pytest.mark.asyncio
    async def test_error_is_not_wrapped(self, settings):
        error = ConnectionError("server unreachable")
        gate = SessionGate(FakeBudgetStore(fail_with=error), settings)

        with pytest.raises(ConnectionError) as exc_info:
            await gate.ensure_ready()

        assert exc_info.value is error
        assert gate.error is error

    @pytest.mark.asyncio
    async def test_load_budget_failure_is_captured(self, settings):
        store = FakeBudgetStore()

        async def fail_load(budget_id):
            store.load_calls += 1
            raise InitializationError(f'Could not load budget "{budget_id}": unknown file')

        store.load_budget = fail_load
        gate = SessionGate(store, settings)

        with pytest.raises(InitializationError, match="unknown file"):
            await gate.ensure_ready()
        with pytest.raises(InitializationError, match="unknown file"):
            await gate.ensure_ready()
        assert store.load_calls == 1

    @pytest.mark.asyncio
    async def test_repeated_raises_do_not_grow_the_traceback(self, settings):
        gate = SessionGate(FakeBudgetStore(fail_with=RuntimeError("bad credential")), settings)

        depths = []
        for _ in range(5):
            try:
                await gate.ensure_ready()
            except RuntimeError as e:
                depths.append(len(traceback.extract_tb(e.__traceback__)))

        assert len(depths) == 5
        assert len(set(depths[1:])) == 1


class TestShutdown:

    @pytest.mark.asyncio
    async def test_shutdown_after_ready_allows_fresh_setup(self, gate, store):
        await gate.ensure_ready()
        await gate.shutdown()

        assert gate.state is SessionState.UNINITIALIZED
        assert store.close_calls == 1

        await gate.ensure_ready()
        assert store.open_calls == 2
        assert gate.state is SessionState.READY

    @pytest.mark.asyncio
    async def test_shutdown_when_uninitialized_is_noop(self, gate, store):
        await gate.shutdown()

        assert gate.state is SessionState.UNINITIALIZED
        assert store.close_calls == 0

    @pytest.mark.asyncio
    async def test_shutdown_clears_failure(self, settings):
        store = FakeBudgetStore(fail_with=RuntimeError("bad credential"))
        gate = SessionGate(store, settings)
        with pytest.raises(RuntimeError):
            await gate.ensure_ready()

        await gate.shutdown()

        assert gate.state is SessionState.UNINITIALIZED
        assert gate.error is None
        assert store.close_calls == 0

        store.fail_with = None
        await gate.ensure_ready()
        assert store.open_calls == 2
        assert gate.state is SessionState.READY

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_setup(self, settings):
        store = FakeBudgetStore(setup_delay=0.05)
        gate = SessionGate(store, settings)

        first = asyncio.create_task(gate.ensure_ready())
        second = asyncio.create_task(gate.ensure_ready())
        await asyncio.sleep(0.01)
        first.cancel()

        await second
        assert first.cancelled()
        assert gate.state is SessionState.READY
        assert store.open_calls == 1

    @pytest.mark.asyncio
    async def test_waiter_sees_failure_even_if_shutdown_runs_first(self, settings):
        store = FakeBudgetStore(setup_delay=0.01, fail_with=RuntimeError("bad credential"))
        gate = SessionGate(store, settings)

        waiter = asyncio.create_task(gate.ensure_ready())
        await asyncio.sleep(0)
        setup = gate._setup_task

        # Resumes before the waiter does, so the gate is reset under it.
        with pytest.raises(RuntimeError):
            await setup
        await gate.shutdown()

        with pytest.raises(RuntimeError, match="bad credential"):
            await waiter
        assert gate.state is SessionState.UNINITIALIZED
