"""
Unit tests for MutationGuard and its use by the cart services.

Run: pytest tests/unit/test_mutation_guard.py -v
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from services.checkout_state_service import CartView
from services.mutation_guard import MutationGuard
from exceptions import CartBusyError, NetworkError
from tests.factories import CartLineFactory


class TestRunExclusive:

    def test_calls_run_one_at_a_time(self, run):
        guard = MutationGuard()
        active = []
        overlap = []

        async def operation(name):
            active.append(name)
            overlap.append(len(active))
            await asyncio.sleep(0.01)
            active.remove(name)
            return name

        async def main():
            return await asyncio.gather(
                guard.run_exclusive(lambda: operation("a")),
                guard.run_exclusive(lambda: operation("b")),
                guard.run_exclusive(lambda: operation("c")),
            )

        assert run(main()) == ["a", "b", "c"]
        assert max(overlap) == 1

    def test_is_mutating_resets_after_success_and_failure(self, run):
        guard = MutationGuard()
        seen = []

        async def ok():
            seen.append(guard.is_mutating)

        async def broken():
            raise NetworkError()

        async def main():
            await guard.run_exclusive(ok)
            with pytest.raises(NetworkError):
                await guard.run_exclusive(broken)

        run(main())

        assert seen == [True]
        assert guard.is_mutating is False

    def test_is_mutating_resets_after_cancel(self, run):
        guard = MutationGuard()

        async def slow():
            await asyncio.sleep(10)

        async def main():
            task = asyncio.ensure_future(guard.run_exclusive(slow))
            await asyncio.sleep(0)
            assert guard.is_mutating is True
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run(main())

        assert guard.is_mutating is False

    def test_try_run_exclusive_rejects_while_busy(self, run):
        guard = MutationGuard()
        gate = {}

        async def main():
            gate["event"] = asyncio.Event()
            first = asyncio.ensure_future(guard.run_exclusive(gate["event"].wait))
            await asyncio.sleep(0)

            with pytest.raises(CartBusyError):
                await guard.try_run_exclusive(AsyncMock(return_value="never"))

            gate["event"].set()
            await first
            return await guard.try_run_exclusive(AsyncMock(return_value="done"))

        assert run(main()) == "done"


class TestLoadDedupe:

    def test_duplicate_loads_share_one_call(self, run):
        guard = MutationGuard(dedupe_window_seconds=1)
        fetch = AsyncMock(return_value="cart")

        async def main():
            return await asyncio.gather(
                guard.load("GET /cart", fetch),
                guard.load("GET /cart", fetch),
            )

        assert run(main()) == ["cart", "cart"]
        fetch.assert_awaited_once()

    def test_failed_load_is_not_replayed(self, run):
        guard = MutationGuard(dedupe_window_seconds=10)
        fetch = AsyncMock(side_effect=[NetworkError(), "cart"])

        async def main():
            with pytest.raises(NetworkError):
                await guard.load("GET /cart", fetch)
            await asyncio.sleep(0)
            return await guard.load("GET /cart", fetch)

        assert run(main()) == "cart"
        assert fetch.await_count == 2

    def test_sequential_duplicate_inside_window_is_suppressed(self, run):
        guard = MutationGuard(dedupe_window_seconds=10)
        fetch = AsyncMock(return_value="cart")

        async def main():
            await guard.load("GET /cart", fetch)
            await guard.load("GET /cart", fetch)

        run(main())

        fetch.assert_awaited_once()

    def test_mutation_drops_recorded_load(self, run):
        guard = MutationGuard(dedupe_window_seconds=10)
        fetch = AsyncMock(return_value="cart")

        async def main():
            await guard.load("GET /cart", fetch)
            await guard.run_exclusive(AsyncMock(return_value=None))
            await guard.load("GET /cart", fetch)

        run(main())

        assert fetch.await_count == 2

    def test_distinct_signatures_both_go_out(self, run):
        guard = MutationGuard(dedupe_window_seconds=10)
        fetch = AsyncMock(return_value="data")

        async def main():
            await asyncio.gather(
                guard.load("GET /cart", fetch),
                guard.load("GET /upload-session/status?token=t", fetch),
            )

        run(main())

        assert fetch.await_count == 2


class TestCartServicesUseGuard:
    """End-to-end ordering against the fake backend."""

    def test_double_resume_fetches_once(self, session, backend, run):
        backend.seed_cart(items=[CartLineFactory.create(inventory_id="X")])

        async def main():
            return await asyncio.gather(session.checkout.resume(), session.checkout.resume())

        run(main())

        assert len(backend.calls("GET", "/cart")) == 1

    def test_second_edit_waits_for_first_response(self, session, backend, run):
        backend.seed_cart(items=[CartLineFactory.create(inventory_id="X", quantity=1)])

        async def main():
            await session.checkout.resume()
            backend.upsert_gate = asyncio.Event()

            first = asyncio.ensure_future(session.sync.set_quantity("X", 5))
            second = asyncio.ensure_future(session.sync.set_quantity("X", 2))
            await asyncio.sleep(0.01)

            assert session.sync.is_mutating is True
            assert len(backend.upsert_bodies()) == 1

            backend.upsert_gate.set()
            await asyncio.gather(first, second)

        run(main())

        deltas = [body["items"][0]["quantity"] for body in backend.upsert_bodies()]
        assert deltas == [4, -3]
        assert backend.max_in_flight == 1
        assert session.checkout.session.quantity_of("X") == 2
        assert session.sync.is_mutating is False

    def test_repeated_resume_keeps_state(self, session, backend, run):
        backend.seed_cart(items=[CartLineFactory.create(inventory_id="X", quantity=2)])

        async def main():
            await session.checkout.resume()
            await session.checkout.resume()

        run(main())

        assert len(backend.calls("GET", "/cart")) == 1
        assert session.checkout.session.quantity_of("X") == 2

    def test_resume_after_edit_keeps_server_quantity(self, session, backend, run):
        backend.seed_cart(items=[CartLineFactory.create(inventory_id="X", quantity=1)])

        async def main():
            await session.checkout.resume()
            await session.sync.increment("X")
            await session.checkout.resume()
            assert session.checkout.session.quantity_of("X") == 2
            await session.sync.remove_line("X")

        run(main())

        assert len(backend.calls("GET", "/cart")) == 2
        assert backend.upsert_bodies()[-1]["items"][0]["quantity"] == -2
        assert session.checkout.session.line("X") is None

    def test_resume_after_checkout_stays_in_checkout(self, session, backend, run):
        backend.seed_cart(items=[CartLineFactory.create(inventory_id="X")])

        async def main():
            await session.checkout.resume()
            await session.checkout.start_checkout()
            return await session.checkout.resume()

        view = run(main())

        assert view == CartView.CHECKOUT
        assert session.checkout.session.status == "PENDING"
