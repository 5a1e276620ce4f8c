import asyncio

import pytest

from services.stock_locks import StockLockRegistry


@pytest.fixture
def registry():
    return StockLockRegistry()


class TestStockLockRegistry:
    async def test_entries_exist_only_while_held(self, registry):
        async with registry.hold([("item", "b"), ("item", "a"), ("item", "a")]):
            assert len(registry) == 2
        assert len(registry) == 0

    async def test_same_key_is_mutually_exclusive(self, registry):
        order = []

        async def worker(name):
            async with registry.hold(["k"]):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        async with registry.hold(["k"]):
            tasks = [asyncio.create_task(worker(n)) for n in ("x", "y")]
            await asyncio.sleep(0.01)
            # waiters share the holder's entry
            assert len(registry) == 1
            assert order == []

        await asyncio.gather(*tasks)
        assert order == ["x-in", "x-out", "y-in", "y-out"]
        assert len(registry) == 0

    async def test_disjoint_keys_do_not_block(self, registry):
        async with registry.hold(["a"]):
            await asyncio.wait_for(_enter_and_leave(registry, ["b"]), timeout=1)

    async def test_released_when_body_raises(self, registry):
        with pytest.raises(RuntimeError):
            async with registry.hold(["a", "b"]):
                raise RuntimeError("boom")

        assert len(registry) == 0
        await asyncio.wait_for(_enter_and_leave(registry, ["a", "b"]), timeout=1)

    async def test_cancelled_waiter_leaves_no_entry(self, registry):
        async with registry.hold(["a"]):
            waiter = asyncio.create_task(_enter_and_leave(registry, ["a", "b"]))
            await asyncio.sleep(0.01)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            assert len(registry) == 1

        assert len(registry) == 0

    async def test_many_distinct_keys_do_not_accumulate(self, registry):
        for n in range(50):
            async with registry.hold([("item", n)]):
                pass
        assert len(registry) == 0


async def _enter_and_leave(registry, keys):
    async with registry.hold(keys):
        pass
