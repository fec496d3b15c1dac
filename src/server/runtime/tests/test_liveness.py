"""
存活探测与单飞合并测试。
"""

import asyncio

import pytest

from src.server.runtime.services.liveness import LivenessProber, SingleFlight


def test_concurrent_is_running_shares_one_probe(created_runtime, executor):
    executor.running = True

    async def scenario():
        executor.probe_gate = asyncio.Event()
        tasks = [asyncio.create_task(created_runtime.is_running()) for _ in range(5)]
        await asyncio.sleep(0)
        executor.probe_gate.set()
        results = await asyncio.gather(*tasks)
        executor.probe_gate = None
        # 进行中的探测结束后，下一次调用重新探测
        again = await created_runtime.is_running()
        return results, again

    results, again = asyncio.run(scenario())

    assert results == [True] * 5
    assert again is True
    assert executor.scripts().count("is_running") == 2


def test_single_flight_clears_slot_after_completion():
    calls = []

    async def work(value):
        calls.append(value)
        await asyncio.sleep(0)
        return value * 2

    flight = SingleFlight(work)

    async def scenario():
        first = await asyncio.gather(flight.run(1), flight.run(2))
        assert flight.in_flight is False
        second = await flight.run(3)
        return first, second

    first, second = asyncio.run(scenario())

    # 并发调用共享第一次调用的参数与结果
    assert first == [2, 2]
    assert second == 6
    assert calls == [1, 3]


def test_single_flight_propagates_error_to_all_waiters():
    async def broken():
        await asyncio.sleep(0)
        raise ValueError("boom")

    flight = SingleFlight(broken)

    async def scenario():
        results = await asyncio.gather(flight.run(), flight.run(), return_exceptions=True)
        return results

    results = asyncio.run(scenario())

    assert all(isinstance(r, ValueError) for r in results)
    assert flight.in_flight is False


def test_single_flight_waiter_cancel_keeps_shared_call():
    gate_holder = {}

    async def work():
        await gate_holder["gate"].wait()
        return "done"

    flight = SingleFlight(work)

    async def scenario():
        gate_holder["gate"] = asyncio.Event()
        cancelled = asyncio.create_task(flight.run())
        survivor = asyncio.create_task(flight.run())
        await asyncio.sleep(0)
        cancelled.cancel()
        await asyncio.sleep(0)
        gate_holder["gate"].set()
        with pytest.raises(asyncio.CancelledError):
            await cancelled
        return await survivor

    assert asyncio.run(scenario()) == "done"


def test_prober_translates_unexpected_errors(tmp_path):
    class ExplodingExecutor:
        async def execute(self, script, args=None, sink=None):
            raise OSError("no shell")

    prober = LivenessProber(tmp_path, ExplodingExecutor())

    assert asyncio.run(prober.probe()) is False
