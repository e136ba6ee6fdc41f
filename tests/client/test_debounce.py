from __future__ import annotations

import asyncio

from app.client.debounce import Debouncer


def _recorder():
    calls: list[tuple] = []

    async def record(*args) -> None:
        calls.append(args)

    return calls, record


def test_burst_collapses_to_one_trailing_call() -> None:
    calls, record = _recorder()

    async def scenario():
        debouncer = Debouncer(record, wait=0.05)
        for i in range(5):
            debouncer.call(i)
            await asyncio.sleep(0.01)
        assert calls == []  # no leading-edge call
        await asyncio.sleep(0.1)
        await debouncer.wait_idle()

    asyncio.run(scenario())
    assert calls == [(4,)]


def test_calls_separated_by_quiet_period_both_fire() -> None:
    calls, record = _recorder()

    async def scenario():
        debouncer = Debouncer(record, wait=0.02)
        debouncer.call("a")
        await asyncio.sleep(0.06)
        debouncer.call("b")
        await asyncio.sleep(0.06)
        await debouncer.wait_idle()

    asyncio.run(scenario())
    assert calls == [("a",), ("b",)]


def test_flush_dispatches_pending_call_immediately() -> None:
    calls, record = _recorder()

    async def scenario():
        debouncer = Debouncer(record, wait=10)
        debouncer.call("now")
        assert debouncer.pending
        await debouncer.flush()
        assert not debouncer.pending

    asyncio.run(scenario())
    assert calls == [("now",)]


def test_flush_without_pending_call_is_noop() -> None:
    calls, record = _recorder()
    asyncio.run(Debouncer(record, wait=0.01).flush())
    assert calls == []


def test_cancel_drops_pending_call() -> None:
    calls, record = _recorder()

    async def scenario():
        debouncer = Debouncer(record, wait=0.02)
        debouncer.call("dropped")
        debouncer.cancel()
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert calls == []


def test_failing_call_does_not_break_later_calls() -> None:
    calls: list[str] = []

    async def flaky(value: str) -> None:
        if value == "boom":
            raise RuntimeError("boom")
        calls.append(value)

    async def scenario():
        debouncer = Debouncer(flaky, wait=0.01)
        debouncer.call("boom")
        await asyncio.sleep(0.03)
        await debouncer.wait_idle()
        debouncer.call("ok")
        await asyncio.sleep(0.03)
        await debouncer.wait_idle()

    asyncio.run(scenario())
    assert calls == ["ok"]
