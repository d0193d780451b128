import asyncio

import pytest

from AtomCSS.Classes.throttle import Debouncer, Throttle


def recorder(calls, name):
    async def run():
        calls.append(name)
    return run


def test_higher_priority_replaces_pending_task(fake_sleep):
    calls = []
    throttle = Throttle(sleep=fake_sleep)

    async def scenario():
        assert throttle.schedule("a.html", recorder(calls, "retry"), delay=1, priority=0)
        assert throttle.schedule("a.html", recorder(calls, "event"), delay=1, priority=1)
        await throttle.drain()

    asyncio.run(scenario())
    assert calls == ["event"]


def test_lower_or_equal_priority_is_ignored(fake_sleep):
    calls = []
    throttle = Throttle(sleep=fake_sleep)

    async def scenario():
        assert throttle.schedule("a.html", recorder(calls, "first"), delay=1, priority=1)
        assert not throttle.schedule("a.html", recorder(calls, "same"), delay=1, priority=1)
        assert not throttle.schedule("a.html", recorder(calls, "lower"), delay=1, priority=0)
        assert throttle.is_pending("a.html")
        await throttle.drain()
        assert not throttle.pending

    asyncio.run(scenario())
    assert calls == ["first"]


def test_keys_are_independent_and_cancellable(fake_sleep):
    calls = []
    throttle = Throttle(sleep=fake_sleep)

    async def scenario():
        throttle.schedule("a.html", recorder(calls, "a"), delay=1)
        throttle.schedule("b.html", recorder(calls, "b"), delay=1)
        throttle.schedule("c.html", recorder(calls, "c"), delay=1)
        assert throttle.cancel("b.html")
        assert not throttle.cancel("b.html")
        await throttle.drain()

    asyncio.run(scenario())
    assert sorted(calls) == ["a", "c"]
    assert fake_sleep.delays == [1, 1]


def test_task_may_reschedule_its_own_key(fake_sleep):
    calls = []
    throttle = Throttle(sleep=fake_sleep)

    async def again():
        calls.append(len(calls))
        if len(calls) < 3:
            throttle.schedule("a.html", again, delay=0.5)

    async def scenario():
        throttle.schedule("a.html", again, delay=0.5)
        await throttle.drain()

    asyncio.run(scenario())
    assert calls == [0, 1, 2]


def test_debounce_runs_once_with_earliest_event_time(fake_sleep):
    fired = []

    async def write(started):
        fired.append(started)

    async def scenario():
        debouncer = Debouncer(write, 0.3, sleep=fake_sleep, clock=lambda: 100.0)
        debouncer.trigger("b.html", event_time=12.0)
        debouncer.trigger("a.html", event_time=10.0)
        debouncer.trigger("c.html", event_time=11.0)
        assert debouncer.pending
        await debouncer.wait()
        assert not debouncer.pending
        debouncer.trigger("d.html")
        await debouncer.wait()

    asyncio.run(scenario())
    assert fired == [10.0, 100.0]
    assert fake_sleep.delays == [0.3, 0.3]


def test_flush_cancels_pending_window(fake_sleep):
    fired = []

    async def write(started):
        fired.append(started)

    async def scenario():
        debouncer = Debouncer(write, 0.3, sleep=fake_sleep, clock=lambda: 50.0)
        debouncer.trigger("a.html", event_time=5.0)
        await debouncer.flush()
        assert not debouncer.pending
        await debouncer.wait()

    asyncio.run(scenario())
    assert fired == [5.0]


def test_flush_propagates_callback_errors(fake_sleep):
    async def broken(started):
        raise OSError("disk full")

    debouncer = Debouncer(broken, 0.3, sleep=fake_sleep)
    with pytest.raises(OSError):
        asyncio.run(debouncer.flush())
