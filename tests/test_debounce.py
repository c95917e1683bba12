import asyncio
import pytest
from services.companion_service import list_companions
from services.debounce import Debouncer


def recorder():
    calls = []

    async def callback(value):
        calls.append(value)

    return calls, callback


@pytest.mark.asyncio
async def test_only_last_trigger_fires():
    calls, callback = recorder()
    debouncer = Debouncer(0.05, callback)

    debouncer.trigger("a")
    debouncer.trigger("ab")
    debouncer.trigger("abc")
    assert debouncer.pending
    await debouncer.wait()

    assert calls == ["abc"]
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_quiet_windows_fire_separately():
    calls, callback = recorder()
    debouncer = Debouncer(0.01, callback)

    debouncer.trigger("maths")
    await debouncer.wait()
    debouncer.trigger("science")
    await debouncer.wait()

    assert calls == ["maths", "science"]


@pytest.mark.asyncio
async def test_cancel_drops_pending_call():
    calls, callback = recorder()
    debouncer = Debouncer(0.05, callback)

    debouncer.trigger("maths")
    debouncer.cancel()
    await debouncer.wait()
    await asyncio.sleep(0.1)

    assert calls == []


@pytest.mark.asyncio
async def test_callback_failure_is_logged_not_raised():
    async def boom(value):
        raise RuntimeError(value)

    debouncer = Debouncer(0.01, boom)
    debouncer.trigger("bad")
    await debouncer.wait()
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_started_callback_finishes_before_next_runs():
    started = asyncio.Event()
    release = asyncio.Event()
    calls = []

    async def slow_lookup(value):
        calls.append(("start", value))
        if value == "c":
            started.set()
            await release.wait()
        calls.append(("end", value))

    debouncer = Debouncer(0.01, slow_lookup)
    debouncer.trigger("c")
    await started.wait()

    # a new query arrives while the first lookup is still in flight
    debouncer.trigger("c1")
    await asyncio.sleep(0.05)
    release.set()
    await debouncer.wait()

    assert calls == [("start", "c"), ("end", "c"), ("start", "c1"), ("end", "c1")]


@pytest.mark.asyncio
async def test_cancel_leaves_started_callback_running():
    started = asyncio.Event()
    release = asyncio.Event()
    calls = []

    async def slow_lookup(value):
        started.set()
        await release.wait()
        calls.append(value)

    debouncer = Debouncer(0.01, slow_lookup)
    debouncer.trigger("maths")
    await started.wait()
    debouncer.cancel()
    release.set()
    await debouncer.wait()

    assert calls == ["maths"]


@pytest.mark.asyncio
async def test_back_to_back_queries_share_one_session(db_session, make_companion):
    await make_companion(topic="Calculus")
    await make_companion(topic="Chemistry")
    first_running = asyncio.Event()
    results = []

    async def lookup(topic):
        if topic == "c":
            first_running.set()
            await asyncio.sleep(0.05)
        results.append([c.topic for c in await list_companions(db_session, topic=topic)])

    debouncer = Debouncer(0.01, lookup)
    debouncer.trigger("c")
    await first_running.wait()
    debouncer.trigger("calc")
    await debouncer.wait()

    assert sorted(results[0]) == ["Calculus", "Chemistry"]
    assert results[1] == ["Calculus"]
