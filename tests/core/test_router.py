# tests/core/test_router.py

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from uhf_phase.core.events import ReadException, TagReadEvent
from uhf_phase.core.router import (
    CountMode, MatchCounters, StreamEventRouter, epc_equals, format_read_exception
)
from uhf_phase.core.status import SubscriptionStatus

TARGET = "300833B2DDD9014000000000"
OTHER = "E2006316963EDAB165385F6A"


def read(epc_hex: str, antenna: int = 1) -> TagReadEvent:
    return TagReadEvent(identifier=bytes.fromhex(epc_hex), antenna=antenna, phase=0)

# --- Test Fixtures ---

@pytest.fixture
def router() -> StreamEventRouter:
    """Router counting reads of TARGET only."""
    return StreamEventRouter(epc_equals(TARGET))

@pytest.fixture
def counting_router() -> StreamEventRouter:
    """Router that also counts non-matching reads."""
    return StreamEventRouter(epc_equals(TARGET), count_mode=CountMode.BOTH)

# --- Helpers ---

def test_epc_equals_is_exact():
    predicate = epc_equals(TARGET)
    assert predicate(bytes.fromhex(TARGET))
    assert not predicate(bytes.fromhex(OTHER))
    assert not predicate(bytes.fromhex(TARGET)[:-1])
    assert not epc_equals(TARGET.lower())(bytes.fromhex(TARGET))

def test_format_read_exception():
    assert format_read_exception("Timeout") == "Error:Timeout"
    assert format_read_exception(ReadException("CRC error", status_code=0x04)) == "Error:CRC error (0x04)"

def test_counters_snapshot_is_a_copy():
    counters = MatchCounters(matched=2)
    snap = counters.snapshot()
    counters.matched += 1
    assert snap.matched == 2

# --- Counting ---

@pytest.mark.asyncio
async def test_match_nonmatch_match(router: StreamEventRouter):
    await router.start()
    for event in (read(TARGET), read(OTHER), read(TARGET, antenna=2)):
        await router.on_event(event)
    await router.stop()

    assert router.counters.matched == 2
    assert router.counters.non_matched == 0  # matches-only mode never counts misses

@pytest.mark.asyncio
async def test_count_both_mode(counting_router: StreamEventRouter):
    await counting_router.start()
    for event in (read(TARGET), read(OTHER), read(TARGET), read(OTHER), read(OTHER)):
        await counting_router.on_event(event)
    await counting_router.stop()

    assert counting_router.counters == MatchCounters(matched=2, non_matched=3)

@pytest.mark.asyncio
@pytest.mark.parametrize("mode", list(CountMode))
async def test_empty_identifier_ignored(mode):
    predicate = MagicMock(return_value=True)
    router = StreamEventRouter(predicate, count_mode=mode)
    await router.start()
    await router.on_event(TagReadEvent(identifier=b"", antenna=1, phase=10))
    await router.stop()

    predicate.assert_not_called()
    assert router.counters == MatchCounters()

@pytest.mark.asyncio
async def test_exception_does_not_touch_counters(counting_router: StreamEventRouter):
    await counting_router.start()
    await counting_router.on_event(read(TARGET))
    await counting_router.on_exception(ReadException("Tag ID buffer full"))
    await counting_router.on_event(read(OTHER))
    await counting_router.stop()

    assert counting_router.counters == MatchCounters(matched=1, non_matched=1)

@pytest.mark.asyncio
async def test_exception_forwarded_to_sink():
    sink = MagicMock()
    router = StreamEventRouter(epc_equals(TARGET), exception_sink=sink)
    await router.start()
    await router.exception_callback(ReadException("Antenna not connected", status_code=0x0A))
    await router.exception_callback(RuntimeError("link lost"))
    await router.stop()

    assert [c.args[0] for c in sink.call_args_list] == [
        "Error:Antenna not connected (0x0A)",
        "Error:link lost",
    ]
    assert router.status == SubscriptionStatus.STOPPED

@pytest.mark.asyncio
async def test_exception_logged_without_sink(router: StreamEventRouter, caplog):
    caplog.set_level(logging.ERROR)
    await router.start()
    await router.on_exception("Timeout")
    await router.stop()
    assert "Error:Timeout" in caplog.text

@pytest.mark.asyncio
async def test_match_sink_receives_matches_only():
    sink = AsyncMock()
    router = StreamEventRouter(epc_equals(TARGET), match_sink=sink)
    await router.start()
    await router.event_callback(read(OTHER))
    await router.event_callback(read(TARGET, antenna=2))
    await router.stop()

    sink.assert_awaited_once_with(read(TARGET, antenna=2))

@pytest.mark.asyncio
async def test_failing_sink_does_not_stop_counting(caplog):
    def broken_sink(event):
        raise ValueError("display gone")

    router = StreamEventRouter(epc_equals(TARGET), match_sink=broken_sink)
    await router.start()
    await router.on_event(read(TARGET))
    await router.on_event(read(TARGET))
    await router.stop()

    assert router.counters.matched == 2
    assert "Error in match sink" in caplog.text

@pytest.mark.asyncio
async def test_match_logged_with_antenna(router: StreamEventRouter, caplog):
    caplog.set_level(logging.INFO, logger="uhf_phase.core.router")
    await router.start()
    await router.on_event(read(TARGET, antenna=2))
    await router.stop()
    assert f"Background read: {TARGET} ant:2" in caplog.text

# --- Lifecycle ---

@pytest.mark.asyncio
async def test_stop_twice_is_noop(router: StreamEventRouter):
    await router.start()
    await router.on_event(read(TARGET))
    await router.stop()
    first = router.counters
    await router.stop()

    assert router.counters == first == MatchCounters(matched=1)
    assert router.status == SubscriptionStatus.STOPPED

@pytest.mark.asyncio
async def test_stop_before_start_is_noop(router: StreamEventRouter):
    await router.stop()
    assert router.status == SubscriptionStatus.IDLE
    assert router.counters == MatchCounters()

@pytest.mark.asyncio
async def test_concurrent_stop_calls_wait_for_drain(router: StreamEventRouter):
    await router.start()
    for _ in range(50):
        await router.on_event(read(TARGET))
    await asyncio.gather(router.stop(), router.stop())
    assert router.counters.matched == 50

@pytest.mark.asyncio
async def test_events_dropped_while_inactive(router: StreamEventRouter):
    await router.on_event(read(TARGET))
    await router.start()
    await router.on_event(read(TARGET))
    await router.stop()
    await router.on_event(read(TARGET))

    assert router.counters.matched == 1

@pytest.mark.asyncio
async def test_start_twice_warns(router: StreamEventRouter, caplog):
    await router.start()
    await router.start()
    await router.stop()
    assert "already running" in caplog.text

@pytest.mark.asyncio
async def test_counters_survive_restart(router: StreamEventRouter):
    async with router:
        await router.on_event(read(TARGET))
    async with router:
        await router.on_event(read(TARGET))
    assert router.counters.matched == 2

@pytest.mark.asyncio
async def test_bounded_queue_applies_backpressure():
    router = StreamEventRouter(epc_equals(TARGET), max_queue_size=2)
    await router.start()
    await asyncio.gather(*(router.on_event(read(TARGET)) for _ in range(20)))
    await router.stop()
    assert router.counters.matched == 20

def test_invalid_construction():
    with pytest.raises(TypeError):
        StreamEventRouter("not callable")
    with pytest.raises(ValueError):
        StreamEventRouter(epc_equals(TARGET), max_queue_size=-1)

def test_threadsafe_submit_requires_start(router: StreamEventRouter):
    with pytest.raises(RuntimeError):
        router.submit_threadsafe(read(TARGET))

# --- Concurrency ---

@pytest.mark.asyncio
async def test_no_lost_updates_from_threads(counting_router: StreamEventRouter):
    events = [read(TARGET if i % 3 else OTHER, antenna=1 + i % 2) for i in range(3000)]
    expected_matched = sum(1 for e in events if e.epc_hex == TARGET)
    chunks = [events[i::6] for i in range(6)]

    def producer(chunk):
        for event in chunk:
            counting_router.submit_threadsafe(event).result(timeout=5)
        counting_router.report_exception_threadsafe("Timeout").result(timeout=5)

    await counting_router.start()
    await asyncio.gather(*(asyncio.to_thread(producer, chunk) for chunk in chunks))
    await counting_router.stop()

    assert counting_router.counters.matched == expected_matched
    assert counting_router.counters.non_matched == len(events) - expected_matched

@pytest.mark.asyncio
async def test_no_lost_updates_from_tasks(router: StreamEventRouter):
    async def producer(count):
        for _ in range(count):
            await router.on_event(read(TARGET))
            await router.on_event(read(OTHER))
            await asyncio.sleep(0)

    await router.start()
    await asyncio.gather(*(producer(100) for _ in range(8)))
    await router.stop()
    assert router.counters.matched == 800

# --- Failure isolation ---

@pytest.mark.asyncio
@pytest.mark.parametrize("max_queue_size", [0, 1])
async def test_failing_predicate_skips_read_and_keeps_consumer(max_queue_size, caplog):
    calls = []

    def flaky_predicate(identifier):
        calls.append(identifier)
        if len(calls) == 1:
            raise ValueError("bad predicate input")
        return identifier.hex().upper() == TARGET

    router = StreamEventRouter(flaky_predicate, count_mode=CountMode.BOTH, max_queue_size=max_queue_size)
    await router.start()
    for event in (read(TARGET), read(TARGET), read(OTHER), read(TARGET)):
        await asyncio.wait_for(router.on_event(event), timeout=1.0)
    await asyncio.wait_for(router.stop(), timeout=1.0)

    assert router.counters == MatchCounters(matched=2, non_matched=1)
    assert router.status == SubscriptionStatus.STOPPED
    assert "Predicate failed" in caplog.text

@pytest.mark.asyncio
async def test_cancelled_stop_keeps_router_stopping():
    async def slow_sink(event):
        await asyncio.sleep(0.05)

    router = StreamEventRouter(epc_equals(TARGET), match_sink=slow_sink)
    await router.start()
    for _ in range(3):
        await router.on_event(read(TARGET))

    stopping = asyncio.create_task(router.stop())
    await asyncio.sleep(0.01)
    stopping.cancel()
    with pytest.raises(asyncio.CancelledError):
        await stopping

    # Consumer is still draining, so a restart must not start a second one
    assert router.status == SubscriptionStatus.STOPPING
    await router.start()
    assert router.status == SubscriptionStatus.STOPPING

    await router.stop()
    assert router.status == SubscriptionStatus.STOPPED
    assert router.counters.matched == 3
