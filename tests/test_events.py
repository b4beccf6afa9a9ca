import queue
import signal
import threading

import pytest

from h5viz.ui.events import EventSource, FetchCompleted, Key, Quit, Render, Resize, Tick


class ScriptedReader:
    """Input reader replaying a fixed list of events."""

    def __init__(self, events):
        self.events = queue.Queue()
        for event in events:
            self.events.put(event)

    def read(self, timeout):
        try:
            return self.events.get(timeout=timeout)
        except queue.Empty:
            return None


def drain(source):
    events = []
    while True:
        event = source.get(timeout=0)
        if event is None:
            return events
        events.append(event)


def test_rates_must_be_positive():
    with pytest.raises(ValueError):
        EventSource(tick_rate=0)
    with pytest.raises(ValueError):
        EventSource(frame_rate=-1)


def test_at_most_one_pending_tick():
    source = EventSource()
    assert source.emit_tick()
    assert not source.emit_tick()
    assert not source.put(Tick())

    assert source.get(timeout=0) == Tick()
    # consumer dequeued the tick, a new one may be queued
    assert source.emit_tick()


def test_render_and_input_are_never_dropped():
    source = EventSource()
    for _ in range(50):
        assert source.emit_render()
        assert source.put(Key('j'))
    events = drain(source)
    assert events.count(Render()) == 50
    assert events.count(Key('j')) == 50


def test_arrival_order_is_kept():
    source = EventSource()
    source.put(Key('a'))
    source.emit_tick()
    source.put(Resize(80, 24))
    source.emit_render()
    assert drain(source) == [Key('a'), Tick(), Resize(80, 24), Render()]


def test_cancel_queues_final_quit_and_rejects_later_events():
    source = EventSource()
    source.put(Key('x'))
    assert source.cancel()
    assert not source.cancel()
    assert not source.put(Key('y'))
    assert not source.emit_tick()
    assert not source.put(FetchCompleted("k", data=1))

    assert source.get(timeout=0) == Key('x')
    assert source.get(timeout=0) == Quit()
    assert source.finished
    assert source.get(timeout=0) is None


def test_quit_event_cancels():
    source = EventSource()
    source.put(Quit())
    assert source.cancelled
    assert source.get(timeout=0) == Quit()


def test_threads_feed_the_queue():
    reader = ScriptedReader([Key('j'), Key('k')])
    with EventSource(reader, tick_rate=100, frame_rate=100, poll_interval=0.01) as source:
        seen = []
        while not {Key('j'), Key('k'), Tick(), Render()} <= set(seen):
            event = source.get(timeout=2)
            assert event is not None
            seen.append(event)

        assert seen.index(Key('j')) < seen.index(Key('k'))
        source.cancel()
        remaining = drain(source)
        assert remaining[-1] == Quit()


def test_stop_joins_producer_threads():
    source = EventSource(ScriptedReader([]), tick_rate=50, frame_rate=50, poll_interval=0.01)
    source.start()
    source.stop()
    names = {"h5viz_tick", "h5viz_render", "h5viz_input"}
    alive = [t for t in threading.enumerate() if t.name in names]
    assert alive == []


def test_fetch_completed_compares_by_key():
    assert FetchCompleted("k", data=[1]) == FetchCompleted("k", data=[2])
    assert FetchCompleted("k", error=ValueError("x")).ok is False


def test_cancel_while_holding_the_lock():
    source = EventSource()
    with source._lock:
        assert source.cancel()
    assert isinstance(source.get(timeout=1), Quit)


@pytest.mark.skipif(not hasattr(signal, "setitimer"), reason="needs interval timers")
def test_signal_handler_cancel_wakes_blocked_consumer():
    source = EventSource()
    previous = signal.signal(signal.SIGALRM, lambda signum, frame: source.cancel())
    try:
        signal.setitimer(signal.ITIMER_REAL, 0.05)
        event = source.get(timeout=5)
    finally:
        signal.setitimer(signal.ITIMER_REAL, 0)
        signal.signal(signal.SIGALRM, previous)

    assert isinstance(event, Quit)
    assert source.finished
