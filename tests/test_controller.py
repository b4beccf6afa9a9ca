import queue
import signal

import pytest

from h5viz import actions as act
from h5viz.controllers import SessionController
from h5viz.state import Browsing, Error, Viewing
from h5viz.ui.events import EventSource, FetchCompleted, Key, Render, Resize
from h5viz.ui.layout import PanelKind


class FakeTerminal:
    """Terminal double recording frames and replaying scripted input."""

    def __init__(self, events=(), size=(80, 24)):
        self._size = size
        self.frames = []
        self.events = queue.Queue()
        for event in events:
            self.events.put(event)

    def size(self):
        return self._size

    def draw(self, frame):
        self.frames.append(frame)

    def read(self, timeout):
        try:
            return self.events.get(timeout=timeout)
        except queue.Empty:
            return None


@pytest.fixture
def terminal():
    return FakeTerminal()


@pytest.fixture
def controller(ctx, store, terminal):
    session = SessionController(ctx, store, terminal=terminal, source=EventSource())
    yield session
    session.shutdown()


def next_completion(controller):
    """Wait for the next fetch completion and hand it to the loop."""
    while True:
        event = controller.source.get(timeout=5)
        assert event is not None, "no fetch completion arrived"
        controller.dispatch(event)
        if isinstance(event, FetchCompleted):
            return event


def open_dmd(controller):
    controller.dispatch(Key('j'))
    controller.dispatch(Key('enter'))
    return next_completion(controller)


def test_render_event_draws_a_frame(controller, terminal):
    controller.dispatch(Render())
    assert len(terminal.frames) == 1
    assert terminal.frames[0].kinds == [PanelKind.CATALOG, PanelKind.STATUS]


def test_resize_updates_size_and_redraws(controller, terminal):
    controller.dispatch(Resize(30, 5))
    assert controller.size == (30, 5)
    assert terminal.frames[-1].kinds == [PanelKind.TOO_SMALL]


def test_keys_drive_the_state_machine(controller):
    controller.dispatch(Key('j'))
    assert controller.state.mode == Browsing(cursor=1)


def test_opening_a_dataset_fetches_in_background(controller):
    event = open_dmd(controller)

    assert event.ok
    view = controller.state.mode
    assert isinstance(view, Viewing)
    assert view.path == "routput/Dmd"
    assert not view.loading
    assert view.data.shape == (120, 5)
    assert controller.cache.contains(view.selection)


def test_cached_slice_is_served_synchronously(controller):
    open_dmd(controller)
    controller.dispatch(Key('esc'))
    controller.dispatch(Key('enter'))

    assert not controller.state.mode.loading
    assert controller.cache.metrics.hits == 1
    assert controller.cache.metrics.misses == 1


def test_reload_reads_the_slice_again(controller):
    open_dmd(controller)
    controller.dispatch(Key('r'))
    next_completion(controller)
    assert controller.cache.metrics.misses == 2


def test_fetch_failure_enters_error_mode(controller, store):
    controller.dispatch(Key('j'))
    store.close()
    controller.dispatch(Key('enter'))
    event = next_completion(controller)

    assert not event.ok
    mode = controller.state.mode
    assert isinstance(mode, Error)
    assert "file is closed" in mode.message
    assert isinstance(mode.previous, Viewing)

    controller.dispatch(Key('esc'))
    assert isinstance(controller.state.mode, Viewing)


def test_quit_key_cancels_the_source(controller):
    controller.dispatch(Key('q'))
    assert controller.state.quit
    assert controller.source.cancelled


def test_late_results_are_discarded_after_shutdown(controller):
    controller.perform(act.OpenDataset("routput/Dmd"))
    controller.shutdown()
    # completions arriving now are dropped by the cancelled source
    assert not controller.source.put(FetchCompleted("late", data=1))


def test_run_until_quit(ctx, store):
    terminal = FakeTerminal([Key('j'), Key('enter'), Key('q')])
    source = EventSource(terminal, tick_rate=50, frame_rate=50, poll_interval=0.01)
    controller = SessionController(ctx, store, terminal=terminal, source=source)
    before = signal.getsignal(signal.SIGINT)

    assert controller.run(poll_timeout=0.05) == 0

    assert controller.state.quit
    assert controller.source.finished
    assert terminal.frames
    assert signal.getsignal(signal.SIGINT) is before
