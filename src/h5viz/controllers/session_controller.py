"""
h5viz Session Controller

This module provides the session loop that ties the pieces together:

- Event source (terminal input, timers, cancellation) -> one queue
- Key map -> actions
- State machine -> new state + commands
- Dataset cache -> slice fetches, completions re-enter the queue
- Renderer + terminal -> screen

The loop is the single owner of the session state. Background threads never
touch it; they only put events on the queue.
"""

import logging
import signal
import threading
from concurrent.futures import Future
from functools import partial
from typing import Optional, Tuple

from h5viz import actions as act
from h5viz.config import SessionContext
from h5viz.core.data_loader import DatasetStore
from h5viz.state import SessionState, apply, initial_state
from h5viz.ui.events import Event, EventSource, FetchCompleted, Render, Resize
from h5viz.ui.keymap import map_event
from h5viz.ui.layout import Frame, render
from h5viz.utils.cache import DatasetCache, FetchStatus

logger = logging.getLogger(__name__)

# Size assumed when no terminal is attached
DEFAULT_SIZE = (80, 24)


class SessionController:
    """
    Single-consumer session loop.

    Parameters
    ----------
    ctx : SessionContext
        Session configuration
    store : DatasetStore
        Open dataset store; its catalog seeds the session
    terminal : Terminal, optional
        Screen and input reader; frames are only kept in `frame` when None
    source : EventSource, optional
        Event source; one reading from `terminal` is created when None

    Attributes
    ----------
    state : SessionState
        Current session state
    cache : DatasetCache
        Slice cache in front of `store`
    frame : Frame or None
        Last rendered frame

    Example
    -------
    >>> with DatasetStore.open("run.h5") as store, Terminal() as term:
    ...     controller = SessionController(ctx, store, terminal=term)
    ...     exit_code = controller.run()
    """

    def __init__(
        self,
        ctx: SessionContext,
        store: DatasetStore,
        terminal=None,
        source: Optional[EventSource] = None
    ):
        self.ctx = ctx
        self.store = store
        self.terminal = terminal

        self.cache = DatasetCache(
            store.read_slice,
            max_bytes=ctx.cache_bytes,
            max_workers=ctx.max_workers,
        )
        self.source = source if source is not None else EventSource(
            terminal, tick_rate=ctx.tick_rate, frame_rate=ctx.frame_rate
        )

        self.state: SessionState = initial_state(store.catalog, ctx.window_limits)
        self.size: Tuple[int, int] = terminal.size() if terminal is not None else DEFAULT_SIZE
        self.frame: Optional[Frame] = None

        logger.info(f"SessionController initialized: {len(store.catalog)} datasets")

    # -------------------------------------------------------------------------
    # Event Handling
    # -------------------------------------------------------------------------

    def dispatch(self, event: Event) -> None:
        """Handle one event from the queue."""
        if isinstance(event, Render):
            self.redraw()
            return
        if isinstance(event, Resize):
            self.size = (event.width, event.height)
            logger.debug(f"Resize: {event.width}x{event.height}")
            self.redraw()
            return

        action = map_event(event, self.state.mode)
        if action is not None:
            self.perform(action)

    def perform(self, action: act.Action) -> None:
        """Apply an action and execute the resulting commands."""
        if not isinstance(action, act.Tick):
            logger.debug(f"Action: {action}")

        self.state, commands = apply(self.state, action)
        for command in commands:
            self.execute(command)

        if self.state.quit:
            self.source.cancel()

    def execute(self, command: act.Command) -> None:
        """Run a FetchSlice command against the cache."""
        key = command.selection
        if command.refresh:
            self.cache.invalidate(key)

        lookup = self.cache.get_or_fetch(key)
        if lookup.status == FetchStatus.READY:
            self.perform(act.FetchCompleted(key, data=lookup.data))
        elif lookup.status == FetchStatus.ERROR:
            self.perform(act.FetchCompleted(key, error=lookup.error))
        else:
            lookup.future.add_done_callback(partial(self._on_fetch_done, key))

    def _on_fetch_done(self, key, future: Future) -> None:
        # Runs on a fetch worker thread: only talk to the queue
        if future.cancelled():
            logger.debug(f"Fetch cancelled: {key}")
            return

        error = future.exception()
        if error is not None:
            event = FetchCompleted(key, error=error)
        else:
            event = FetchCompleted(key, data=future.result())

        if not self.source.put(event):
            logger.debug(f"Discarding late fetch result: {key}")

    def redraw(self) -> None:
        self.frame = render(self.state, *self.size)
        if self.terminal is not None:
            self.terminal.draw(self.frame)

    # -------------------------------------------------------------------------
    # Session Loop
    # -------------------------------------------------------------------------

    def _install_signal_handlers(self):
        if threading.current_thread() is not threading.main_thread():
            return {}

        def handler(signum, frame):
            logger.info(f"Received signal {signum}, cancelling session")
            self.source.cancel()

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, handler)
        return previous

    def run(self, poll_timeout: float = 0.5) -> int:
        """
        Run the session until Quit.

        Parameters
        ----------
        poll_timeout : float, optional
            Maximum wait for one event (seconds)

        Returns
        -------
        int
            Exit code (0 on normal quit)
        """
        previous_handlers = self._install_signal_handlers()
        logger.info("Session started")
        try:
            with self.source:
                self.redraw()
                while not self.source.finished:
                    event = self.source.get(timeout=poll_timeout)
                    if event is not None:
                        self.dispatch(event)
        finally:
            for signum, handler in previous_handlers.items():
                signal.signal(signum, handler)
            self.shutdown()

        logger.info("Session finished")
        return 0

    def shutdown(self) -> None:
        """Stop producers and the fetch workers."""
        self.source.stop()
        self.cache.shutdown(wait=True)
        logger.info(f"Session cache usage\n{self.cache.get_metrics()}")
