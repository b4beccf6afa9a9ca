"""
Event Source Module

This module merges every asynchronous input of a session into a single
ordered event queue that is read by exactly one consumer:

- terminal input (keys, mouse, resize) read on a background thread
- a tick timer (time-based state updates)
- a render timer (redraw triggers)
- cancellation (interrupt signal or Quit action)

Backpressure
------------
At most one Tick is pending at any time; further ticks are coalesced until
the consumer dequeues it. Render, Key, Mouse and Resize events are never
dropped. Once cancelled, a final Quit is queued and nothing else is
accepted.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Hashable, List, Optional, Protocol, Union

logger = logging.getLogger(__name__)


# =============================================================================
# Event Types
# =============================================================================

@dataclass(frozen=True)
class Key:
    """
    A key press.

    `code` is the printable character, or a name such as 'up', 'down',
    'left', 'right', 'pageup', 'pagedown', 'home', 'end', 'enter', 'esc',
    'backspace', 'tab' or 'f1'..'f12'.
    """
    code: str
    ctrl: bool = False
    alt: bool = False


@dataclass(frozen=True)
class Mouse:
    """Mouse input; kind is 'scroll_up', 'scroll_down' or 'press'."""
    kind: str
    x: int = 0
    y: int = 0


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class Render:
    pass


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class FetchCompleted:
    """
    Completion of a slice fetch, re-entering the session loop.

    Exactly one of `data` / `error` is set.
    """
    key: Hashable
    data: Any = field(default=None, compare=False)
    error: Optional[BaseException] = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None


Event = Union[Key, Mouse, Resize, Tick, Render, Quit, FetchCompleted]


class InputReader(Protocol):
    """Anything that can produce terminal input events."""

    def read(self, timeout: float) -> Optional[Event]:
        """Return the next input event, or None after `timeout` seconds."""


# =============================================================================
# Event Source
# =============================================================================

class EventSource:
    """
    Single-consumer queue fed by input, timer and cancellation producers.

    Parameters
    ----------
    reader : InputReader, optional
        Terminal input; no input thread is started when None
    tick_rate : float
        Tick events per second
    frame_rate : float
        Render events per second
    poll_interval : float, optional
        Timeout passed to reader.read() so the input thread notices
        cancellation (seconds)

    Examples
    --------
    >>> with EventSource(terminal, tick_rate=4, frame_rate=4) as source:
    ...     while not source.finished:
    ...         event = source.get(timeout=0.5)
    """

    def __init__(
        self,
        reader: Optional[InputReader] = None,
        tick_rate: float = 4.0,
        frame_rate: float = 4.0,
        poll_interval: float = 0.05
    ):
        if tick_rate <= 0 or frame_rate <= 0:
            raise ValueError("tick_rate and frame_rate must be positive")

        self.reader = reader
        self.tick_interval = 1.0 / tick_rate
        self.frame_interval = 1.0 / frame_rate
        self.poll_interval = poll_interval

        # cancel() may run from a signal handler on the consumer thread:
        # SimpleQueue.put and the RLock are both reentrant
        self._queue: "queue.SimpleQueue[Event]" = queue.SimpleQueue()
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

        self._tick_pending = False
        self._closed = False
        self._finished = False

    # -------------------------------------------------------------------------
    # Producers
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the timer threads and, if a reader is set, the input thread."""
        if self._threads:
            return

        targets = [
            ("h5viz_tick", self._run_timer, (self.tick_interval, self.emit_tick)),
            ("h5viz_render", self._run_timer, (self.frame_interval, self.emit_render)),
        ]
        if self.reader is not None:
            targets.append(("h5viz_input", self._run_input, ()))

        for name, target, args in targets:
            thread = threading.Thread(target=target, args=args, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)

        logger.info(
            f"EventSource started: tick={1 / self.tick_interval:g}Hz, "
            f"frame={1 / self.frame_interval:g}Hz"
        )

    def _run_timer(self, interval: float, emit) -> None:
        while not self._stop.wait(interval):
            emit()

    def _run_input(self) -> None:
        while not self._stop.is_set():
            try:
                event = self.reader.read(self.poll_interval)
            except Exception as e:
                logger.error(f"Input reader failed: {e}", exc_info=True)
                self.cancel()
                return
            if event is not None:
                self.put(event)

    def emit_tick(self) -> bool:
        """Queue a Tick unless one is already pending."""
        with self._lock:
            if self._closed or self._tick_pending:
                return False
            self._tick_pending = True
            self._queue.put(Tick())
            return True

    def emit_render(self) -> bool:
        return self.put(Render())

    def put(self, event: Event) -> bool:
        """
        Queue an event from any thread.

        A Quit event cancels the source. Returns False once the source is
        cancelled.
        """
        if isinstance(event, Quit):
            return self.cancel()
        if isinstance(event, Tick):
            return self.emit_tick()
        with self._lock:
            if self._closed:
                return False
            self._queue.put(event)
            return True

    def cancel(self) -> bool:
        """
        Queue the terminal Quit event and stop every producer.

        Returns True for the call that actually cancelled the source.
        """
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            self._queue.put(Quit())
        self._stop.set()
        logger.info("EventSource cancelled")
        return True

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._closed

    # -------------------------------------------------------------------------
    # Consumer
    # -------------------------------------------------------------------------

    @property
    def finished(self) -> bool:
        """True once the consumer has received Quit."""
        return self._finished

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """
        Dequeue the next event.

        Returns None on timeout and for every call after Quit was delivered.
        """
        if self._finished:
            return None
        try:
            event = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

        if isinstance(event, Tick):
            with self._lock:
                self._tick_pending = False
        elif isinstance(event, Quit):
            self._finished = True
        return event

    def stop(self, timeout: float = 1.0) -> None:
        """Cancel and join the producer threads."""
        self.cancel()
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=timeout)
        self._threads.clear()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
