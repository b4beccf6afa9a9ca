"""
h5viz UI Module

This module provides the terminal user interface of h5viz:

- events: event types and the merged event source
- keymap: mapping of events to actions per mode
- layout: pure rendering of a session state into panels
- terminal: curses screen handling (imported on demand)

Examples
--------
>>> from h5viz.ui import map_event, render
>>>
>>> action = map_event(Key('j'), state.mode)
>>> frame = render(state, 80, 24)
"""

from h5viz.ui.events import (
    Event,
    EventSource,
    FetchCompleted,
    Key,
    Mouse,
    Quit,
    Render,
    Resize,
    Tick,
)
from h5viz.ui.keymap import map_event
from h5viz.ui.layout import Frame, Line, Panel, PanelKind, Rect, Span, render

__all__ = [
    # Events
    'Event',
    'EventSource',
    'FetchCompleted',
    'Key',
    'Mouse',
    'Quit',
    'Render',
    'Resize',
    'Tick',
    # Key map
    'map_event',
    # Layout
    'Frame',
    'Line',
    'Panel',
    'PanelKind',
    'Rect',
    'Span',
    'render',
]
