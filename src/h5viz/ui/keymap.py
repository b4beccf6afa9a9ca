"""
Key Map Module

Translates raw events into domain actions for the current mode. The
mapping is a pure function of (event, mode); it never touches the
terminal or the session state.
"""

from typing import Dict, Optional

from h5viz import actions as act
from h5viz.actions import COLS, ROWS, Action
from h5viz.config import PAGE_SIZE
from h5viz.state import Browsing, Error, Help, Mode, Searching, Viewing
from h5viz.ui import events as ev

# Large enough to reach either end of any dataset after clamping
JUMP = 2 ** 31

# Shifted digits on a US layout step the matching dimension backwards
SHIFTED_DIGITS = "!@#$%^&*("


# =============================================================================
# Static Bindings
# =============================================================================

BROWSING_KEYS: Dict[str, Action] = {
    'up': act.MoveCursor(-1),
    'k': act.MoveCursor(-1),
    'down': act.MoveCursor(1),
    'j': act.MoveCursor(1),
    'pageup': act.MoveCursor(-PAGE_SIZE),
    'pagedown': act.MoveCursor(PAGE_SIZE),
    'home': act.MoveCursor(-JUMP),
    'end': act.MoveCursor(JUMP),
    'enter': act.Confirm(),
    '/': act.StartSearch(),
    '?': act.ShowHelp(),
    'q': act.Quit(),
}

VIEWING_KEYS: Dict[str, Action] = {
    'up': act.ScrollSlice(-1, ROWS),
    'k': act.ScrollSlice(-1, ROWS),
    'down': act.ScrollSlice(1, ROWS),
    'j': act.ScrollSlice(1, ROWS),
    'left': act.ScrollSlice(-1, COLS),
    'h': act.ScrollSlice(-1, COLS),
    'right': act.ScrollSlice(1, COLS),
    'l': act.ScrollSlice(1, COLS),
    'pageup': act.ScrollSlice(-PAGE_SIZE, ROWS),
    'pagedown': act.ScrollSlice(PAGE_SIZE, ROWS),
    'home': act.ScrollSlice(-JUMP, COLS),
    'end': act.ScrollSlice(JUMP, COLS),
    ']': act.CycleAxis(COLS, 1),
    '[': act.CycleAxis(COLS, -1),
    '}': act.CycleAxis(ROWS, 1),
    '{': act.CycleAxis(ROWS, -1),
    '.': act.ToggleFormat(),
    't': act.ToggleTotals(),
    'p': act.TogglePlot(),
    'r': act.Reload(),
    '?': act.ShowHelp(),
    'q': act.Quit(),
    'esc': act.Cancel(),
}
VIEWING_KEYS.update({str(n): act.CycleIndex(n - 1, 1) for n in range(1, 10)})
VIEWING_KEYS.update({c: act.CycleIndex(n, -1) for n, c in enumerate(SHIFTED_DIGITS)})

OVERLAY_KEYS: Dict[str, Action] = {
    'esc': act.Cancel(),
    'enter': act.Cancel(),
    'q': act.Cancel(),
}


# =============================================================================
# Mapping
# =============================================================================

def map_event(event: ev.Event, mode: Mode) -> Optional[Action]:
    """
    Map one event to an action.

    Parameters
    ----------
    event : Event
        Raw event from the event source
    mode : Mode
        Current session mode

    Returns
    -------
    Action or None
        None when the event has no meaning in `mode` (Resize and Render are
        handled by the session loop itself)

    Examples
    --------
    >>> map_event(Key('j'), Browsing())
    MoveCursor(delta=1)
    >>> map_event(Key('j'), Searching('', Browsing()))
    SetFilter(text='j')
    """
    if isinstance(event, ev.Quit):
        return act.Quit()
    if isinstance(event, ev.Tick):
        return act.Tick()
    if isinstance(event, ev.FetchCompleted):
        return act.FetchCompleted(event.key, data=event.data, error=event.error)
    if isinstance(event, ev.Key):
        if event.ctrl and event.code.lower() == 'c':
            return act.Quit()
        return _map_key(event, mode)
    if isinstance(event, ev.Mouse):
        return _map_mouse(event, mode)
    return None


def _map_key(key: ev.Key, mode: Mode) -> Optional[Action]:
    if key.ctrl or key.alt:
        return None

    if isinstance(mode, (Help, Error)):
        return OVERLAY_KEYS.get(key.code)

    if isinstance(mode, Searching):
        if key.code == 'enter':
            return act.Confirm()
        if key.code == 'esc':
            return act.Cancel()
        if key.code == 'backspace':
            return act.SetFilter(mode.text[:-1])
        if len(key.code) == 1 and key.code.isprintable():
            return act.SetFilter(mode.text + key.code)
        return None

    if isinstance(mode, Viewing):
        return VIEWING_KEYS.get(key.code)

    if isinstance(mode, Browsing):
        if key.code == 'esc':
            return act.SetFilter("") if mode.filter else act.Cancel()
        return BROWSING_KEYS.get(key.code)

    return None


def _map_mouse(mouse: ev.Mouse, mode: Mode) -> Optional[Action]:
    if mouse.kind not in ('scroll_up', 'scroll_down'):
        return None
    delta = -1 if mouse.kind == 'scroll_up' else 1
    if isinstance(mode, Viewing):
        return act.ScrollSlice(delta, ROWS)
    if isinstance(mode, Browsing):
        return act.MoveCursor(delta)
    return None
