"""
h5viz Session State Module

This module holds the session state and the state machine that evolves it.

The state is an immutable value. `apply(state, action)` returns the next
state together with the commands (slice fetches) the session loop has to
execute; it performs no I/O, so every transition can be tested by feeding
actions and inspecting the result.

Modes
-----
Browsing   catalog listing with cursor and filter (initial)
Viewing    table / plot of a slice of one dataset
Searching  filter input overlay on top of Browsing
Help       key binding overlay on top of any mode
Error      message overlay; dismissed back to the mode it interrupted
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from h5viz.actions import (
    COLS,
    ROWS,
    Action,
    Cancel,
    Command,
    Confirm,
    CycleAxis,
    CycleIndex,
    FetchCompleted,
    FetchSlice,
    MoveCursor,
    OpenDataset,
    Quit,
    Reload,
    ScrollSlice,
    SetFilter,
    ShowHelp,
    StartSearch,
    Tick,
    ToggleFormat,
    TogglePlot,
    ToggleTotals,
)
from h5viz.config import DEFAULT_WINDOW_COLS, DEFAULT_WINDOW_ROWS
from h5viz.core.catalog import Catalog, DatasetMeta
from h5viz.core.selection import Selection, SliceWindow


# =============================================================================
# Modes
# =============================================================================

@dataclass(frozen=True)
class Browsing:
    cursor: int = 0
    filter: str = ""


@dataclass(frozen=True)
class Viewing:
    """
    A dataset being displayed.

    Attributes
    ----------
    selection : Selection
        Dataset path and the current slice window
    row_axis, col_axis : int
        Dimensions shown as table rows / columns (equal for 1-D data)
    cursor : tuple of int
        Absolute position per dimension; always inside the window
    parent : Browsing
        Catalog state restored on Cancel
    data : xarray.DataArray or None
        Latest loaded slice (possibly for an older window)
    data_key : Selection or None
        Selection `data` was loaded for
    formatted, totals, plot : bool
        Display toggles
    """
    selection: Selection
    row_axis: int
    col_axis: int
    cursor: Tuple[int, ...]
    parent: Browsing = Browsing()
    data: Any = field(default=None, compare=False, repr=False)
    data_key: Optional[Selection] = None
    formatted: bool = True
    totals: bool = True
    plot: bool = False

    @property
    def path(self) -> str:
        return self.selection.path

    @property
    def window(self) -> SliceWindow:
        return self.selection.window

    @property
    def loading(self) -> bool:
        """True while the data for the current window has not arrived."""
        return self.data_key != self.selection


@dataclass(frozen=True)
class Searching:
    text: str
    previous: Browsing


@dataclass(frozen=True)
class Help:
    previous: Any


@dataclass(frozen=True)
class Error:
    message: str
    previous: Any


Mode = Union[Browsing, Viewing, Searching, Help, Error]


@dataclass(frozen=True)
class SessionState:
    """
    Everything the renderer needs, owned by the session loop.

    Attributes
    ----------
    catalog : Catalog
        Datasets of the open file (read-only)
    mode : Mode
        Current mode
    limits : tuple of int
        (rows, cols) maximum window extent
    ticks : int
        Number of Tick actions applied
    quit : bool
        Set once Quit was applied; the session ends
    """
    catalog: Catalog
    mode: Mode = Browsing()
    limits: Tuple[int, int] = (DEFAULT_WINDOW_ROWS, DEFAULT_WINDOW_COLS)
    ticks: int = 0
    quit: bool = False

    @property
    def viewing(self) -> Optional[Viewing]:
        """The Viewing mode underneath any overlays, if there is one."""
        return innermost_viewing(self.mode)

    @property
    def selection(self) -> Optional[Selection]:
        view = self.viewing
        return view.selection if view is not None else None

    def filtered_paths(self) -> List[str]:
        """Catalog paths matching the active (or live search) filter."""
        mode = base_mode(self.mode)
        if isinstance(mode, Searching):
            return self.catalog.filter(mode.text)
        if isinstance(mode, Browsing):
            return self.catalog.filter(mode.filter)
        return self.catalog.filter("")


def initial_state(catalog: Catalog, limits: Tuple[int, int] = None) -> SessionState:
    """Browsing state at the top of the catalog."""
    if limits is None:
        limits = (DEFAULT_WINDOW_ROWS, DEFAULT_WINDOW_COLS)
    return SessionState(catalog=catalog, mode=Browsing(), limits=tuple(limits))


# =============================================================================
# Mode Helpers
# =============================================================================

def base_mode(mode: Mode) -> Mode:
    """Strip Help / Error overlays."""
    while isinstance(mode, (Help, Error)):
        mode = mode.previous
    return mode


def innermost_viewing(mode: Mode) -> Optional[Viewing]:
    while isinstance(mode, (Help, Error, Searching)):
        mode = mode.previous
    return mode if isinstance(mode, Viewing) else None


def _replace_viewing(mode: Mode, view: Viewing) -> Mode:
    if isinstance(mode, Viewing):
        return view
    if isinstance(mode, (Help, Error, Searching)):
        return replace(mode, previous=_replace_viewing(mode.previous, view))
    return mode


def _parent_browsing(mode: Mode) -> Browsing:
    mode = base_mode(mode)
    if isinstance(mode, Browsing):
        return mode
    if isinstance(mode, Viewing):
        return mode.parent
    if isinstance(mode, Searching):
        return replace(mode.previous, filter=mode.text, cursor=0)
    return Browsing()


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(value, hi))


def _window_cursor(window: SliceWindow, cursor: Optional[Tuple[int, ...]] = None) -> Tuple[int, ...]:
    """Clamp `cursor` into `window` (window starts when no cursor given)."""
    result = []
    for axis in range(window.ndim):
        start, stop = window.extent(axis)
        value = cursor[axis] if cursor is not None else start
        result.append(_clamp(value, start, max(stop - 1, start)))
    return tuple(result)


# =============================================================================
# State Machine
# =============================================================================

Result = Tuple[SessionState, List[Command]]


def apply(state: SessionState, action: Action) -> Result:
    """
    Apply one action.

    Parameters
    ----------
    state : SessionState
        Current state
    action : Action
        Action to apply

    Returns
    -------
    tuple
        (new state, list of commands to execute)

    Examples
    --------
    >>> state, commands = apply(state, OpenDataset("routput/Dmd"))
    >>> commands
    [FetchSlice(selection=Selection(path='routput/Dmd', ...))]
    """
    if state.quit:
        return state, []

    if isinstance(action, Quit):
        return replace(state, quit=True), []
    if isinstance(action, Tick):
        return replace(state, ticks=state.ticks + 1), []
    if isinstance(action, FetchCompleted):
        return _fetch_completed(state, action)
    if isinstance(action, OpenDataset):
        return _open_dataset(state, action.path, _parent_browsing(state.mode))
    if isinstance(action, ShowHelp):
        if isinstance(state.mode, (Help, Error)):
            return state, []
        return replace(state, mode=Help(previous=state.mode)), []

    handler = _MODE_HANDLERS[type(state.mode)]
    return handler(state, state.mode, action)


def _fetch_completed(state: SessionState, action: FetchCompleted) -> Result:
    view = state.viewing
    if view is None or view.selection != action.key:
        # stale result for a window that is no longer shown
        return state, []

    if action.error is not None:
        message = str(action.error) or type(action.error).__name__
        if isinstance(state.mode, Error):
            return replace(state, mode=replace(state.mode, message=message)), []
        return replace(state, mode=Error(message=message, previous=state.mode)), []

    view = replace(view, data=action.data, data_key=action.key)
    return replace(state, mode=_replace_viewing(state.mode, view)), []


def _open_dataset(state: SessionState, path: str, parent: Browsing) -> Result:
    meta = state.catalog.get(path)
    if meta is None:
        return replace(state, mode=Error(f"dataset not found: {path}", previous=state.mode)), []

    row_axis = 0
    col_axis = max(meta.ndim - 1, 0)
    window = SliceWindow.default(meta.shape, row_axis, col_axis, state.limits)
    selection = Selection(path, window)
    view = Viewing(
        selection=selection,
        row_axis=row_axis,
        col_axis=col_axis,
        cursor=_window_cursor(window),
        parent=parent,
    )
    return replace(state, mode=view), [FetchSlice(selection)]


# -----------------------------------------------------------------------------
# Browsing
# -----------------------------------------------------------------------------

def _browsing(state: SessionState, mode: Browsing, action: Action) -> Result:
    if isinstance(action, MoveCursor):
        count = len(state.catalog.filter(mode.filter))
        cursor = _clamp(mode.cursor + action.delta, 0, max(count - 1, 0))
        return replace(state, mode=replace(mode, cursor=cursor)), []

    if isinstance(action, SetFilter):
        return replace(state, mode=Browsing(cursor=0, filter=action.text)), []

    if isinstance(action, StartSearch):
        return replace(state, mode=Searching(text=mode.filter, previous=mode)), []

    if isinstance(action, Confirm):
        paths = state.catalog.filter(mode.filter)
        if not paths:
            return state, []
        path = paths[_clamp(mode.cursor, 0, len(paths) - 1)]
        return _open_dataset(state, path, mode)

    return state, []


# -----------------------------------------------------------------------------
# Searching
# -----------------------------------------------------------------------------

def _searching(state: SessionState, mode: Searching, action: Action) -> Result:
    if isinstance(action, SetFilter):
        return replace(state, mode=replace(mode, text=action.text)), []

    if isinstance(action, Confirm):
        return replace(state, mode=Browsing(cursor=0, filter=mode.text)), []

    if isinstance(action, Cancel):
        return replace(state, mode=mode.previous), []

    return state, []


# -----------------------------------------------------------------------------
# Viewing
# -----------------------------------------------------------------------------

def _resolve_axis(view: Viewing, axis) -> Optional[int]:
    if axis == ROWS:
        axis = view.row_axis
    elif axis == COLS:
        axis = view.col_axis
    if not isinstance(axis, int) or not 0 <= axis < view.window.ndim:
        return None
    return axis


def _with_window(state: SessionState, view: Viewing, window: SliceWindow,
                 cursor: Tuple[int, ...], **changes) -> Result:
    """Move `view` to `window`, fetching it when the window changed."""
    selection = Selection(view.path, window)
    new_view = replace(view, selection=selection, cursor=_window_cursor(window, cursor), **changes)
    commands = [FetchSlice(selection)] if selection != view.selection else []
    return replace(state, mode=new_view), commands


def _scroll(state: SessionState, view: Viewing, meta: DatasetMeta, delta: int, axis) -> Result:
    axis = _resolve_axis(view, axis)
    if axis is None:
        return state, []

    window = view.window.shift(axis, delta, meta.shape[axis])
    cursor = list(view.cursor)
    cursor[axis] += delta
    return _with_window(state, view, window, tuple(cursor))


def _cycle_index(state: SessionState, view: Viewing, meta: DatasetMeta, dim: int, delta: int) -> Result:
    window = view.window
    if not 0 <= dim < window.ndim or window.is_range(dim) or meta.shape[dim] == 0:
        return state, []

    index = (window.index(dim) + delta) % meta.shape[dim]
    cursor = list(view.cursor)
    cursor[dim] = index
    return _with_window(state, view, window.with_selector(dim, index), tuple(cursor))


def _cycle_axis(state: SessionState, view: Viewing, meta: DatasetMeta, which: str, delta: int) -> Result:
    ndim = meta.ndim
    if ndim < 2 or delta == 0:
        return state, []

    moving, other = (view.row_axis, view.col_axis) if which == ROWS else (view.col_axis, view.row_axis)
    step = 1 if delta > 0 else -1
    axis = moving
    for _ in range(abs(delta)):
        axis = (axis + step) % ndim
        if axis == other:
            axis = (axis + step) % ndim

    row_axis, col_axis = (axis, other) if which == ROWS else (other, axis)
    window = SliceWindow.default(meta.shape, row_axis, col_axis, state.limits, fixed=view.cursor)
    return _with_window(state, view, window, _window_cursor(window), row_axis=row_axis, col_axis=col_axis)


def _viewing(state: SessionState, view: Viewing, action: Action) -> Result:
    meta = state.catalog[view.path]

    if isinstance(action, ScrollSlice):
        return _scroll(state, view, meta, action.delta, action.axis)

    if isinstance(action, MoveCursor):
        return _scroll(state, view, meta, action.delta, ROWS)

    if isinstance(action, CycleIndex):
        return _cycle_index(state, view, meta, action.dim, action.delta)

    if isinstance(action, CycleAxis):
        return _cycle_axis(state, view, meta, action.which, action.delta)

    if isinstance(action, ToggleFormat):
        return replace(state, mode=replace(view, formatted=not view.formatted)), []

    if isinstance(action, ToggleTotals):
        return replace(state, mode=replace(view, totals=not view.totals)), []

    if isinstance(action, TogglePlot):
        return replace(state, mode=replace(view, plot=not view.plot)), []

    if isinstance(action, Reload):
        return state, [FetchSlice(view.selection, refresh=True)]

    if isinstance(action, Cancel):
        return replace(state, mode=view.parent), []

    return state, []


# -----------------------------------------------------------------------------
# Overlays
# -----------------------------------------------------------------------------

def _overlay(state: SessionState, mode: Union[Help, Error], action: Action) -> Result:
    if isinstance(action, (Cancel, Confirm)):
        return replace(state, mode=mode.previous), []
    return state, []


_MODE_HANDLERS: Dict[type, Callable[[SessionState, Any, Action], Result]] = {
    Browsing: _browsing,
    Searching: _searching,
    Viewing: _viewing,
    Help: _overlay,
    Error: _overlay,
}
