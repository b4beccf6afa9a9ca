"""
Screen Layout Module

This module turns a session state into a frame: a list of rectangular
panels whose lines are already laid out, truncated and styled. The terminal
only has to copy them to the screen.

`render(state, width, height)` is a pure function; rendering the same state
twice yields equal frames.

Panels
------
CATALOG    dataset listing (Browsing, Searching)
SEARCH     filter input line (Searching)
SUMMARY    metadata of the viewed dataset (Viewing)
TABLE      slice values (Viewing)
PLOT       sparkline of the cursor row (Viewing, plot on)
HELP       key binding overlay
ERROR      error message overlay
STATUS     bottom status bar, always present
TOO_SMALL  replaces everything below the minimum terminal size
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
from rich.cells import cell_len, chop_cells, set_cell_size

from h5viz.config import MIN_HEIGHT, MIN_WIDTH
from h5viz.core.catalog import DatasetMeta
from h5viz.state import (
    Browsing,
    Error,
    Help,
    Mode,
    Searching,
    SessionState,
    Viewing,
    base_mode,
)
from h5viz.utils.metadata import format_shape, format_value, sparkline, summary_lines

# Table geometry
LABEL_WIDTH = 20
CELL_WIDTH = 9

SPINNER = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
ELLIPSIS = "…"


# =============================================================================
# Frame Types
# =============================================================================

class PanelKind(Enum):
    CATALOG = 'catalog'
    SEARCH = 'search'
    SUMMARY = 'summary'
    TABLE = 'table'
    PLOT = 'plot'
    HELP = 'help'
    ERROR = 'error'
    STATUS = 'status'
    TOO_SMALL = 'too_small'


# Panels drawn without a border
BORDERLESS = frozenset({PanelKind.STATUS, PanelKind.TOO_SMALL})


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class Span:
    """A run of text drawn with one style."""
    text: str
    style: str = 'normal'


@dataclass(frozen=True)
class Line:
    spans: Tuple[Span, ...] = ()

    @property
    def text(self) -> str:
        return "".join(span.text for span in self.spans)

    @property
    def width(self) -> int:
        return cell_len(self.text)


@dataclass(frozen=True)
class Panel:
    """
    One rectangular region of the frame.

    Attributes
    ----------
    kind : PanelKind
        What the panel shows
    rect : Rect
        Outer rectangle, border included
    title : str
        Title drawn into the top border
    lines : tuple of Line
        Content lines, each exactly as wide as the inner rectangle
    """
    kind: PanelKind
    rect: Rect
    title: str = ""
    lines: Tuple[Line, ...] = ()

    @property
    def bordered(self) -> bool:
        return self.kind not in BORDERLESS

    @property
    def inner(self) -> Rect:
        if not self.bordered:
            return self.rect
        r = self.rect
        return Rect(r.x + 1, r.y + 1, max(r.width - 2, 0), max(r.height - 2, 0))


@dataclass(frozen=True)
class Frame:
    width: int
    height: int
    panels: Tuple[Panel, ...] = ()

    @property
    def kinds(self) -> List[PanelKind]:
        return [panel.kind for panel in self.panels]

    def panel(self, kind: PanelKind) -> Optional[Panel]:
        for panel in self.panels:
            if panel.kind == kind:
                return panel
        return None


# =============================================================================
# Text Fitting
# =============================================================================

def fit(text: str, width: int, align: str = 'left') -> str:
    """
    Pad or truncate `text` to exactly `width` terminal cells.

    Wide characters are measured with rich.cells; truncated text ends with
    an ellipsis.

    Examples
    --------
    >>> fit("temperature", 6)
    'tempe…'
    >>> fit("42", 5, align='right')
    '   42'
    """
    if width <= 0:
        return ""
    length = cell_len(text)
    if length > width:
        if width == 1:
            return set_cell_size(text, 1)
        return set_cell_size(text, width - 1) + ELLIPSIS
    padding = " " * (width - length)
    return padding + text if align == 'right' else text + padding


def _line(width: int, *parts: Tuple[str, str]) -> Line:
    """Build a line from (text, style) parts, clipped and padded to `width`."""
    spans = []
    remaining = width
    for text, style in parts:
        if remaining <= 0:
            break
        length = cell_len(text)
        if length > remaining:
            text = fit(text, remaining)
            length = remaining
        if text:
            spans.append(Span(text, style))
        remaining -= length
    if remaining > 0:
        spans.append(Span(" " * remaining))
    return Line(tuple(spans))


def _text_line(text: str, width: int, style: str = 'normal') -> Line:
    return Line((Span(fit(text, width), style),)) if width > 0 else Line()


def _wrap(text: str, width: int) -> List[str]:
    if width <= 0:
        return []
    lines = []
    for paragraph in text.splitlines() or [""]:
        lines.extend(chop_cells(paragraph, width) or [""])
    return lines


def _bordered(kind: PanelKind, rect: Rect, title: str, lines: Sequence[Line]) -> Panel:
    """Create a bordered panel, dropping lines that do not fit."""
    visible = max(rect.height - 2, 0)
    return Panel(kind, rect, fit(title, max(rect.width - 4, 0)).rstrip(), tuple(lines[:visible]))


def _scroll_offset(cursor: int, visible: int, total: int) -> int:
    """First visible item so that `cursor` is on screen."""
    if visible <= 0 or total <= visible:
        return 0
    return max(0, min(cursor - visible + 1, total - visible))


# =============================================================================
# Catalog
# =============================================================================

CATALOG_COLUMNS = ('Name', 'Dims', 'Shape', 'Units', 'Doc')


def _catalog_panel(state: SessionState, rect: Rect, cursor: int, highlight: bool) -> Panel:
    paths = state.filtered_paths()
    metas = [state.catalog[path] for path in paths]
    inner_w = max(rect.width - 2, 0)
    inner_h = max(rect.height - 2, 0)

    rows = [
        (m.path, ", ".join(m.dims), format_shape(m.shape), m.units, m.doc)
        for m in metas
    ]
    caps = (max(10, inner_w * 2 // 5), inner_w // 4, inner_w // 5, 10)
    widths = []
    remaining = inner_w
    for i, cap in enumerate(caps):
        natural = max([cell_len(CATALOG_COLUMNS[i])] + [cell_len(row[i]) for row in rows])
        col_w = max(0, min(natural, cap, remaining - 1))
        widths.append(col_w)
        remaining -= col_w + 1
    widths.append(max(remaining, 0))

    def row_line(values, style):
        parts = []
        for value, col_w in zip(values, widths):
            if col_w > 0:
                parts.append((fit(value, col_w) + " ", style))
        return _line(inner_w, *parts)

    lines = [row_line(CATALOG_COLUMNS, 'header')]
    visible = max(inner_h - 1, 0)
    if not rows:
        lines.append(_text_line("no datasets match", inner_w, 'muted'))
    else:
        offset = _scroll_offset(cursor, visible, len(rows))
        for index in range(offset, min(offset + visible, len(rows))):
            style = 'selected' if highlight and index == cursor else 'normal'
            lines.append(row_line(rows[index], style))

    title = f"Datasets {len(paths)}/{len(state.catalog)}"
    return _bordered(PanelKind.CATALOG, rect, title, lines)


def _search_panel(text: str, rect: Rect) -> Panel:
    inner_w = max(rect.width - 2, 0)
    line = _line(inner_w, ("/", 'accent'), (text, 'normal'), ("█", 'accent'))
    return _bordered(PanelKind.SEARCH, rect, "Filter", [line])


# =============================================================================
# Viewing
# =============================================================================

def _summary_panel(meta: DatasetMeta, rect: Rect, lines: List[str]) -> Panel:
    inner_w = max(rect.width - 2, 0)
    styled = [_text_line(lines[0], inner_w, 'accent')]
    styled.extend(_text_line(text, inner_w) for text in lines[1:])
    return _bordered(PanelKind.SUMMARY, rect, meta.path, styled)


def _oriented(view: Viewing, meta: DatasetMeta):
    """
    Loaded data as a 2-D (rows, cols) DataArray, or None.

    1-D data becomes a single column under a dimension name not used by the
    data. The window the data was loaded for is returned too, since it may
    be older than the current one.
    """
    data = view.data
    key = view.data_key
    if data is None or key is None or key.path != view.path:
        return None, None

    window = key.window
    ranges = [axis for axis in range(window.ndim) if window.is_range(axis)]
    if data.ndim == 0:
        return data.expand_dims([_fresh_dim(data, 'row'), _fresh_dim(data, 'col')]), window
    if view.row_axis not in ranges or view.col_axis not in ranges:
        return None, None

    row_dim = data.dims[ranges.index(view.row_axis)]
    if _single_column(view):
        return data.transpose(row_dim).expand_dims(_fresh_dim(data, 'value'), axis=1), window

    col_dim = data.dims[ranges.index(view.col_axis)]
    extra = [dim for dim in data.dims if dim not in (row_dim, col_dim)]
    if extra:
        # only zero-length fixed dimensions are read as ranges: nothing to show
        data = data.isel({row_dim: slice(0, 0)}).sum(extra)
    return data.transpose(row_dim, col_dim), window


def _single_column(view: Viewing) -> bool:
    return view.row_axis == view.col_axis


def _fresh_dim(data, base: str) -> str:
    name = base
    while name in data.dims or name in data.coords:
        name = f"_{name}"
    return name


def _labels(array, axis: int) -> List[str]:
    dim = array.dims[axis]
    if dim in array.coords:
        return [str(v) for v in array.coords[dim].values]
    return [str(i) for i in range(array.shape[axis])]


def _table_panel(view: Viewing, meta: DatasetMeta, rect: Rect) -> Panel:
    inner_w = max(rect.width - 2, 0)
    inner_h = max(rect.height - 2, 0)
    title = f"{meta.path} {view.window.describe()}"

    array, window = _oriented(view, meta)
    if array is None:
        lines = [_text_line("loading…", inner_w, 'muted')]
        return _bordered(PanelKind.TABLE, rect, title, lines)

    values = np.asarray(array.values, dtype=float)
    n_rows, n_cols = values.shape
    row_labels = _labels(array, 0)
    single_column = _single_column(view)
    col_labels = [meta.units or "value"] if single_column else _labels(array, 1)

    totals = view.totals and n_rows > 0
    total_col = totals and not single_column
    with np.errstate(all='ignore'):
        row_totals = np.nansum(values, axis=1) if total_col else None
        col_totals = np.nansum(values, axis=0) if totals else None

    row_start = window.extent(view.row_axis)[0] if window.ndim else 0
    col_start = window.extent(view.col_axis)[0] if window.ndim and not single_column else 0
    cur_row = view.cursor[view.row_axis] - row_start if view.cursor else 0
    cur_col = view.cursor[view.col_axis] - col_start if view.cursor and not single_column else 0

    label_w = min(LABEL_WIDTH, inner_w)
    cells_w = inner_w - label_w - (CELL_WIDTH if total_col else 0)
    visible_cols = max(cells_w // CELL_WIDTH, 1 if inner_w > label_w else 0)
    visible_rows = max(inner_h - 1 - (1 if totals else 0), 0)

    first_col = _scroll_offset(cur_col, visible_cols, n_cols)
    first_row = _scroll_offset(cur_row, visible_rows, n_rows)
    cols = range(first_col, min(first_col + visible_cols, n_cols))

    def cell(text, style):
        return (fit(text, CELL_WIDTH, align='right'), style)

    corner = "value" if single_column else f"{array.dims[0]}＼{array.dims[1]}"
    header = [(fit(corner, label_w), 'header')]
    header.extend(cell(col_labels[c], 'header') for c in cols)
    if total_col:
        header.append(cell("Total", 'header'))
    lines = [_line(inner_w, *header)]

    for r in range(first_row, min(first_row + visible_rows, n_rows)):
        parts = [(fit(row_labels[r], label_w), 'label')]
        for c in cols:
            style = 'selected' if (r, c) == (cur_row, cur_col) else 'normal'
            parts.append(cell(format_value(values[r, c], view.formatted), style))
        if total_col:
            parts.append(cell(format_value(row_totals[r], view.formatted), 'total'))
        lines.append(_line(inner_w, *parts))
    if n_rows == 0:
        lines.append(_text_line("no data", inner_w, 'muted'))

    if totals and inner_h > 1:
        parts = [(fit("Total", label_w), 'total')]
        parts.extend(cell(format_value(col_totals[c], view.formatted), 'total') for c in cols)
        if total_col:
            parts.append(cell(format_value(np.nansum(values), view.formatted), 'total'))
        lines = lines[:inner_h - 1] + [_line(inner_w, *parts)]

    if view.loading:
        title += " (loading)"
    return _bordered(PanelKind.TABLE, rect, title, lines)


def _plot_panel(view: Viewing, meta: DatasetMeta, rect: Rect) -> Panel:
    inner_w = max(rect.width - 2, 0)
    array, window = _oriented(view, meta)
    if array is None:
        lines = [_text_line("loading…", inner_w, 'muted')]
        return _bordered(PanelKind.PLOT, rect, meta.path, lines)

    values = np.asarray(array.values, dtype=float)
    if values.size == 0:
        lines = [_text_line("no data", inner_w, 'muted')]
        return _bordered(PanelKind.PLOT, rect, meta.path, lines)

    if _single_column(view):
        series = values[:, 0]
        title = f"{meta.path} along {meta.dims[view.row_axis] if meta.ndim else 'value'}"
        labels = _labels(array, 0)
    else:
        row_start = window.extent(view.row_axis)[0]
        row = min(max(view.cursor[view.row_axis] - row_start, 0), values.shape[0] - 1)
        series = values[row, :]
        title = f"{meta.path} {meta.dims[view.row_axis]}={_labels(array, 0)[row]}"
        labels = _labels(array, 1)

    finite = series[np.isfinite(series)]
    lo = format_value(finite.min(), formatted=False) if finite.size else "NaN"
    hi = format_value(finite.max(), formatted=False) if finite.size else "NaN"
    axis = ""
    if labels:
        first, last = labels[0], labels[-1]
        axis = first + " " * max(inner_w - cell_len(first) - cell_len(last), 1) + last

    lines = [
        _text_line(f"max {hi}", inner_w, 'muted'),
        _text_line(sparkline(series, inner_w), inner_w, 'spark'),
        _text_line(f"min {lo}", inner_w, 'muted'),
        _text_line(axis, inner_w, 'label'),
    ]
    return _bordered(PanelKind.PLOT, rect, title, lines)


def _viewing_panels(state: SessionState, view: Viewing, rect: Rect) -> List[Panel]:
    meta = state.catalog[view.path]
    nbytes = int(view.data.nbytes) if view.data is not None else 0
    summary = summary_lines(meta, view.window, view.row_axis, view.col_axis, nbytes)

    summary_h = min(len(summary) + 2, max(rect.height // 2, 3))
    summary_rect = Rect(rect.x, rect.y, rect.width, summary_h)
    body_rect = Rect(rect.x, rect.y + summary_h, rect.width, rect.height - summary_h)

    panels = [_summary_panel(meta, summary_rect, summary)]
    if body_rect.height >= 3:
        if view.plot:
            panels.append(_plot_panel(view, meta, body_rect))
        else:
            panels.append(_table_panel(view, meta, body_rect))
    return panels


# =============================================================================
# Overlays
# =============================================================================

BROWSING_HELP = [
    ("↑/k ↓/j", "move cursor"),
    ("PgUp/PgDn", "move by page"),
    ("Home/End", "first / last dataset"),
    ("Enter", "open dataset"),
    ("/", "filter datasets"),
    ("Esc", "clear filter"),
]

VIEWING_HELP = [
    ("↑/k ↓/j", "scroll rows"),
    ("←/h →/l", "scroll columns"),
    ("PgUp/PgDn", "scroll rows by page"),
    ("Home/End", "first / last column"),
    ("1-9", "next index of dimension n"),
    ("Shift 1-9", "previous index of dimension n"),
    ("[ ]", "change column dimension"),
    ("{ }", "change row dimension"),
    (".", "toggle number formatting"),
    ("t", "toggle totals"),
    ("p", "toggle plot"),
    ("r", "reload slice"),
    ("Esc", "back to datasets"),
]

COMMON_HELP = [
    ("?", "this help"),
    ("q / Ctrl-C", "quit"),
]


def _centered(area: Rect, width: int, height: int) -> Rect:
    width = max(min(width, area.width), 0)
    height = max(min(height, area.height), 0)
    return Rect(area.x + (area.width - width) // 2, area.y + (area.height - height) // 2, width, height)


def _help_panel(previous: Mode, area: Rect) -> Panel:
    bindings = VIEWING_HELP if isinstance(base_mode(previous), Viewing) else BROWSING_HELP
    bindings = bindings + COMMON_HELP
    rect = _centered(area, 56, len(bindings) + 2)
    inner_w = max(rect.width - 2, 0)
    key_w = min(14, inner_w)
    lines = [
        _line(inner_w, (fit(key, key_w), 'accent'), (text, 'normal'))
        for key, text in bindings
    ]
    return _bordered(PanelKind.HELP, rect, "Help (Esc to close)", lines)


def _error_panel(message: str, area: Rect) -> Panel:
    width = min(max(cell_len(message) + 4, 30), area.width - 4, 72)
    wrapped = _wrap(message, max(width - 2, 1))
    rect = _centered(area, width, len(wrapped) + 4)
    inner_w = max(rect.width - 2, 0)
    lines = [_text_line(text, inner_w, 'error') for text in wrapped]
    lines.append(_text_line("", inner_w))
    lines.append(_text_line("Esc / Enter to dismiss", inner_w, 'muted'))
    return _bordered(PanelKind.ERROR, rect, "Error", lines)


# =============================================================================
# Status Bar
# =============================================================================

def _status_panel(state: SessionState, rect: Rect) -> Panel:
    mode = state.mode
    base = base_mode(mode)
    view = state.viewing

    if isinstance(mode, Error):
        name, hints = "ERROR", "Esc back"
    elif isinstance(mode, Help):
        name, hints = "HELP", "Esc back"
    elif isinstance(base, Searching):
        name, hints = "SEARCH", "Enter apply  Esc cancel"
    elif isinstance(base, Viewing):
        name, hints = "VIEW", "arrows scroll  1-9 index  [ ] { } axes  p plot  ? help  q quit"
    else:
        name, hints = "BROWSE", "Enter open  / filter  ? help  q quit"

    parts = [(f" {name} ", 'header')]
    if view is not None and view.loading:
        parts.append((f" {SPINNER[state.ticks % len(SPINNER)]} loading ", 'accent'))
    if isinstance(base, Browsing) and base.filter:
        parts.append((f" filter: {base.filter} ", 'muted'))

    hint_w = rect.width - cell_len("".join(text for text, _ in parts)) - 1
    if hint_w > 0:
        parts.append((" " + fit(hints, hint_w, align='right'), 'muted'))
    line = _line(rect.width, *parts)
    return Panel(PanelKind.STATUS, rect, "", (line,) if rect.height > 0 else ())


# =============================================================================
# Render
# =============================================================================

def _mode_panels(state: SessionState, mode: Mode, area: Rect) -> List[Panel]:
    if isinstance(mode, Help):
        return _mode_panels(state, mode.previous, area) + [_help_panel(mode.previous, area)]
    if isinstance(mode, Error):
        return _mode_panels(state, mode.previous, area) + [_error_panel(mode.message, area)]
    if isinstance(mode, Searching):
        search_rect = Rect(area.x, area.y, area.width, 3)
        list_rect = Rect(area.x, area.y + 3, area.width, area.height - 3)
        return [
            _search_panel(mode.text, search_rect),
            _catalog_panel(state, list_rect, cursor=0, highlight=False),
        ]
    if isinstance(mode, Viewing):
        return _viewing_panels(state, mode, area)
    return [_catalog_panel(state, area, cursor=mode.cursor, highlight=True)]


def _too_small(width: int, height: int) -> Frame:
    rect = Rect(0, 0, width, height)
    message = f"Terminal too small: {width}x{height}, need {MIN_WIDTH}x{MIN_HEIGHT}"
    lines = [_text_line(text, width, 'error') for text in _wrap(message, width)][:height]
    return Frame(width, height, (Panel(PanelKind.TOO_SMALL, rect, "", tuple(lines)),))


def render(state: SessionState, width: int, height: int) -> Frame:
    """
    Lay out the whole screen for `state`.

    Parameters
    ----------
    state : SessionState
        State to draw
    width, height : int
        Terminal size in cells

    Returns
    -------
    Frame
        Panels in drawing order; overlays come last

    Examples
    --------
    >>> frame = render(state, 80, 24)
    >>> frame.kinds
    [<PanelKind.CATALOG: 'catalog'>, <PanelKind.STATUS: 'status'>]
    """
    width = max(int(width), 0)
    height = max(int(height), 0)
    if width < MIN_WIDTH or height < MIN_HEIGHT:
        return _too_small(width, height)

    body = Rect(0, 0, width, height - 1)
    panels = _mode_panels(state, state.mode, body)
    panels.append(_status_panel(state, Rect(0, height - 1, width, 1)))
    return Frame(width, height, tuple(panels))
