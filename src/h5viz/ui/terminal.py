"""
Curses Terminal Module

The terminal is the only place that touches the screen. It enters raw mode
on the alternate screen, translates curses input into events and copies
laid-out frames to the screen. The previous terminal mode is restored on
every exit path.

Examples
--------
>>> with Terminal() as term:
...     term.draw(render(state, *term.size()))
...     event = term.read(timeout=0.1)
"""

import curses
import logging
import threading
from typing import Callable, Dict, Optional, Tuple

from rich.cells import cell_len

from h5viz.errors import TerminalInitFailure
from h5viz.ui.events import Event, Key, Mouse, Resize
from h5viz.ui.layout import Frame, Panel, PanelKind

logger = logging.getLogger(__name__)

# Color pair ids
C_NORMAL = 1
C_HEADER = 2
C_ACCENT = 3
C_SELECTED = 4
C_ERROR = 5
C_MUTED = 6
C_LABEL = 7
C_TOTAL = 8
C_SPARK = 9
C_BORDER = 10

STYLE_PAIRS: Dict[str, Tuple[int, bool]] = {
    'normal': (C_NORMAL, False),
    'header': (C_HEADER, True),
    'accent': (C_ACCENT, True),
    'selected': (C_SELECTED, False),
    'error': (C_ERROR, True),
    'muted': (C_MUTED, False),
    'label': (C_LABEL, False),
    'total': (C_TOTAL, True),
    'spark': (C_SPARK, False),
}

BORDER_PAIRS: Dict[PanelKind, int] = {
    PanelKind.ERROR: C_ERROR,
    PanelKind.HELP: C_ACCENT,
    PanelKind.SEARCH: C_ACCENT,
}

KEY_NAMES: Dict[int, str] = {
    curses.KEY_UP: 'up',
    curses.KEY_DOWN: 'down',
    curses.KEY_LEFT: 'left',
    curses.KEY_RIGHT: 'right',
    curses.KEY_PPAGE: 'pageup',
    curses.KEY_NPAGE: 'pagedown',
    curses.KEY_HOME: 'home',
    curses.KEY_END: 'end',
    curses.KEY_ENTER: 'enter',
    curses.KEY_BACKSPACE: 'backspace',
    curses.KEY_DC: 'delete',
    curses.KEY_BTAB: 'backtab',
}
KEY_NAMES.update({curses.KEY_F0 + n: f'f{n}' for n in range(1, 13)})

CHAR_NAMES: Dict[str, str] = {
    '\n': 'enter',
    '\r': 'enter',
    '\x1b': 'esc',
    '\x7f': 'backspace',
    '\x08': 'backspace',
    '\t': 'tab',
}


def translate_key(ch) -> Optional[Key]:
    """
    Translate a `get_wch()` result into a Key event.

    Parameters
    ----------
    ch : str or int
        A character or a curses key code

    Returns
    -------
    Key or None
        None for key codes without a name
    """
    if isinstance(ch, int):
        name = KEY_NAMES.get(ch)
        return Key(name) if name is not None else None
    if ch in CHAR_NAMES:
        return Key(CHAR_NAMES[ch])
    code = ord(ch)
    if code < 32:
        # control characters: Ctrl-A is 1, Ctrl-C is 3, ...
        return Key(chr(code + 96), ctrl=True)
    return Key(ch)


def translate_mouse(bstate: int, x: int, y: int) -> Optional[Mouse]:
    if bstate & curses.BUTTON4_PRESSED:
        return Mouse('scroll_up', x, y)
    if bstate & getattr(curses, 'BUTTON5_PRESSED', 0):
        return Mouse('scroll_down', x, y)
    if bstate & curses.BUTTON1_CLICKED or bstate & curses.BUTTON1_PRESSED:
        return Mouse('press', x, y)
    return None


# =============================================================================
# Terminal
# =============================================================================

class Terminal:
    """
    Curses screen wrapper usable as the input reader of an EventSource.

    Reading (on the input thread) and drawing (on the session thread) are
    serialized by a lock; curses itself is not thread safe.
    """

    def __init__(self):
        self.stdscr = None
        self._lock = threading.Lock()
        self._colors = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def __enter__(self) -> 'Terminal':
        try:
            self.stdscr = curses.initscr()
            curses.noecho()
            curses.raw()
            self.stdscr.keypad(True)
            self.stdscr.nodelay(True)
            try:
                curses.curs_set(0)
            except curses.error:
                pass
            self._init_colors()
            curses.mousemask(curses.ALL_MOUSE_EVENTS | curses.REPORT_MOUSE_POSITION)
            curses.set_escdelay(25)
        except curses.error as e:
            self._restore()
            raise TerminalInitFailure(f"cannot initialise terminal: {e}") from e

        logger.info(f"Terminal initialised: {self.size()[0]}x{self.size()[1]}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._restore()
        logger.info("Terminal restored")

    def _restore(self) -> None:
        if self.stdscr is None:
            return
        try:
            self.stdscr.keypad(False)
            curses.noraw()
            curses.echo()
            curses.endwin()
        except curses.error as e:
            logger.warning(f"Terminal restore incomplete: {e}")
        self.stdscr = None

    def _init_colors(self) -> None:
        if not curses.has_colors():
            return
        curses.start_color()
        curses.use_default_colors()
        bg = -1
        for pair, fg, pair_bg in [
            (C_NORMAL, curses.COLOR_WHITE, bg),
            (C_HEADER, curses.COLOR_BLACK, curses.COLOR_CYAN),
            (C_ACCENT, curses.COLOR_CYAN, bg),
            (C_SELECTED, curses.COLOR_BLACK, curses.COLOR_WHITE),
            (C_ERROR, curses.COLOR_RED, bg),
            (C_MUTED, curses.COLOR_BLUE, bg),
            (C_LABEL, curses.COLOR_YELLOW, bg),
            (C_TOTAL, curses.COLOR_GREEN, bg),
            (C_SPARK, curses.COLOR_CYAN, bg),
            (C_BORDER, curses.COLOR_BLUE, bg),
        ]:
            curses.init_pair(pair, fg, pair_bg)
        self._colors = True

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def size(self) -> Tuple[int, int]:
        """(width, height) of the screen in cells."""
        if self.stdscr is None:
            return (0, 0)
        height, width = self.stdscr.getmaxyx()
        return (width, height)

    def read(self, timeout: float) -> Optional[Event]:
        """
        Return the next input event, or None when nothing arrived in time.

        Parameters
        ----------
        timeout : float
            Seconds to wait for input
        """
        if self.stdscr is None:
            return None
        with self._lock:
            self.stdscr.timeout(max(int(timeout * 1000), 0))
            try:
                ch = self.stdscr.get_wch()
            except curses.error:
                return None

            if ch == curses.KEY_RESIZE:
                curses.update_lines_cols()
                width, height = self.size()
                return Resize(width, height)
            if ch == curses.KEY_MOUSE:
                try:
                    _, x, y, _, bstate = curses.getmouse()
                except curses.error:
                    return None
                return translate_mouse(bstate, x, y)
        return translate_key(ch)

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def _attr(self, style: str) -> int:
        pair, bold = STYLE_PAIRS.get(style, (C_NORMAL, False))
        attr = curses.color_pair(pair) if self._colors else 0
        if style == 'selected' and not self._colors:
            attr |= curses.A_REVERSE
        if bold:
            attr |= curses.A_BOLD
        return attr

    def _addstr(self, y: int, x: int, text: str, attr: int = 0) -> None:
        height, width = self.stdscr.getmaxyx()
        if y < 0 or y >= height or x < 0 or x >= width:
            return
        try:
            self.stdscr.addstr(y, x, text, attr)
        except curses.error:
            # writing the bottom-right cell moves the cursor off screen
            pass

    def _draw_box(self, panel: Panel) -> None:
        r = panel.rect
        if r.width < 2 or r.height < 2:
            return
        attr = curses.color_pair(BORDER_PAIRS.get(panel.kind, C_BORDER)) if self._colors else 0
        self._addstr(r.y, r.x, "╭" + "─" * (r.width - 2) + "╮", attr)
        for row in range(1, r.height - 1):
            self._addstr(r.y + row, r.x, "│", attr)
            self._addstr(r.y + row, r.x + r.width - 1, "│", attr)
        self._addstr(r.y + r.height - 1, r.x, "╰" + "─" * (r.width - 2) + "╯", attr)
        if panel.title:
            self._addstr(r.y, r.x + 2, f" {panel.title} ", attr | curses.A_BOLD)

    def _clear_rect(self, panel: Panel) -> None:
        inner = panel.inner
        for row in range(inner.height):
            self._addstr(inner.y + row, inner.x, " " * inner.width)

    def _draw_lines(self, panel: Panel) -> None:
        inner = panel.inner
        for row, line in enumerate(panel.lines[:inner.height]):
            x = inner.x
            for span in line.spans:
                self._addstr(inner.y + row, x, span.text, self._attr(span.style))
                x += cell_len(span.text)

    def _draw_panel(self, panel: Panel) -> None:
        self._clear_rect(panel)
        self._draw_box(panel)
        self._draw_lines(panel)

    def _draw_status(self, panel: Panel) -> None:
        self._draw_lines(panel)

    def draw(self, frame: Frame) -> None:
        """Replace the screen contents with `frame`."""
        if self.stdscr is None:
            return
        with self._lock:
            self.stdscr.erase()
            for panel in frame.panels:
                PANEL_DRAWERS[panel.kind](self, panel)
            self.stdscr.noutrefresh()
            curses.doupdate()


PANEL_DRAWERS: Dict[PanelKind, Callable[[Terminal, Panel], None]] = {
    PanelKind.CATALOG: Terminal._draw_panel,
    PanelKind.SEARCH: Terminal._draw_panel,
    PanelKind.SUMMARY: Terminal._draw_panel,
    PanelKind.TABLE: Terminal._draw_panel,
    PanelKind.PLOT: Terminal._draw_panel,
    PanelKind.HELP: Terminal._draw_panel,
    PanelKind.ERROR: Terminal._draw_panel,
    PanelKind.STATUS: Terminal._draw_status,
    PanelKind.TOO_SMALL: Terminal._draw_status,
}
