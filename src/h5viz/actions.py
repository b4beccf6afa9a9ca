"""
Domain Actions and Commands

Actions are what the session state machine understands; they are derived
from raw events by the key map. Commands are the only effects the state
machine asks for; the session loop executes them against the dataset cache.
"""

from dataclasses import dataclass, field
from typing import Any, Hashable, Optional, Union

from h5viz.core.selection import Selection

# Symbolic axes for ScrollSlice / CycleAxis, resolved against the view
ROWS = 'rows'
COLS = 'cols'


# =============================================================================
# Actions
# =============================================================================

@dataclass(frozen=True)
class MoveCursor:
    delta: int


@dataclass(frozen=True)
class OpenDataset:
    path: str


@dataclass(frozen=True)
class Confirm:
    """Enter: open the highlighted dataset / commit the search."""


@dataclass(frozen=True)
class SetFilter:
    text: str


@dataclass(frozen=True)
class StartSearch:
    pass


@dataclass(frozen=True)
class ScrollSlice:
    """Shift the slice window by `delta` along ROWS, COLS or a dimension index."""
    delta: int
    axis: Union[str, int] = ROWS


@dataclass(frozen=True)
class CycleIndex:
    """Step the fixed index of dimension `dim` by `delta`, wrapping around."""
    dim: int
    delta: int


@dataclass(frozen=True)
class CycleAxis:
    """Change which dimension is displayed as ROWS or COLS."""
    which: str
    delta: int


@dataclass(frozen=True)
class ToggleFormat:
    pass


@dataclass(frozen=True)
class ToggleTotals:
    pass


@dataclass(frozen=True)
class TogglePlot:
    pass


@dataclass(frozen=True)
class Reload:
    pass


@dataclass(frozen=True)
class ShowHelp:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class FetchCompleted:
    key: Hashable
    data: Any = field(default=None, compare=False)
    error: Optional[BaseException] = field(default=None, compare=False)


Action = Union[
    MoveCursor, OpenDataset, Confirm, SetFilter, StartSearch, ScrollSlice,
    CycleIndex, CycleAxis, ToggleFormat, ToggleTotals, TogglePlot, Reload,
    ShowHelp, Cancel, Quit, Tick, FetchCompleted,
]


# =============================================================================
# Commands
# =============================================================================

@dataclass(frozen=True)
class FetchSlice:
    """Load `selection`; `refresh` drops any cached copy first."""
    selection: Selection
    refresh: bool = False


Command = FetchSlice
