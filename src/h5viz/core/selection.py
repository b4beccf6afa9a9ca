"""
Slice Window Module

A slice window picks, for every dimension of a dataset, either a single
fixed index or a half-open range [start, stop). Windows are immutable and
hashable so that (path, window) pairs can key the dataset cache.
"""

from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple, Union

# A fixed index or a (start, stop) range
Selector = Union[int, Tuple[int, int]]


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(value, hi))


@dataclass(frozen=True)
class SliceWindow:
    """
    Per-dimension selection of a dataset.

    Attributes
    ----------
    selectors : tuple
        One entry per dimension: an int (fixed index) or a (start, stop) tuple

    Examples
    --------
    >>> w = SliceWindow.default((120, 5), row_axis=0, col_axis=1, limits=(10, 10))
    >>> w.describe()
    '[0:10, 0:5]'
    >>> w.shift(0, 115, 120).describe()
    '[110:120, 0:5]'
    """
    selectors: Tuple[Selector, ...]

    @classmethod
    def default(
        cls,
        shape: Sequence[int],
        row_axis: int,
        col_axis: int,
        limits: Tuple[int, int],
        fixed: Optional[Sequence[int]] = None,
    ) -> 'SliceWindow':
        """
        Build the initial window for a dataset.

        The row and column axes span [0, min(size, limit)); every other
        dimension is fixed at `fixed[dim]` (clamped) or 0. A zero-length
        dimension has no index to fix and gets the empty range (0, 0).

        Parameters
        ----------
        shape : sequence of int
            Dataset shape
        row_axis, col_axis : int
            Displayed axes (equal for 1-D datasets)
        limits : tuple of int
            (max rows, max cols) of the window
        fixed : sequence of int, optional
            Index to keep for each non-displayed dimension
        """
        row_limit, col_limit = limits
        selectors = []
        for dim, size in enumerate(shape):
            if dim == row_axis:
                selectors.append((0, min(size, row_limit)))
            elif dim == col_axis:
                selectors.append((0, min(size, col_limit)))
            elif size == 0:
                selectors.append((0, 0))
            else:
                index = fixed[dim] if fixed is not None else 0
                selectors.append(_clamp(index, 0, max(size - 1, 0)))
        return cls(tuple(selectors))

    @property
    def ndim(self) -> int:
        return len(self.selectors)

    def is_range(self, axis: int) -> bool:
        return isinstance(self.selectors[axis], tuple)

    def extent(self, axis: int) -> Tuple[int, int]:
        """Half-open [start, stop) covered along `axis`."""
        sel = self.selectors[axis]
        if isinstance(sel, tuple):
            return sel
        return (sel, sel + 1)

    def index(self, axis: int) -> int:
        """Start index along `axis` (the fixed index for fixed dimensions)."""
        return self.extent(axis)[0]

    def shift(self, axis: int, delta: int, size: int) -> 'SliceWindow':
        """
        Move the selection along `axis` by `delta`, clamped to [0, size).

        Ranges keep their length; fixed indices move by `delta`.
        """
        sel = self.selectors[axis]
        if isinstance(sel, tuple):
            start, stop = sel
            length = stop - start
            new_start = _clamp(start + delta, 0, max(size - length, 0))
            new_sel: Selector = (new_start, new_start + length)
        else:
            new_sel = _clamp(sel + delta, 0, max(size - 1, 0))
        return self.with_selector(axis, new_sel)

    def with_selector(self, axis: int, selector: Selector) -> 'SliceWindow':
        selectors = list(self.selectors)
        selectors[axis] = selector
        return replace(self, selectors=tuple(selectors))

    def fits(self, shape: Sequence[int]) -> bool:
        """True when every selector lies inside [0, size) of `shape`."""
        if len(shape) != len(self.selectors):
            return False
        for axis, size in enumerate(shape):
            start, stop = self.extent(axis)
            if self.is_range(axis):
                # empty ranges are allowed for zero-length dimensions
                if not 0 <= start <= stop <= size:
                    return False
            elif not 0 <= start < size:
                return False
        return True

    def indexer(self) -> Tuple[Union[int, slice], ...]:
        """Tuple of ints and slices usable for h5py / numpy indexing."""
        return tuple(
            slice(*sel) if isinstance(sel, tuple) else sel
            for sel in self.selectors
        )

    def describe(self) -> str:
        parts = [
            f"{sel[0]}:{sel[1]}" if isinstance(sel, tuple) else str(sel)
            for sel in self.selectors
        ]
        return "[" + ", ".join(parts) + "]"


@dataclass(frozen=True)
class Selection:
    """
    A dataset path together with its slice window.

    Selections double as dataset cache keys.
    """
    path: str
    window: SliceWindow

    def __str__(self) -> str:
        return f"{self.path}{self.window.describe()}"
