"""
Metadata Formatting Utilities

Functions for formatting cell values, sizes, sparklines and the dataset
summary shown above the table.
"""

import math
from typing import List, Sequence

import numpy as np

from h5viz.core.catalog import DatasetMeta
from h5viz.core.selection import SliceWindow

SPARK_CHARS = "▁▂▃▄▅▆▇█"


def format_value(value, formatted: bool = True) -> str:
    """
    Format a table cell.

    Parameters
    ----------
    value : number
        Cell value
    formatted : bool, optional
        When True zeros are shown as '-' and whole numbers without decimals

    Returns
    -------
    str
        Display text

    Examples
    --------
    >>> format_value(0.0)
    '-'
    >>> format_value(3.0)
    '3'
    >>> format_value(3.14159, formatted=False)
    '3.14'
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value)

    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "inf" if number > 0 else "-inf"

    if formatted:
        if number == 0.0:
            return "-"
        if number.is_integer() and abs(number) < 1e15:
            return f"{int(number)}"
    return f"{number:.2f}"


def format_data_size(size_bytes: int) -> str:
    """
    Format data size in human-readable format.

    Parameters
    ----------
    size_bytes : int
        Size in bytes

    Returns
    -------
    str
        Formatted size string (e.g., "1.5 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"


def format_shape(shape: Sequence[int]) -> str:
    return " × ".join(str(n) for n in shape) if shape else "scalar"


def sparkline(values: Sequence[float], width: int) -> str:
    """
    Render values as a one-line bar chart of at most `width` cells.

    Longer series are reduced by averaging consecutive buckets; NaN values
    are drawn as spaces.
    """
    if width <= 0:
        return ""
    data = np.asarray(values, dtype=float).ravel()
    if data.size == 0:
        return "─" * width

    if data.size > width:
        with np.errstate(all='ignore'):
            data = np.array([
                np.nanmean(chunk) if np.isfinite(chunk).any() else np.nan
                for chunk in np.array_split(data, width)
            ])

    finite = data[np.isfinite(data)]
    if finite.size == 0:
        return " " * len(data)
    lo, hi = float(finite.min()), float(finite.max())
    rng = hi - lo or 1.0

    out = []
    for v in data:
        if not np.isfinite(v):
            out.append(" ")
        else:
            idx = int((v - lo) / rng * (len(SPARK_CHARS) - 1))
            out.append(SPARK_CHARS[idx])
    return "".join(out)


def summary_lines(
    meta: DatasetMeta,
    window: SliceWindow,
    row_axis: int,
    col_axis: int,
    nbytes: int = 0
) -> List[str]:
    """
    Build the text lines of the dataset summary panel.

    Parameters
    ----------
    meta : DatasetMeta
        Dataset shown
    window : SliceWindow
        Current window
    row_axis, col_axis : int
        Displayed axes
    nbytes : int, optional
        Size of the loaded slice (0 when not loaded)

    Returns
    -------
    list of str
        Summary lines, most important first
    """
    lines = [meta.path]
    if meta.doc:
        lines.append(meta.doc)

    info = f"shape {format_shape(meta.shape)}  type {meta.dtype}"
    if meta.units:
        info += f"  units {meta.units}"
    lines.append(info)

    parts = []
    for axis, dim in enumerate(meta.dims):
        if axis == row_axis:
            parts.append(f"{dim} [rows]")
        elif axis == col_axis:
            parts.append(f"{dim} [cols]")
        elif meta.shape[axis] == 0:
            parts.append(f"{dim} (empty)")
        else:
            index = window.index(axis)
            parts.append(f"{dim}={meta.label(axis, index)} ({index + 1}/{meta.shape[axis]})")
    if parts:
        lines.append("  ".join(parts))

    window_text = f"window {window.describe()}"
    if nbytes:
        window_text += f"  {format_data_size(nbytes)}"
    lines.append(window_text)
    return lines
