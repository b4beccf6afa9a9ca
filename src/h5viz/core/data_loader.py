"""
HDF5 Dataset Store Module

Opens an HDF5 container file, enumerates its numeric datasets into a
Catalog and reads rectangular slices of them as labelled xarray DataArrays.

The file handle stays open for the lifetime of the session. h5py calls are
serialized by a per-store lock because the fetch path runs on background
threads.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import h5py
import numpy as np
import xarray as xr

from h5viz.core.catalog import Catalog, DatasetMeta
from h5viz.core.selection import Selection, SliceWindow
from h5viz.errors import (
    DatasetFileNotFound,
    DatasetNotFound,
    IOFailure,
    SliceOutOfBounds,
    UnsupportedFormat,
)

logger = logging.getLogger(__name__)

# dtype kinds shown in the catalog: bool, signed, unsigned, float
NUMERIC_KINDS = 'biuf'


# =============================================================================
# Attribute Helpers
# =============================================================================

def _decode(value: Any) -> str:
    """Convert an HDF5 attribute / string element to str."""
    if isinstance(value, (bytes, np.bytes_)):
        return value.decode('utf-8', errors='replace')
    if isinstance(value, np.ndarray) and value.shape == ():
        return _decode(value.item())
    return str(value)


def _read_text_attr(ds: h5py.Dataset, name: str) -> str:
    if name not in ds.attrs:
        return ""
    return _decode(ds.attrs[name]).strip()


def format_dtype(dtype: Any) -> str:
    """
    Readable element type name.

    Examples
    --------
    >>> format_dtype(np.dtype('<f8'))
    'float64'
    """
    return str(np.dtype(dtype))


def _dimension_names(ds: h5py.Dataset) -> Tuple[str, ...]:
    """
    Label every dimension of `ds`.

    Priority: the 'dims' attribute, HDF5 dimension scale labels, 'dim_N'.
    """
    ndim = ds.ndim

    raw = ds.attrs.get('dims')
    if raw is not None:
        names = [_decode(v) for v in np.atleast_1d(raw)]
        if len(names) == ndim:
            # 'dims' is written in column-major order
            return tuple(reversed(names))
        logger.warning(
            f"{ds.name}: 'dims' attribute has {len(names)} entries for {ndim} dimensions"
        )

    names = []
    for i in range(ndim):
        label = ds.dims[i].label
        names.append(label if label else f"dim_{i}")
    return tuple(names)


def _coordinate_labels(
    h5file: h5py.File,
    path: str,
    dims: Sequence[str],
    shape: Sequence[int]
) -> Tuple[Tuple[str, ...], ...]:
    """
    Look up coordinate labels for each dimension.

    A dimension named 'Area' of dataset 'routput/Dmd' takes its labels from
    the 1-D dataset 'routput/Area' when its length matches.
    """
    group = path.split('/')[0] if '/' in path else ''
    labels = []
    for dim, size in zip(dims, shape):
        candidate = f"{group}/{dim}" if group else dim
        axis_labels: Tuple[str, ...] = ()
        if candidate != path and candidate in h5file:
            obj = h5file[candidate]
            if isinstance(obj, h5py.Dataset) and obj.ndim == 1 and obj.shape[0] == size:
                try:
                    axis_labels = tuple(_decode(v).strip() for v in obj[()])
                except (OSError, TypeError, ValueError) as e:
                    logger.warning(f"Could not read labels {candidate}: {e}")
        labels.append(axis_labels)
    return tuple(labels)


# =============================================================================
# Catalog Scanning
# =============================================================================

def scan_catalog(h5file: h5py.File) -> Catalog:
    """
    Enumerate all numeric datasets of an open file.

    Parameters
    ----------
    h5file : h5py.File
        Open file

    Returns
    -------
    Catalog
        Metadata of every numeric dataset, keyed by path
    """
    found: List[Tuple[str, h5py.Dataset]] = []

    def visit(name, obj):
        if isinstance(obj, h5py.Dataset) and obj.dtype.kind in NUMERIC_KINDS:
            found.append((name, obj))

    h5file.visititems(visit)

    metas = []
    for name, ds in found:
        try:
            dims = _dimension_names(ds)
            metas.append(DatasetMeta(
                path=name,
                shape=tuple(int(n) for n in ds.shape),
                dims=dims,
                dtype=format_dtype(ds.dtype),
                units=_read_text_attr(ds, 'units'),
                doc=_read_text_attr(ds, 'doc'),
                labels=_coordinate_labels(h5file, name, dims, ds.shape),
            ))
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping dataset {name}: {e}")

    logger.info(f"Catalog scan found {len(metas)} datasets")
    return Catalog(metas)


# =============================================================================
# Array Construction
# =============================================================================

def _unique_names(names: Sequence[str]) -> List[str]:
    seen: Dict[str, int] = {}
    result = []
    for name in names:
        count = seen.get(name, 0)
        seen[name] = count + 1
        result.append(name if count == 0 else f"{name}_{count + 1}")
    return result


def build_data_array(
    meta: DatasetMeta,
    window: SliceWindow,
    values: np.ndarray
) -> xr.DataArray:
    """
    Wrap raw slice values in a labelled DataArray.

    Range dimensions become array dimensions with their coordinate labels
    (or absolute indices); fixed dimensions are kept as scalar coordinates.

    Parameters
    ----------
    meta : DatasetMeta
        Metadata of the sliced dataset
    window : SliceWindow
        Window the values were read with
    values : np.ndarray
        Values returned by h5py for `window.indexer()`

    Returns
    -------
    xr.DataArray
        Labelled slice
    """
    names = _unique_names(meta.dims)
    dims = []
    coords: Dict[str, Any] = {}

    for axis, name in enumerate(names):
        start, stop = window.extent(axis)
        has_labels = axis < len(meta.labels) and len(meta.labels[axis]) > 0
        if window.is_range(axis):
            dims.append(name)
            if has_labels:
                coords[name] = list(meta.labels[axis][start:stop])
            else:
                coords[name] = np.arange(start, stop)
        else:
            coords[name] = meta.label(axis, start) if has_labels else start

    return xr.DataArray(
        np.asarray(values),
        dims=dims,
        coords=coords,
        name=meta.path,
        attrs={
            'units': meta.units,
            'doc': meta.doc,
            'window': window.describe(),
        },
    )


# =============================================================================
# Dataset Store
# =============================================================================

class DatasetStore:
    """
    Read access to one HDF5 container file.

    Use DatasetStore.open() rather than the constructor.

    Parameters
    ----------
    file_path : Path
        Path of the open file
    h5file : h5py.File
        Open file handle
    catalog : Catalog
        Datasets found in the file

    Examples
    --------
    >>> with DatasetStore.open('database.hdf5') as store:
    ...     meta = store.catalog['routput/Dmd']
    ...     window = SliceWindow.default(meta.shape, 0, meta.ndim - 1, (100, 100))
    ...     da = store.read_slice(Selection(meta.path, window))
    """

    def __init__(self, file_path: Path, h5file: Optional[h5py.File], catalog: Catalog):
        self.file_path = file_path
        self.catalog = catalog
        self._h5file = h5file
        self._io_lock = threading.RLock()

    @classmethod
    def open(cls, file_path) -> 'DatasetStore':
        """
        Open `file_path` and scan its catalog.

        Raises
        ------
        DatasetFileNotFound
            The file does not exist
        UnsupportedFormat
            The file is not a readable HDF5 file
        """
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise DatasetFileNotFound(path)

        logger.info(f"Opening {path}")
        try:
            h5file = h5py.File(path, 'r')
        except OSError as e:
            raise UnsupportedFormat(path, str(e)) from e

        try:
            catalog = scan_catalog(h5file)
        except (OSError, RuntimeError) as e:
            h5file.close()
            raise UnsupportedFormat(path, str(e)) from e

        return cls(path, h5file, catalog)

    def read_slice(self, selection: Selection) -> xr.DataArray:
        """
        Read the values covered by `selection`.

        Raises
        ------
        DatasetNotFound
            The path is not in the catalog / file
        SliceOutOfBounds
            The window does not fit the dataset shape
        IOFailure
            h5py failed to read the data
        """
        meta = self.catalog.get(selection.path)
        if meta is None:
            raise DatasetNotFound(selection.path)

        window = selection.window
        if not window.fits(meta.shape):
            raise SliceOutOfBounds(selection.path, window.describe(), meta.shape)

        logger.debug(f"Reading slice {selection}")
        with self._io_lock:
            if self._h5file is None:
                raise IOFailure(selection.path, "file is closed")
            try:
                ds = self._h5file[selection.path]
                values = ds[window.indexer()]
            except KeyError as e:
                raise DatasetNotFound(selection.path) from e
            except (OSError, TypeError, ValueError) as e:
                raise IOFailure(selection.path, str(e)) from e

        return build_data_array(meta, window, values)

    def close(self) -> None:
        with self._io_lock:
            if self._h5file is not None:
                self._h5file.close()
                self._h5file = None
                logger.info(f"Closed {self.file_path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
