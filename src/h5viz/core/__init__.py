"""
h5viz Core Module

Catalog metadata, slice windows and the HDF5 dataset store.
"""

from h5viz.core.catalog import Catalog, DatasetMeta
from h5viz.core.selection import Selection, SliceWindow
from h5viz.core.data_loader import DatasetStore, format_dtype

__all__ = [
    # Catalog
    'Catalog',
    'DatasetMeta',
    # Windows
    'Selection',
    'SliceWindow',
    # Store
    'DatasetStore',
    'format_dtype',
]
