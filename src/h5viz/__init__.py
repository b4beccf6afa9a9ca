"""
h5viz - Interactive HDF5 Dataset Viewer

A terminal viewer for the multi-dimensional datasets stored in an HDF5 file.

This package provides:
- Catalog scanning and labelled slice reads with h5py and xarray
- A memory-bounded, deduplicating slice cache with background fetches
- A pure session state machine driven by key, timer and fetch events
- A curses interface with catalog, table, plot, help and error views

Quick Start
-----------
Run the viewer:

    $ h5viz --file run.h5

Or drive a session programmatically:

>>> from h5viz import DatasetStore, initial_state, apply
>>> from h5viz.actions import OpenDataset
>>>
>>> with DatasetStore.open("run.h5") as store:
...     state = initial_state(store.catalog)
...     state, commands = apply(state, OpenDataset("routput/Dmd"))
"""

__version__ = "0.1.0"

# Configuration
from h5viz.config import SessionContext, load_config_file

# Data layer
from h5viz.core import Catalog, DatasetMeta, DatasetStore, Selection, SliceWindow

# Session
from h5viz.state import SessionState, apply, initial_state
from h5viz.utils.cache import DatasetCache

__all__ = [
    '__version__',
    # Configuration
    'SessionContext',
    'load_config_file',
    # Data layer
    'Catalog',
    'DatasetMeta',
    'DatasetStore',
    'Selection',
    'SliceWindow',
    # Session
    'SessionState',
    'apply',
    'initial_state',
    'DatasetCache',
]
