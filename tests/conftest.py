"""Shared fixtures: a small HDF5 file and in-memory catalogs."""

import h5py
import numpy as np
import pytest

from h5viz.config import SessionContext
from h5viz.core.catalog import Catalog, DatasetMeta
from h5viz.core.data_loader import DatasetStore
from h5viz.state import initial_state

SECTORS = [b"agri", b"ind", b"res", b"com", b"trn"]


@pytest.fixture
def h5_path(tmp_path):
    """
    HDF5 file with:

    routput/Dmd     float64 (120, 5), dims attr, units/doc, label datasets
    routput/Cube    int32 (2, 3, 4), no dimension metadata
    series          float64 (50,)
    zeros           float64 (3, 3), all zero
    """
    path = tmp_path / "run.h5"
    with h5py.File(path, "w") as f:
        group = f.create_group("routput")
        dmd = group.create_dataset("Dmd", data=np.arange(600, dtype=float).reshape(120, 5))
        dmd.attrs["units"] = "MW"
        dmd.attrs["doc"] = "Electricity demand"
        # stored column-major: fastest varying dimension first
        dmd.attrs["dims"] = np.array([b"Sector", b"Time"])
        group.create_dataset("Time", data=np.array([f"t{i:03d}".encode() for i in range(120)]))
        group.create_dataset("Sector", data=np.array(SECTORS))
        group.create_dataset("Cube", data=np.arange(24, dtype="i4").reshape(2, 3, 4))
        f.create_dataset("series", data=np.linspace(0.0, 49.0, 50))
        f.create_dataset("zeros", data=np.zeros((3, 3)))
    return path


@pytest.fixture
def store(h5_path):
    with DatasetStore.open(h5_path) as opened:
        yield opened


@pytest.fixture
def catalog():
    """Catalog matching the HDF5 fixture, without touching the disk."""
    return Catalog([
        DatasetMeta(
            "routput/Dmd", (120, 5), ("Time", "Sector"), "float64",
            units="MW", doc="Electricity demand",
            labels=(
                tuple(f"t{i:03d}" for i in range(120)),
                tuple(s.decode() for s in SECTORS),
            ),
        ),
        DatasetMeta("routput/Cube", (2, 3, 4), ("dim_0", "dim_1", "dim_2"), "int32"),
        DatasetMeta("series", (50,), ("dim_0",), "float64"),
        DatasetMeta("zeros", (3, 3), ("dim_0", "dim_1"), "float64"),
    ])


@pytest.fixture
def state(catalog):
    return initial_state(catalog, (2000, 500))


@pytest.fixture
def small_state(catalog):
    """Session whose windows are at most 10 x 10."""
    return initial_state(catalog, (10, 10))


@pytest.fixture
def ctx(h5_path, tmp_path):
    return SessionContext(
        file=str(h5_path),
        log_file=str(tmp_path / "h5viz.log"),
        cache_bytes=1024 * 1024,
    )
