"""
Dataset Catalog Module

Read-only description of every dataset found in the open container file.
The catalog is built once by the dataset store and never mutated.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Tuple


@dataclass(frozen=True)
class DatasetMeta:
    """
    Shape and type metadata of a single dataset.

    Attributes
    ----------
    path : str
        Dataset path inside the file, without the leading slash
    shape : tuple of int
        Size of each dimension
    dims : tuple of str
        Label of each dimension (same length as shape)
    dtype : str
        Element type name (e.g. 'float64')
    units : str
        Value of the 'units' attribute, if any
    doc : str
        Value of the 'doc' attribute, if any
    labels : tuple of tuple of str
        Coordinate labels per dimension; an empty tuple when the file has none
    """
    path: str
    shape: Tuple[int, ...]
    dims: Tuple[str, ...]
    dtype: str
    units: str = ""
    doc: str = ""
    labels: Tuple[Tuple[str, ...], ...] = field(default=(), compare=False, repr=False)

    def __post_init__(self):
        if len(self.dims) != len(self.shape):
            raise ValueError(
                f"{self.path}: {len(self.dims)} dimension labels for shape {self.shape}"
            )

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        total = 1
        for n in self.shape:
            total *= n
        return total

    def label(self, dim: int, index: int) -> str:
        """Coordinate label of `index` along `dim`, falling back to the index."""
        if dim < len(self.labels):
            axis_labels = self.labels[dim]
            if 0 <= index < len(axis_labels):
                return axis_labels[index]
        return str(index)


class Catalog(Mapping):
    """
    Immutable mapping of dataset path to DatasetMeta.

    Iteration follows the sorted dataset paths so listings are stable.
    """

    def __init__(self, datasets: Iterable[DatasetMeta] = ()):
        entries: Dict[str, DatasetMeta] = {}
        for meta in datasets:
            entries[meta.path] = meta
        self._entries = dict(sorted(entries.items()))
        self._paths = tuple(self._entries)

    def __getitem__(self, path: str) -> DatasetMeta:
        return self._entries[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __repr__(self) -> str:
        return f"Catalog({len(self)} datasets)"

    def __eq__(self, other):
        if not isinstance(other, Catalog):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self):
        return hash(self._paths)

    def filter(self, text: str = "") -> List[str]:
        """
        Paths matching every whitespace separated word of `text`.

        Matching is a case-insensitive substring test on the path.

        Parameters
        ----------
        text : str
            Filter text; empty matches everything

        Returns
        -------
        list of str
            Matching paths in catalog order

        Examples
        --------
        >>> catalog.filter("routput dmd")
        ['routput/Dmd', 'routput/DmdFrac']
        """
        words = text.lower().split()
        if not words:
            return list(self._paths)
        return [
            path for path in self._paths
            if all(word in path.lower() for word in words)
        ]
