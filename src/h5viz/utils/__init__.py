"""
h5viz Utilities

Utility functions and classes for slice caching and metadata formatting.
"""

from h5viz.utils.cache import (
    CacheEntry,
    CacheLookup,
    CacheMetrics,
    DatasetCache,
    FetchStatus,
)
from h5viz.utils.metadata import (
    format_value,
    format_data_size,
    format_shape,
    sparkline,
    summary_lines,
)

__all__ = [
    # Cache
    'CacheEntry',
    'CacheLookup',
    'CacheMetrics',
    'DatasetCache',
    'FetchStatus',
    # Metadata
    'format_value',
    'format_data_size',
    'format_shape',
    'sparkline',
    'summary_lines',
]
