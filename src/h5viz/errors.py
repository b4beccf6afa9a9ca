"""
h5viz Exception Hierarchy

Every failure the viewer can report derives from H5VizError so the CLI can
separate expected, user-facing failures from programming errors.

Failures before the session starts (file open, terminal setup) abort the
process; failures during the session (slice fetches) are shown in the Error
mode and never end the session.
"""


class H5VizError(Exception):
    """Base exception for all h5viz failures."""


class DatasetFileNotFound(H5VizError):
    """Raised when the container file does not exist."""

    def __init__(self, file_path):
        super().__init__(f"file not found: {file_path}")
        self.file_path = file_path


class UnsupportedFormat(H5VizError):
    """Raised when the container file cannot be decoded as HDF5."""

    def __init__(self, file_path, reason=""):
        message = f"unsupported format: {file_path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.file_path = file_path


class DatasetNotFound(H5VizError):
    """Raised when a dataset path is not present in the file."""

    def __init__(self, path):
        super().__init__(f"dataset not found: {path}")
        self.path = path


class SliceOutOfBounds(H5VizError):
    """Raised when a slice window does not fit the dataset shape."""

    def __init__(self, path, window, shape):
        super().__init__(
            f"slice out of bounds: {path}{window} for shape {tuple(shape)}"
        )
        self.path = path
        self.shape = tuple(shape)


class IOFailure(H5VizError):
    """Raised when reading from the container file fails."""

    def __init__(self, path, reason):
        super().__init__(f"i/o failure reading {path}: {reason}")
        self.path = path


class CacheOverBudget(H5VizError):
    """Internal signal that an entry cannot fit the cache byte budget."""


class FetchCancelled(H5VizError):
    """Raised for fetches requested after the cache was shut down."""


class TerminalInitFailure(H5VizError):
    """Raised when the terminal cannot be switched to raw mode."""
