"""
h5viz Configuration Module

This module contains the constants, default settings and the explicit
session context used by the h5viz terminal viewer.

The SessionContext is created once at startup (from the command line and an
optional TOML file) and handed to the event source, the state machine and the
cache. Nothing here is mutated as process-wide state.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import param

logger = logging.getLogger(__name__)


# =============================================================================
# Cadence
# =============================================================================

# Ticks per second (time-based state updates, e.g. the loading spinner)
DEFAULT_TICK_RATE = 4.0

# Frames per second (redraw triggers)
DEFAULT_FRAME_RATE = 4.0


# =============================================================================
# Cache Settings
# =============================================================================

# Byte budget for cached slices
DEFAULT_CACHE_BYTES = 256 * 1024 * 1024

# Number of background fetch threads
DEFAULT_MAX_WORKERS = 2


# =============================================================================
# Slice Window Limits
# =============================================================================

# Maximum extent of a fetched window along the row / column axis
DEFAULT_WINDOW_ROWS = 2000
DEFAULT_WINDOW_COLS = 500

# Rows moved by PageUp / PageDown
PAGE_SIZE = 20


# =============================================================================
# Terminal
# =============================================================================

# Below this size the renderer shows a message instead of panels
MIN_WIDTH = 40
MIN_HEIGHT = 10

DEFAULT_LOG_FILE = Path.home() / '.h5viz' / 'h5viz.log'

CONFIG_SECTION = 'h5viz'


# =============================================================================
# Session Context
# =============================================================================

class SessionContext(param.Parameterized):
    """
    Explicit session configuration, validated on assignment.

    Attributes
    ----------
    file : str
        Path of the HDF5 container file
    dataset : str or None
        Dataset to open right after the catalog is loaded
    tick_rate : float
        Tick events per second
    frame_rate : float
        Render events per second
    cache_bytes : int
        Byte budget of the dataset cache
    max_workers : int
        Background fetch threads
    window_rows : int
        Maximum window extent along the row axis
    window_cols : int
        Maximum window extent along the column axis
    log_file : str
        Destination of the log file
    log_level : str
        Logging level name
    """

    file = param.String(default='', doc="HDF5 container file")
    dataset = param.String(default=None, allow_None=True, doc="Initial dataset")

    tick_rate = param.Number(
        default=DEFAULT_TICK_RATE, bounds=(0, None),
        inclusive_bounds=(False, True), doc="Ticks per second"
    )
    frame_rate = param.Number(
        default=DEFAULT_FRAME_RATE, bounds=(0, None),
        inclusive_bounds=(False, True), doc="Frames per second"
    )

    cache_bytes = param.Integer(default=DEFAULT_CACHE_BYTES, bounds=(0, None))
    max_workers = param.Integer(default=DEFAULT_MAX_WORKERS, bounds=(1, None))

    window_rows = param.Integer(default=DEFAULT_WINDOW_ROWS, bounds=(1, None))
    window_cols = param.Integer(default=DEFAULT_WINDOW_COLS, bounds=(1, None))

    log_file = param.String(default=str(DEFAULT_LOG_FILE))
    log_level = param.Selector(
        default='INFO', objects=['DEBUG', 'INFO', 'WARNING', 'ERROR']
    )

    @property
    def window_limits(self):
        """(rows, cols) window limits consumed by the state machine."""
        return (self.window_rows, self.window_cols)


# =============================================================================
# Configuration File
# =============================================================================

def load_config_file(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the [h5viz] table of a TOML configuration file.

    Search order: explicit path -> ./h5viz.toml -> ~/.h5viz/config.toml.
    The first existing file wins.

    Parameters
    ----------
    config_path : Path, optional
        Explicit configuration file

    Returns
    -------
    dict
        Settings found in the file, or an empty dict
    """
    search_paths = [
        Path(config_path) if config_path else None,
        Path.cwd() / 'h5viz.toml',
        Path.home() / '.h5viz' / 'config.toml',
    ]

    for path in search_paths:
        if path and path.exists():
            try:
                import tomllib
                with open(path, 'rb') as f:
                    data = tomllib.load(f)
                settings = data.get(CONFIG_SECTION, {})
                logger.info(f"Loaded configuration from {path}")
                return dict(settings)
            except Exception as e:
                logger.warning(f"Failed to load config from {path}: {e}")
                return {}

    return {}


def configure_logging(ctx: SessionContext) -> None:
    """
    Send log records to a file so the terminal UI is not disturbed.

    Parameters
    ----------
    ctx : SessionContext
        Session context providing log_file and log_level
    """
    log_path = Path(ctx.log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, ctx.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_path, mode='a')],
        force=True,
    )
