"""
h5viz Command Line Interface

Usage
-----
    $ h5viz --file run.h5
    $ h5viz --file run.h5 --dataset routput/Dmd --cache-mb 512

Exit codes: 0 normal quit, 1 file or terminal failure, 2 invalid arguments.
"""

import argparse
import logging
from typing import Any, Dict, List, Optional

from rich.console import Console

from h5viz import __version__
from h5viz.actions import OpenDataset
from h5viz.config import (
    DEFAULT_CACHE_BYTES,
    SessionContext,
    configure_logging,
    load_config_file,
)
from h5viz.controllers import SessionController
from h5viz.core.data_loader import DatasetStore
from h5viz.errors import H5VizError, TerminalInitFailure
from h5viz.ui.terminal import Terminal

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1

# Settings accepted from the [h5viz] table of the config file
CONFIG_KEYS = (
    'file', 'dataset', 'tick_rate', 'frame_rate', 'cache_mb', 'max_workers',
    'window_rows', 'window_cols', 'log_file', 'log_level',
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='h5viz',
        description='Browse the datasets of an HDF5 file in the terminal.',
    )
    parser.add_argument('--file', '-f', help='HDF5 file to open')
    parser.add_argument('--dataset', '-d', help='dataset to open on start')
    parser.add_argument('--tick-rate', type=float, help='ticks per second (default: 4)')
    parser.add_argument('--frame-rate', type=float, help='frames per second (default: 4)')
    parser.add_argument(
        '--cache-mb', type=float,
        help=f'slice cache budget in MiB (default: {DEFAULT_CACHE_BYTES // 2 ** 20})'
    )
    parser.add_argument('--max-workers', type=int, help='background fetch threads')
    parser.add_argument('--config', help='TOML configuration file')
    parser.add_argument('--log-file', help='log file (default: ~/.h5viz/h5viz.log)')
    parser.add_argument(
        '--log-level', type=str.upper,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='log level'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def build_context(args: argparse.Namespace, parser: argparse.ArgumentParser) -> SessionContext:
    """
    Merge config file settings and command line flags into a SessionContext.

    Command line flags win over the config file. Invalid values end the
    process with exit code 2 through `parser.error`.
    """
    settings: Dict[str, Any] = {}
    for key, value in load_config_file(args.config).items():
        if key in CONFIG_KEYS:
            settings[key] = value
        else:
            logger.warning(f"Ignoring unknown config key: {key}")

    for key in CONFIG_KEYS:
        value = getattr(args, key, None)
        if value is not None:
            settings[key] = value

    if not settings.get('file'):
        parser.error("the following arguments are required: --file")

    cache_mb = settings.pop('cache_mb', None)
    if cache_mb is not None:
        settings['cache_bytes'] = int(float(cache_mb) * 2 ** 20)
    if settings.get('dataset'):
        settings['dataset'] = str(settings['dataset']).lstrip('/')

    try:
        return SessionContext(**settings)
    except (ValueError, TypeError) as e:
        parser.error(str(e))


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run h5viz.

    Parameters
    ----------
    argv : list of str, optional
        Command line arguments (default: sys.argv[1:])

    Returns
    -------
    int
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    ctx = build_context(args, parser)
    try:
        configure_logging(ctx)
    except OSError as e:
        parser.error(f"cannot write log file {ctx.log_file}: {e}")

    console = Console(stderr=True)
    logger.info(f"Starting h5viz {__version__}: {ctx.file}")

    try:
        store = DatasetStore.open(ctx.file)
    except H5VizError as e:
        logger.error(f"Cannot open {ctx.file}: {e}")
        console.print(f"error: {e}", style="bold red", markup=False, highlight=False)
        return EXIT_FAILURE

    with store:
        if ctx.dataset and ctx.dataset not in store.catalog:
            message = f"dataset not found: {ctx.dataset}"
            logger.error(message)
            console.print(f"error: {message}", style="bold red", markup=False, highlight=False)
            return EXIT_FAILURE

        try:
            with Terminal() as terminal:
                controller = SessionController(ctx, store, terminal=terminal)
                if ctx.dataset:
                    controller.perform(OpenDataset(ctx.dataset))
                exit_code = controller.run()
        except TerminalInitFailure as e:
            logger.error(str(e))
            console.print(f"error: {e}", style="bold red", markup=False, highlight=False)
            return EXIT_FAILURE

    logger.info(f"h5viz finished with exit code {exit_code}")
    return exit_code
