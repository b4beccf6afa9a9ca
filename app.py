"""
h5viz Terminal Application

Entry point for running h5viz straight from a source checkout.

Usage
-----
    $ python app.py --file run.h5

After installation the same interface is available as the `h5viz` command.
"""

import sys

from h5viz.cli import main


if __name__ == '__main__':
    sys.exit(main())
