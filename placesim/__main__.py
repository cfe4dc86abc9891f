"""Module entry point for `python -m placesim`."""

import sys

from placesim import cli


if __name__ == "__main__":
    raise SystemExit(cli.main(sys.argv[1:]))
