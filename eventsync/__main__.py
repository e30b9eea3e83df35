"""CLI entry point for ``python -m eventsync``."""

import sys

from eventsync.cli import main

if __name__ == "__main__":
    sys.exit(main())
