"""Module entrypoint: ``python -m vmctl``."""

import sys

from vmctl import cli

if __name__ == "__main__":
    sys.exit(cli.main())
