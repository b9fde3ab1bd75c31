"""
Allow running GeoCert as a module: ``python -m geocert``.

This delegates to the CLI entry point so that both
``geocert`` (console script) and ``python -m geocert``
behave identically.
"""

import sys

from geocert.cli import main

if __name__ == "__main__":
    sys.exit(main())
