"""exex entry point.

Supports: python -m exex
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
