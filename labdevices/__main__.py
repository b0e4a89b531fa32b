"""
labdevices package entry point.

Allows running the query tool as a module:
    python -m labdevices stage /dev/ttyUSB0 position
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
