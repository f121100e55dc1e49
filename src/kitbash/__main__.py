"""
Entry point for running Kitbash as a module.

Usage:
    python -m kitbash head.png body.png --canvas 64x64 --scale 2 -o layers.zip
"""

import sys

from kitbash.main import main

if __name__ == "__main__":
    sys.exit(main())
