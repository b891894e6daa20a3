"""
Entry point for running hostname_discovery as a module.

This allows the package to be executed with: python -m hostname_discovery
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
