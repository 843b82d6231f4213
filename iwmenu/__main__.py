#!/usr/bin/env python3
"""iwmenu - Entry point."""

import sys

from .cli.command import main

if __name__ == '__main__':
    sys.exit(main())
