#!/usr/bin/env python3
"""
Main entry point for the waper crawler.
"""

import sys

from waper.main import main


if __name__ == '__main__':
    sys.exit(main())
