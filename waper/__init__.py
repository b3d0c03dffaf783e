"""
Waper

A web graph crawler whose concurrency limit and URL filters can be changed
while it runs, and whose crawl can be resumed from its own output.
"""

__version__ = "1.0.0"
__description__ = "Live-reconfigurable web crawler that stores pages, links and errors"
