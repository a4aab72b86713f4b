#!/usr/bin/env python3
"""Main entry point for WorkTrail.

Equivalent to the ``worktrail`` console script; see worktrail.cli.
"""

import sys

from worktrail.cli import main

if __name__ == "__main__":
    sys.exit(main())
