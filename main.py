"""Ithbat - Islamic Knowledge Research

Simple CLI for running research queries and inspecting site configs.
"""

import sys

from ithbat.cli import main

if __name__ == "__main__":
    sys.exit(main())
