#!/usr/bin/env python3
"""Batch skeleton animation retargeting — dataset / shard / pair commands."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from retargeter.cli import main

if __name__ == "__main__":
    sys.exit(main())
