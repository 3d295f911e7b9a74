"""``python -m retargeter`` — same commands as main.py; used for worker processes."""

import sys

from retargeter.cli import main

if __name__ == "__main__":
    sys.exit(main())
