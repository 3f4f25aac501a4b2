"""Allow running as ``python -m complexsim``."""

import sys

from complexsim.simulations.cli import main

if __name__ == "__main__":
    sys.exit(main())
