"""solver-watchdog 入口点。

支持: python -m solver_watchdog
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
