"""chopsticks-launcher 入口点。

支持: python -m chopsticks_launcher
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
