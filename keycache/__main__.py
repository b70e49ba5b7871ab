"""keycache CLI entry point (python -m keycache)"""

from __future__ import annotations

import sys

from keycache.cli import main

if __name__ == "__main__":
    sys.exit(main())
