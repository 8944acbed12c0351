#!/usr/bin/env python3
"""suivm entry point"""

import sys

from suivm.cli import main

if __name__ == "__main__":
    sys.exit(main())
