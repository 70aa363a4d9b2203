#!/usr/bin/env python3
"""
Rolling ESXi patching, one host at a time through maintenance mode
==================================================================

Requirements:
- Python 3.8+
- pip install -e .

Usage:
    python esxi-rolling-patch.py --vcserver vc01 --datacenter DC1 --cluster C1 --datastore-path /vmfs/volumes/ds1/ESXi-8.0U2-depot.zip --validate
"""

import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent.resolve()
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from vsan_ops.cli import rolling_patch_main

if __name__ == "__main__":
    sys.exit(rolling_patch_main())
