#!/usr/bin/env python3
"""
Create vSAN disk groups on the hosts of a cluster
=================================================

Requirements:
- Python 3.8+
- pip install -e .

Usage:
    python vsan-diskgroups.py --vcserver vc01 --datacenter DC1 --cluster C1 --vmhbas vmhba1,vmhba2
"""

import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent.resolve()
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from vsan_ops.cli import diskgroups_main

if __name__ == "__main__":
    sys.exit(diskgroups_main())
