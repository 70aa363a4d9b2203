#!/usr/bin/env python3
"""
Cluster level vSAN operations (enable, audit)
=============================================

Requirements:
- Python 3.8+
- pip install -e .

Usage:
    python vsan-cluster.py audit --vcserver vc01 --datacenter DC1 --cluster C1
"""

import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent.resolve()
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from vsan_ops.cli import cluster_main

if __name__ == "__main__":
    sys.exit(cluster_main())
