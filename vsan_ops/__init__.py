"""
vSAN Cluster Operations
Disk group provisioning and rolling ESXi patching for vSphere clusters
"""

__version__ = "1.0.0"
