"""
vSAN Module
Disk group classification, provisioning, monitoring and audit
"""
from .classification import AutomaticDiskClassifier, ManualDiskSelector
from .provisioner import DiskGroupProvisioner
from .task_monitor import TaskMonitor

__all__ = ['AutomaticDiskClassifier', 'ManualDiskSelector', 'DiskGroupProvisioner', 'TaskMonitor']
