"""
vCenter collaborators
Inventory lookups, disk queries, task wrapping, maintenance requests and uploads
"""
from .directory import ClusterDirectory
from .maintenance import MaintenanceController
from .storage import StorageQueryService
from .tasks import TaskPlatform

__all__ = ['ClusterDirectory', 'MaintenanceController', 'StorageQueryService', 'TaskPlatform']
