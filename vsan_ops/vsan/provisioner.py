"""Disk group creation requests"""

from typing import Callable, Optional

from pyVmomi import vim

from vsan_ops.models import DiskGroupSpec, TrackedTask
from vsan_ops.utils import console_log


def build_disk_mapping(storage, host, spec: DiskGroupSpec):
    """vim.vsan.host.DiskMapping for a spec, resolving canonical names to ScsiDisks."""
    return vim.vsan.host.DiskMapping(
        ssd=storage.scsi_disk(host, spec.cache_disk),
        nonSsd=[storage.scsi_disk(host, disk) for disk in spec.capacity_disks],
    )


class DiskGroupProvisioner:
    """Submits disk group creation without waiting for it."""

    def __init__(self, storage, task_platform, logger: Optional[Callable] = None,
                 mapping_builder: Callable = build_disk_mapping):
        self.storage = storage
        self.task_platform = task_platform
        self.log = logger or console_log
        self.mapping_builder = mapping_builder

    def submit(self, host, spec: DiskGroupSpec) -> TrackedTask:
        """
        Start creating one disk group on the host.

        Returns:
            TrackedTask for the InitializeDisks task

        Raises:
            ValueError: spec has no capacity disk
            KeyError: a disk of the spec no longer exists on the host
        """
        if not spec.is_submittable:
            raise ValueError(f"Disk group for {spec.host_name} has no capacity disks")

        mapping = self.mapping_builder(self.storage, host, spec)
        vim_task = host.configManager.vsanSystem.InitializeDisks_Task(mapping=[mapping])
        self.log(
            f"  Submitted disk group on {host.name}: cache {spec.cache_disk} + "
            f"{len(spec.capacity_disks)} capacity disk(s)"
        )
        return self.task_platform.track(
            vim_task, f"Create disk group (cache {spec.cache_disk})", entity_name=host.name
        )
