"""Host disk inventory queries"""

import logging
from typing import Dict, List

from vsan_ops.errors import VsanOpsError
from vsan_ops.models import BYTES_PER_GB, StoragePath

logger = logging.getLogger(__name__)


class StorageQueryService:
    """
    Reads the SCSI disks attached to a host.

    Every call goes back to host.config.storageDevice. Nothing is cached,
    because disks get claimed between the disk groups of one run.
    """

    @staticmethod
    def _storage_device(host):
        config = getattr(host, "config", None)
        if config is None or config.storageDevice is None:
            # vCenter drops the config of disconnected or not responding hosts
            raise VsanOpsError(f"No storage configuration available for {host.name}", host_name=host.name)
        return config.storageDevice

    def _disk_luns(self, host) -> Dict[str, object]:
        """Disk-class SCSI LUNs of the host keyed by LUN key."""
        storage = self._storage_device(host)
        return {
            lun.key: lun
            for lun in storage.scsiLun
            if getattr(lun, "lunType", None) == "disk"
        }

    @staticmethod
    def _capacity_bytes(lun) -> int:
        capacity = getattr(lun, "capacity", None)
        if capacity is None:
            return 0
        return int(capacity.block) * int(capacity.blockSize)

    def list_paths(self, host) -> List[StoragePath]:
        """One StoragePath per multipath path of every disk on the host."""
        luns = self._disk_luns(host)
        paths: List[StoragePath] = []

        multipath = self._storage_device(host).multipathInfo
        for mp_lun in (multipath.lun if multipath else []):
            lun = luns.get(mp_lun.lun)
            if lun is None:
                continue
            capacity_gb = self._capacity_bytes(lun) / BYTES_PER_GB
            for path in mp_lun.path:
                paths.append(StoragePath(
                    device_id=lun.canonicalName,
                    runtime_name=path.name,
                    capacity_gb=capacity_gb,
                    display_name=lun.displayName or lun.canonicalName,
                    lun_type=lun.lunType,
                ))

        logger.debug("Found %d disk paths on %s", len(paths), host.name)
        return paths

    def capacity_of(self, host, device_id: str) -> int:
        """Capacity in bytes of one device, by canonical name."""
        for lun in self._disk_luns(host).values():
            if lun.canonicalName == device_id:
                return self._capacity_bytes(lun)
        raise KeyError(f"Device {device_id} not found on {host.name}")

    def scsi_disk(self, host, device_id: str):
        """The vim.host.ScsiDisk object for a canonical name."""
        for lun in self._disk_luns(host).values():
            if lun.canonicalName == device_id:
                return lun
        raise KeyError(f"Device {device_id} not found on {host.name}")
