"""
Data model shared by the provisioning and rolling update workflows.

Vendor objects never leave the vcenter/esxi collaborator modules; everything
the core logic reads is one of the plain types below.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from vsan_ops.utils import split_csv, utc_now

BYTES_PER_GB = 1024 ** 3


@dataclass(frozen=True)
class StoragePath:
    """One SCSI path to a disk on a host, as seen at query time."""
    device_id: str
    runtime_name: str
    capacity_gb: float
    display_name: str
    lun_type: str = "disk"

    @property
    def capacity_bytes(self) -> int:
        return int(self.capacity_gb * BYTES_PER_GB)

    @property
    def vmhba(self) -> str:
        return self.runtime_name.split(":", 1)[0]


@dataclass(frozen=True)
class DiskGroupSpec:
    """A proposed disk group: one cache disk plus capacity disks on one host."""
    host_name: str
    cache_disk: str
    capacity_disks: Tuple[str, ...]

    def __post_init__(self):
        if self.cache_disk in self.capacity_disks:
            raise ValueError(
                f"Cache disk {self.cache_disk} cannot also be a capacity disk on {self.host_name}"
            )

    @property
    def is_submittable(self) -> bool:
        return bool(self.cache_disk) and len(self.capacity_disks) > 0


@dataclass(frozen=True)
class VmhbaAssignment:
    """Adapter used to pick the disks of disk group number `slot` (1-based)."""
    slot: int
    vmhba: str


def build_vmhba_assignments(vmhbas: str, num_disk_groups: Optional[int] = None) -> List[VmhbaAssignment]:
    """
    Map disk group slots to adapters from a comma-separated list.

    The list length decides how many disk groups each host gets unless
    num_disk_groups is given, in which case the first N adapters are used.
    """
    adapters = split_csv(vmhbas)
    if not adapters:
        raise ValueError("At least one vmhba is required for automatic disk selection")

    count = len(adapters) if num_disk_groups is None else num_disk_groups
    if count < 1:
        raise ValueError("Number of disk groups per host must be at least 1")
    if count > len(adapters):
        raise ValueError(
            f"{count} disk groups per host requested but only {len(adapters)} vmhba(s) given"
        )
    return [VmhbaAssignment(slot=i + 1, vmhba=adapter) for i, adapter in enumerate(adapters[:count])]


class TaskState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @classmethod
    def from_platform(cls, value) -> "TaskState":
        """Map a vSphere TaskInfo.State (queued/running/success/error) or our own name."""
        text = str(value).strip().lower()
        aliases = {
            "success": cls.SUCCEEDED,
            "succeeded": cls.SUCCEEDED,
            "error": cls.FAILED,
            "failed": cls.FAILED,
            "running": cls.RUNNING,
            "queued": cls.QUEUED,
        }
        try:
            return aliases[text]
        except KeyError:
            raise ValueError(f"Unknown task state: {value}")


# Reads the platform task once: returns (raw state string, error message or None)
TaskReader = Callable[[], Tuple[str, Optional[str]]]


class TrackedTask:
    """An outstanding asynchronous operation followed by the task monitor."""

    def __init__(self, entity_name: str, description: str, reader: TaskReader):
        self.entity_name = entity_name
        self.description = description
        self._reader = reader
        self.state_text = ""
        self.state = TaskState.QUEUED
        self.error: Optional[str] = None
        self.last_observed: Optional[datetime] = None
        self.refresh()

    def refresh(self) -> TaskState:
        raw_state, error = self._reader()
        self.state_text = str(raw_state)
        self.state = TaskState.from_platform(raw_state)
        self.error = error
        self.last_observed = utc_now()
        return self.state

    @property
    def is_running(self) -> bool:
        return self.state_text.casefold() == TaskState.RUNNING.value

    def __repr__(self):
        return f"TrackedTask({self.entity_name!r}, {self.description!r}, {self.state.value})"


class HostUpdateState(str, Enum):
    IDLE = "Idle"
    DRY_RUN = "DryRun"
    NO_OP_NEEDED = "NoOpNeeded"
    ENTERING_MAINTENANCE = "EnteringMaintenance"
    IN_MAINTENANCE = "InMaintenance"
    PATCHING = "Patching"
    REBOOTING = "Rebooting"
    DISCONNECTED = "Disconnected"
    RECONNECTING = "Reconnecting"
    EXITING_MAINTENANCE = "ExitingMaintenance"
    DONE = "Done"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (HostUpdateState.NO_OP_NEEDED, HostUpdateState.DONE, HostUpdateState.FAILED)


@dataclass
class PatchEvaluation:
    """Outcome of an esxcli VIB update, dry run or real."""
    vibs_to_install: List[str] = field(default_factory=list)
    vibs_to_remove: List[str] = field(default_factory=list)
    vibs_skipped: List[str] = field(default_factory=list)
    message: str = ""
    reboot_required: bool = False

    @property
    def install_count(self) -> int:
        return len(self.vibs_to_install)

    @property
    def remove_count(self) -> int:
        return len(self.vibs_to_remove)


@dataclass
class HostFacts:
    name: str
    in_maintenance: bool
    powered_on_vms: int
    connection_state: str
    vendor: str = ""
    model: str = ""


@dataclass
class HostUpdateResult:
    host_name: str
    final_state: HostUpdateState = HostUpdateState.IDLE
    history: List[HostUpdateState] = field(default_factory=list)
    evaluation: Optional[PatchEvaluation] = None
    patch_message: str = ""
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def patched(self) -> bool:
        return self.final_state == HostUpdateState.DONE
