"""
vSAN Operations Error Types

Exception taxonomy for disk group provisioning and rolling updates, plus
mapping of vCenter fault types to operator-friendly messages.
"""

import re
from typing import Any, Dict, Optional, Tuple


class VsanOpsError(Exception):
    """Base exception for vSAN cluster operations"""

    def __init__(self, message: str, host_name: Optional[str] = None):
        self.message = message
        self.host_name = host_name
        # Partial HostUpdateResult of the host that failed, when there is one
        self.result = None
        super().__init__(self.message)


class ResolutionError(VsanOpsError):
    """Named datacenter, cluster or host could not be found"""

    def __init__(self, kind: str, name: str, parent: Optional[str] = None):
        location = f" in {parent}" if parent else ""
        super().__init__(f"{kind} '{name}' not found{location}")
        self.kind = kind
        self.name = name


class ConnectionFailure(VsanOpsError):
    """vCenter or ESXi endpoint could not be reached or authenticated"""


class InvalidSelection(VsanOpsError):
    """Operator picked a disk index that does not exist"""


class TooManyDisksError(VsanOpsError):
    """More candidate disks behind one adapter than a disk group can hold"""

    def __init__(self, host_name: str, vmhba: str, disk_count: int, limit: int):
        message = (
            f"{disk_count} disks found on {vmhba} for {host_name}, "
            f"a disk group supports at most {limit} (1 cache + {limit - 1} capacity)"
        )
        super().__init__(message, host_name=host_name)
        self.vmhba = vmhba
        self.disk_count = disk_count
        self.limit = limit


class NoCacheOrCapacityFound(VsanOpsError):
    """Automatic classification found no cache disk or no capacity disk"""

    def __init__(self, host_name: str, vmhba: str, cache_found: bool, capacity_count: int):
        missing = "cache disk" if not cache_found else "capacity disks"
        super().__init__(f"No {missing} found on {vmhba} for {host_name}", host_name=host_name)
        self.vmhba = vmhba
        self.cache_found = cache_found
        self.capacity_count = capacity_count


class MaintenanceModeEntryFailure(VsanOpsError):
    """Host never reached maintenance mode. Halts the whole rolling update."""


class MaintenanceModeExitFailure(VsanOpsError):
    """Host could not be verified out of maintenance mode. Halts the whole rolling update."""


class PatchError(VsanOpsError):
    """esxcli patch evaluation or installation failed on a host"""

    def __init__(self, message: str, host_name: Optional[str] = None,
                 exit_code: Optional[int] = None, output: str = ""):
        super().__init__(message, host_name=host_name)
        self.exit_code = exit_code
        self.output = output


class PollTimeoutError(VsanOpsError):
    """A polling loop hit its configured deadline before the condition held"""

    def __init__(self, description: str, waited_seconds: float):
        super().__init__(f"Timed out after {int(waited_seconds)}s waiting for {description}")
        self.description = description
        self.waited_seconds = waited_seconds


class PollCancelled(VsanOpsError):
    """A polling loop was cancelled through its cancellation token"""

    def __init__(self, description: str):
        super().__init__(f"Cancelled while waiting for {description}")
        self.description = description


# Mapping of vCenter fault patterns to user-friendly messages
VCENTER_ERROR_MESSAGES: Dict[str, Dict[str, Any]] = {
    'vmodl.fault.RequestCanceled': {
        'title': 'Task Cancelled',
        'message': 'The task was cancelled by a user in vCenter.',
    },
    'vim.fault.InvalidState': {
        'title': 'Invalid Host State',
        'message': 'The host is in an invalid state for this operation.',
    },
    'vim.fault.Timedout': {
        'title': 'Operation Timeout',
        'message': 'The vCenter operation timed out. DRS may be busy or resources constrained.',
    },
    'vim.fault.InvalidLogin': {
        'title': 'Authentication Failed',
        'message': 'Invalid credentials for vCenter connection.',
    },
    'vim.fault.NoPermission': {
        'title': 'Permission Denied',
        'message': 'Insufficient permissions to perform this operation.',
    },
    'vim.fault.NotSupported': {
        'title': 'Operation Not Supported',
        'message': 'This operation is not supported on the target host or cluster.',
    },
    'vim.fault.VsanFault': {
        'title': 'vSAN Fault',
        'message': 'vSAN rejected the disk operation. Check that the disks are eligible and unclaimed.',
    },
    'vim.fault.DiskHasPartitions': {
        'title': 'Disk Has Partitions',
        'message': 'The selected disk already carries partitions and cannot be claimed by vSAN.',
    },
    'vim.fault.MaintenanceModeFileMove': {
        'title': 'File Move Required',
        'message': 'Cannot enter maintenance mode because VMs have files that need to be moved.',
    },
    'vim.fault.HostConfigFault': {
        'title': 'Host Configuration Fault',
        'message': 'The host rejected the configuration change.',
    },
}


def parse_vcenter_error(error: Exception) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Parse a vCenter exception and return a user-friendly message.

    Returns:
        Tuple of (friendly_message, error_info_dict or None)
    """
    error_str = str(error)
    error_type = type(error).__name__

    for fault_pattern, info in VCENTER_ERROR_MESSAGES.items():
        short_name = fault_pattern.rsplit('.', 1)[-1]
        if short_name == error_type or fault_pattern in error_str:
            msg_match = re.search(r"msg\s*=\s*'([^']+)'", error_str)
            return info['message'], {
                'title': info['title'],
                'original_message': msg_match.group(1) if msg_match else None,
                'fault_type': fault_pattern,
            }

    msg_match = re.search(r"msg\s*=\s*'([^']+)'", error_str)
    if msg_match:
        return msg_match.group(1), None

    return error_str, None


def describe_vcenter_error(error: Exception) -> str:
    """Format a vCenter error for console output."""
    friendly_msg, info = parse_vcenter_error(error)
    if info:
        if info.get('original_message'):
            return f"{info['title']}: {friendly_msg} ({info['original_message']})"
        return f"{info['title']}: {friendly_msg}"
    return friendly_msg
