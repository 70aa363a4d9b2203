"""Maintenance mode and reboot requests against vCenter hosts"""

from typing import Callable, Optional

from vsan_ops.utils import console_log


class MaintenanceController:
    """
    Issues the host state changes of a rolling update.

    Requests are asynchronous: each call returns the vim.Task and the caller
    watches host state itself, since the task can finish before the host
    reports the new state (and vice versa).
    """

    def __init__(self, logger: Optional[Callable] = None):
        self.log = logger or console_log

    def request_enter(self, host):
        """Enter maintenance mode, letting DRS evacuate every VM (powered off ones too)."""
        self.log(f"  Requesting maintenance mode for {host.name}...")
        return host.EnterMaintenanceMode_Task(timeout=0, evacuatePoweredOffVms=True)

    def request_exit(self, host):
        self.log(f"  Requesting exit from maintenance mode for {host.name}...")
        return host.ExitMaintenanceMode_Task(timeout=0)

    def request_reboot(self, host):
        # force=False: vCenter refuses unless the host is in maintenance mode
        self.log(f"  Rebooting {host.name}...")
        return host.RebootHost_Task(force=False)
