"""
Configuration for vSAN cluster operations.

Reads from environment variables with sensible defaults. Every value can be
overridden per run from the command line.
"""

import os
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # vCenter connection
    vcenter_user: str = os.getenv("VCENTER_USER", "administrator@vsphere.local")
    vcenter_password: str = os.getenv("VCENTER_PASSWORD", "")
    vcenter_port: int = 443
    verify_ssl: bool = False

    # ESXi shell access (esxcli patching)
    esxi_user: str = "root"
    esxi_password: str = ""
    esxi_ssh_port: int = 22
    esxi_ssh_timeout: int = 30
    patch_command_timeout: int = 1800  # 30 minutes for a full VIB update

    # Automatic disk classification (GB, exclusive bounds)
    cache_min_gb: float = 700
    cache_max_gb: float = 800
    max_disks_per_adapter: int = 8  # 1 cache + 7 capacity
    exact_vmhba_match: bool = False  # substring match on the runtime name otherwise

    # Task monitor
    task_poll_interval: int = 15

    # Maintenance mode / reboot waits
    maintenance_poll_interval: int = 10
    maintenance_warn_after: int = 240
    disconnect_poll_interval: int = 5
    reconnect_poll_interval: int = 10
    reconnect_warn_after: int = 300

    # Hard deadline for every polling loop, unset waits forever
    poll_deadline: Optional[int] = None

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_prefix = "VSAN_OPS_"


settings = Settings()
