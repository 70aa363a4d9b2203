"""Cluster-level vSAN configuration"""

from typing import Callable, Optional

from pyVmomi import vim

from vsan_ops.models import TaskState
from vsan_ops.utils import console_log


def vsan_enabled(cluster) -> bool:
    config = cluster.configurationEx.vsanConfigInfo
    return bool(config and config.enabled)


def build_enable_spec():
    """Cluster spec turning vSAN on with manual disk claiming."""
    vsan_config = vim.vsan.cluster.ConfigInfo(
        enabled=True,
        defaultConfig=vim.vsan.cluster.ConfigInfo.HostDefaultInfo(autoClaimStorage=False),
    )
    return vim.cluster.ConfigSpecEx(vsanConfig=vsan_config)


def enable_vsan(cluster, task_platform, monitor, logger: Optional[Callable] = None,
                spec_builder: Callable = build_enable_spec) -> bool:
    """
    Enable vSAN on a cluster if needed and wait for the reconfiguration.

    Returns:
        True if the cluster was reconfigured, False if vSAN was already on

    Raises:
        RuntimeError: the reconfigure task failed
    """
    log = logger or console_log
    if vsan_enabled(cluster):
        log(f"vSAN already enabled on cluster {cluster.name}")
        return False

    log(f"Enabling vSAN on cluster {cluster.name} (disks claimed manually)...")
    vim_task = cluster.ReconfigureComputeResource_Task(spec=spec_builder(), modify=True)
    task = task_platform.track(vim_task, "Enable vSAN", entity_name=cluster.name)
    states = monitor.await_all([task])
    if TaskState.FAILED in states.values():
        raise RuntimeError(f"Enabling vSAN on {cluster.name} failed: {task.error or 'unknown error'}")

    log(f"✓ vSAN enabled on cluster {cluster.name}")
    return True
