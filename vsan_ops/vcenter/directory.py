"""Cluster and host lookups"""

import logging
from typing import List, Optional

from pyVmomi import vim

from vsan_ops.errors import ResolutionError
from vsan_ops.models import HostFacts

logger = logging.getLogger(__name__)


class ClusterDirectory:
    """Resolves datacenters, clusters and hosts by name and reads host state."""

    def __init__(self, session):
        self.session = session

    def _find_in_container(self, root, vimtype, name: str):
        content = self.session.content
        container = content.viewManager.CreateContainerView(root, [vimtype], True)
        try:
            for obj in container.view:
                if obj.name == name:
                    return obj
        finally:
            container.Destroy()
        return None

    def find_datacenter(self, name: str):
        datacenter = self._find_in_container(self.session.content.rootFolder, vim.Datacenter, name)
        if datacenter is None:
            raise ResolutionError("Datacenter", name)
        return datacenter

    def find_cluster(self, datacenter, name: str):
        cluster = self._find_in_container(datacenter.hostFolder, vim.ClusterComputeResource, name)
        if cluster is None:
            raise ResolutionError("Cluster", name, parent=datacenter.name)
        return cluster

    def list_hosts(self, cluster) -> List:
        """All hosts of the cluster, sorted by name."""
        return sorted(cluster.host, key=lambda h: h.name)

    def find_host(self, cluster, name: str):
        wanted = name.lower()
        for host in cluster.host:
            # Accept either the registered FQDN or its short hostname
            if host.name.lower() == wanted or host.name.lower().split(".")[0] == wanted:
                return host
        raise ResolutionError("Host", name, parent=cluster.name)

    def target_hosts(self, cluster, host_name: Optional[str] = None) -> List:
        """One named host, or every host of the cluster sorted by name."""
        if host_name:
            return [self.find_host(cluster, host_name)]
        return self.list_hosts(cluster)

    def host_facts(self, host) -> HostFacts:
        """Fresh read of the host state used by the rolling update waits."""
        runtime = host.runtime
        powered_on = 0
        for vm in host.vm:
            try:
                if vm.runtime.powerState == 'poweredOn':
                    powered_on += 1
            except Exception as e:
                # VM may be unregistered mid-evacuation
                logger.debug("Skipping VM while counting on %s: %s", host.name, e)

        vendor = model = ""
        hardware = getattr(host, "hardware", None)
        if hardware is not None and hardware.systemInfo is not None:
            vendor = hardware.systemInfo.vendor or ""
            model = hardware.systemInfo.model or ""

        return HostFacts(
            name=host.name,
            in_maintenance=bool(runtime.inMaintenanceMode),
            powered_on_vms=powered_on,
            connection_state=str(runtime.connectionState),
            vendor=vendor,
            model=model,
        )
