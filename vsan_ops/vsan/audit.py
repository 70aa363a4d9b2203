"""
Disk group consistency audit.

Every host of a vSAN cluster is expected to carry the same disk group layout
(same number of groups, same number of capacity disks per group). The most
common layout is taken as the baseline and every other host is reported.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from vsan_ops.utils import console_log


@dataclass
class DiskGroupInfo:
    cache_disk: str
    capacity_disks: List[str]


@dataclass
class HostDiskLayout:
    host_name: str
    groups: List[DiskGroupInfo] = field(default_factory=list)

    @property
    def signature(self) -> Tuple[int, ...]:
        """Capacity disk count of each group, order independent."""
        return tuple(sorted(len(group.capacity_disks) for group in self.groups))

    def describe(self) -> str:
        if not self.groups:
            return "no disk groups"
        sizes = ", ".join(str(count) for count in self.signature)
        return f"{len(self.groups)} disk group(s) with {sizes} capacity disk(s)"


@dataclass
class AuditReport:
    layouts: List[HostDiskLayout]
    baseline: Tuple[int, ...] = ()
    deviating_hosts: List[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.deviating_hosts


def read_layout(host) -> HostDiskLayout:
    """Disk groups currently claimed by vSAN on a host."""
    layout = HostDiskLayout(host_name=host.name)
    vsan_config = host.config.vsanHostConfig
    storage_info = vsan_config.storageInfo if vsan_config else None
    for mapping in (storage_info.diskMapping if storage_info and storage_info.diskMapping else []):
        layout.groups.append(DiskGroupInfo(
            cache_disk=mapping.ssd.canonicalName,
            capacity_disks=[disk.canonicalName for disk in mapping.nonSsd],
        ))
    return layout


def audit_disk_groups(hosts: List, logger: Optional[Callable] = None,
                      layout_reader: Callable = read_layout) -> AuditReport:
    """Compare the disk group layout of every host against the most common one."""
    log = logger or console_log
    layouts = [layout_reader(host) for host in hosts]
    report = AuditReport(layouts=layouts)
    if not layouts:
        log("No hosts to audit", "WARN")
        return report

    # Counter keeps first-seen order, so ties go to the first host by name
    report.baseline = Counter(layout.signature for layout in layouts).most_common(1)[0][0]

    for layout in layouts:
        if layout.signature == report.baseline:
            log(f"  ✓ {layout.host_name}: {layout.describe()}")
        else:
            report.deviating_hosts.append(layout.host_name)
            log(f"  ✗ {layout.host_name}: {layout.describe()}", "WARN")

    if report.consistent:
        log(f"✓ All {len(layouts)} host(s) share the same disk group layout")
    else:
        log(f"{len(report.deviating_hosts)} of {len(layouts)} host(s) deviate from the cluster layout", "WARN")
    return report
