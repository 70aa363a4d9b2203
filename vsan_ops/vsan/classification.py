"""
Disk classification for vSAN disk groups.

Two policies decide which disks form a disk group:

* ManualDiskSelector lists every disk path of the host and lets the operator
  pick one cache disk and the capacity disks by index.
* AutomaticDiskClassifier picks disks per storage adapter (vmhba): the disk
  whose size falls inside the cache band becomes the cache disk, every other
  disk behind that adapter becomes a capacity disk.
"""

from typing import Callable, List, Optional

from vsan_ops.errors import InvalidSelection, NoCacheOrCapacityFound, TooManyDisksError
from vsan_ops.models import DiskGroupSpec, StoragePath, VmhbaAssignment
from vsan_ops.utils import console_log, format_capacity_gb, split_csv


class AutomaticDiskClassifier:
    """Cache/capacity selection by adapter and capacity band."""

    def __init__(
        self,
        storage,
        cache_min_gb: float = 700,
        cache_max_gb: float = 800,
        max_disks: int = 8,
        exact_adapter: bool = False,
        logger: Optional[Callable] = None,
    ):
        if cache_min_gb >= cache_max_gb:
            raise ValueError(f"Cache band is empty: {cache_min_gb} >= {cache_max_gb}")
        self.storage = storage
        self.cache_min_gb = cache_min_gb
        self.cache_max_gb = cache_max_gb
        self.max_disks = max_disks
        self.exact_adapter = exact_adapter
        self.log = logger or console_log

    def _on_adapter(self, path: StoragePath, vmhba: str) -> bool:
        if self.exact_adapter:
            return path.vmhba == vmhba
        return vmhba in path.runtime_name

    def candidates(self, host, vmhba: str) -> List[StoragePath]:
        """
        Disk paths behind one adapter, sorted by runtime name.

        By default the adapter is matched as a substring of the runtime name,
        so "vmhba1" also picks up paths of "vmhba10". With exact_adapter only
        paths whose adapter part equals vmhba are kept.
        """
        paths = self.storage.list_paths(host)
        matching = [
            path for path in paths
            if self._on_adapter(path, vmhba) and "disk" in path.display_name.lower()
        ]
        return sorted(matching, key=lambda path: path.runtime_name)

    def is_cache_sized(self, path: StoragePath) -> bool:
        return self.cache_min_gb < path.capacity_gb < self.cache_max_gb

    def classify_slot(self, host, assignment: VmhbaAssignment) -> DiskGroupSpec:
        """
        Build the disk group for one adapter slot.

        Raises:
            TooManyDisksError: more candidates than one disk group can take
            NoCacheOrCapacityFound: no cache-sized disk, or nothing left for capacity
        """
        disks = self.candidates(host, assignment.vmhba)
        if len(disks) > self.max_disks:
            raise TooManyDisksError(host.name, assignment.vmhba, len(disks), self.max_disks)

        cache: Optional[StoragePath] = None
        capacity: List[str] = []
        for disk in disks:
            if self.is_cache_sized(disk):
                if cache is not None and cache.device_id != disk.device_id:
                    # Only one cache slot per group: the last cache-sized disk wins
                    self.log(
                        f"  {host.name} {assignment.vmhba}: {disk.device_id} replaces "
                        f"{cache.device_id} as cache disk candidate", "WARN"
                    )
                cache = disk
            elif disk.device_id not in capacity:
                capacity.append(disk.device_id)

        if cache is None or not capacity:
            raise NoCacheOrCapacityFound(host.name, assignment.vmhba, cache is not None, len(capacity))

        return DiskGroupSpec(
            host_name=host.name,
            cache_disk=cache.device_id,
            capacity_disks=tuple(capacity),
        )

    def classify(self, host, assignments: List[VmhbaAssignment],
                 errors: Optional[list] = None) -> List[DiskGroupSpec]:
        """
        Disk groups for every slot of a host.

        Slots that cannot be built are skipped and logged; the exceptions are
        appended to `errors` when a list is given.
        """
        specs: List[DiskGroupSpec] = []
        for assignment in assignments:
            try:
                spec = self.classify_slot(host, assignment)
            except TooManyDisksError as e:
                self.log(f"  ✗ {e.message}, skipping disk group {assignment.slot}", "ERROR")
                if errors is not None:
                    errors.append(e)
                continue
            except NoCacheOrCapacityFound as e:
                self.log(f"  ⚠ {e.message}, no disk group {assignment.slot} created", "WARN")
                if errors is not None:
                    errors.append(e)
                continue

            self.log(
                f"  Disk group {assignment.slot} on {host.name} ({assignment.vmhba}): "
                f"cache {spec.cache_disk}, capacity {', '.join(spec.capacity_disks)}"
            )
            specs.append(spec)
        return specs


def _parse_index(raw: str, count: int) -> int:
    """1-based operator index to 0-based list position."""
    try:
        index = int(raw.strip())
    except ValueError:
        raise InvalidSelection(f"'{raw.strip()}' is not a disk number")
    if index < 1 or index > count:
        raise InvalidSelection(f"Disk number {index} is out of range (1-{count})")
    return index - 1


class ManualDiskSelector:
    """Operator-driven disk selection; roles are not validated."""

    def __init__(
        self,
        storage,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ):
        self.storage = storage
        self.input_fn = input_fn
        self.output_fn = output_fn

    def show_paths(self, host, paths: List[StoragePath]):
        self.output_fn(f"\nDisks on {host.name}:")
        for number, path in enumerate(paths, start=1):
            self.output_fn(
                f"  [{number}] {path.runtime_name:<24} {path.device_id:<40} "
                f"{format_capacity_gb(path.capacity_gb):>12}  {path.display_name}"
            )

    def select_one(self, host, group_number: int = 1) -> DiskGroupSpec:
        """
        Ask for one disk group.

        Raises:
            InvalidSelection: bad or out of range index, no capacity disks,
                or the cache disk also chosen as capacity
        """
        paths = self.storage.list_paths(host)
        if not paths:
            raise InvalidSelection(f"No disks found on {host.name}", host_name=host.name)
        self.show_paths(host, paths)

        cache_raw = self.input_fn(f"Disk group {group_number}: number of the cache disk: ")
        capacity_raw = self.input_fn(
            f"Disk group {group_number}: numbers of the capacity disks (comma separated): "
        )

        try:
            cache_pos = _parse_index(cache_raw, len(paths))
            capacity_pos = [_parse_index(raw, len(paths)) for raw in split_csv(capacity_raw)]
        except InvalidSelection as e:
            e.host_name = host.name
            raise

        if not capacity_pos:
            raise InvalidSelection("At least one capacity disk is required", host_name=host.name)

        cache_disk = paths[cache_pos].device_id
        capacity_disks: List[str] = []
        for pos in capacity_pos:
            device_id = paths[pos].device_id
            if device_id == cache_disk:
                raise InvalidSelection(
                    f"{device_id} cannot be both cache and capacity disk", host_name=host.name
                )
            if device_id not in capacity_disks:
                capacity_disks.append(device_id)

        return DiskGroupSpec(host_name=host.name, cache_disk=cache_disk,
                             capacity_disks=tuple(capacity_disks))

    def select(self, host, num_disk_groups: int = 1) -> List[DiskGroupSpec]:
        return [self.select_one(host, number) for number in range(1, num_disk_groups + 1)]
