"""
Cluster iteration: applies disk group provisioning or the patch workflow to
every target host, in host name order.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from vsan_ops.errors import (
    ConnectionFailure,
    InvalidSelection,
    MaintenanceModeEntryFailure,
    MaintenanceModeExitFailure,
    PatchError,
    PollCancelled,
    PollTimeoutError,
    describe_vcenter_error,
)
from vsan_ops.models import DiskGroupSpec, HostUpdateResult, HostUpdateState, TaskState, TrackedTask
from vsan_ops.polling import CancellationToken
from vsan_ops.utils import console_log

# planner(host, errors) -> disk groups to create; appends non-fatal problems to errors
Planner = Callable[[object, list], List[DiskGroupSpec]]


def automatic_planner(classifier, assignments) -> Planner:
    return lambda host, errors: classifier.classify(host, assignments, errors)


def manual_planner(selector, num_disk_groups: int = 1) -> Planner:
    return lambda host, errors: selector.select(host, num_disk_groups)


@dataclass
class HostProvisioningOutcome:
    host_name: str
    submitted: List[DiskGroupSpec] = field(default_factory=list)
    errors: List = field(default_factory=list)


@dataclass
class ProvisioningReport:
    outcomes: List[HostProvisioningOutcome] = field(default_factory=list)
    task_states: Dict[str, TaskState] = field(default_factory=dict)

    @property
    def submitted_count(self) -> int:
        return sum(len(outcome.submitted) for outcome in self.outcomes)

    @property
    def failed_tasks(self) -> int:
        return sum(1 for state in self.task_states.values() if state == TaskState.FAILED)

    @property
    def has_errors(self) -> bool:
        return self.failed_tasks > 0 or any(outcome.errors for outcome in self.outcomes)


@dataclass
class RollingUpdateReport:
    results: List[HostUpdateResult] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    halted_at: Optional[str] = None

    @property
    def halted(self) -> bool:
        return self.halted_at is not None

    def hosts_in(self, state: HostUpdateState) -> List[str]:
        return [result.host_name for result in self.results if result.final_state == state]


class ClusterDriver:
    """Runs per-host work across a cluster, strictly in host name order."""

    def __init__(self, logger: Optional[Callable] = None):
        self.log = logger or console_log
        self.last_report: Optional[RollingUpdateReport] = None

    @staticmethod
    def ordered(hosts: List) -> List:
        return sorted(hosts, key=lambda host: host.name)

    def provision(self, hosts: List, planner: Planner, provisioner, monitor,
                  cancel: Optional[CancellationToken] = None) -> ProvisioningReport:
        """
        Plan and submit disk groups on every host, then wait for all tasks at once.

        Problems on one host (bad manual selection, unreadable disk inventory,
        rejected submission) are recorded in the report and never stop the other hosts.
        """
        report = ProvisioningReport()
        tasks: List[TrackedTask] = []

        for host in self.ordered(hosts):
            outcome = HostProvisioningOutcome(host_name=host.name)
            report.outcomes.append(outcome)
            self.log(f"Planning disk groups for {host.name}...")

            try:
                specs = planner(host, outcome.errors)
            except InvalidSelection as e:
                self.log(f"  ✗ {host.name}: {e.message}, no disk group created", "ERROR")
                outcome.errors.append(e)
                continue
            except Exception as e:
                message = f"Planning disk groups failed: {describe_vcenter_error(e)}"
                self.log(f"  ✗ {host.name}: {message}", "ERROR")
                outcome.errors.append(message)
                continue

            if not specs:
                self.log(f"  No disk group to create on {host.name}", "WARN")

            for spec in specs:
                try:
                    tasks.append(provisioner.submit(host, spec))
                    outcome.submitted.append(spec)
                except Exception as e:
                    message = f"Submitting disk group (cache {spec.cache_disk}) failed: {describe_vcenter_error(e)}"
                    self.log(f"  ✗ {host.name}: {message}", "ERROR")
                    outcome.errors.append(message)

        report.task_states = monitor.await_all(tasks, cancel=cancel)
        return report

    @staticmethod
    def _record_failure(report: RollingUpdateReport, host, error):
        report.errors[host.name] = error.message
        if error.result is not None:
            report.results.append(error.result)

    def rolling_update(self, hosts: List, orchestrator, bundle_path: str,
                       validate_only: bool = False) -> RollingUpdateReport:
        """
        Patch hosts one at a time.

        A host that fails to enter maintenance mode, or cannot be verified out
        of it again, halts the whole update: the error is re-raised and no
        later host is touched. Patch and SSH errors only skip that host, which
        the orchestrator has already returned to service. Poll timeouts and
        cancellation halt the update as well. The report of a halted run stays available as `last_report`.
        """
        report = RollingUpdateReport()
        self.last_report = report
        ordered = self.ordered(hosts)

        for position, host in enumerate(ordered, start=1):
            self.log(f"\n{'=' * 60}")
            self.log(f"Host {position}/{len(ordered)}: {host.name}")
            self.log(f"{'=' * 60}")

            try:
                result = orchestrator.update_host(host, bundle_path, validate_only=validate_only)
            except (MaintenanceModeEntryFailure, MaintenanceModeExitFailure,
                    PollTimeoutError, PollCancelled) as e:
                self._record_failure(report, host, e)
                report.halted_at = host.name
                remaining = [h.name for h in ordered[position:]]
                self.log(f"✗ {e.message}", "ERROR")
                self.log(
                    f"Halting rolling update, {len(remaining)} host(s) not processed: "
                    f"{', '.join(remaining) or 'none'}", "ERROR"
                )
                raise
            except (PatchError, ConnectionFailure) as e:
                self._record_failure(report, host, e)
                self.log(f"✗ {host.name}: {e.message}, continuing with next host", "ERROR")
                continue

            report.results.append(result)

        return report
