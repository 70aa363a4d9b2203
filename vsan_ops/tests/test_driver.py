import unittest
from types import SimpleNamespace

from vsan_ops.config import Settings
from vsan_ops.driver import ClusterDriver, automatic_planner, manual_planner
from vsan_ops.errors import InvalidSelection, MaintenanceModeEntryFailure, MaintenanceModeExitFailure
from vsan_ops.esxi.orchestrator import PatchOrchestrator
from vsan_ops.models import HostUpdateState, TaskState, VmhbaAssignment
from vsan_ops.tests.fakes import (
    FakeClock,
    FakeDirectory,
    FakeHost,
    FakeMaintenance,
    FakePatchService,
    FakeStorage,
    FakeTaskPlatform,
    FakeVimTask,
    disk_path,
    noop_log,
)
from vsan_ops.vcenter.storage import StorageQueryService
from vsan_ops.vsan.classification import AutomaticDiskClassifier, ManualDiskSelector

BUNDLE = "/vmfs/volumes/ds1/VMware-ESXi-8.0U2-depot.zip"


class RollingUpdateTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.directory = FakeDirectory()
        self.platform = FakeTaskPlatform()
        self.driver = ClusterDriver(logger=noop_log)

    def _orchestrator(self, maintenance, patches):
        return PatchOrchestrator(
            self.directory, maintenance, patches, self.platform,
            config=Settings(), logger=noop_log, sleep=self.clock.sleep, clock=self.clock,
        )

    def test_maintenance_failure_halts_remaining_hosts(self):
        hosts = [FakeHost("h3"), FakeHost("h1", powered_on_vms=2), FakeHost("h2", powered_on_vms=5)]
        maintenance = FakeMaintenance(reject_enter={"h2"})
        patches = FakePatchService()

        with self.assertRaises(MaintenanceModeEntryFailure):
            self.driver.rolling_update(hosts, self._orchestrator(maintenance, patches), BUNDLE)

        report = self.driver.last_report
        self.assertEqual(report.halted_at, "h2")
        self.assertEqual(report.hosts_in(HostUpdateState.DONE), ["h1"])
        self.assertEqual(patches.evaluated, ["h1", "h2"])
        self.assertEqual(patches.applied, ["h1"])
        self.assertNotIn("h3", [name for _, name in maintenance.calls])
        self.assertIn("h2", report.errors)

    def test_patch_error_skips_host_and_continues(self):
        hosts = [FakeHost("h1"), FakeHost("h2")]
        maintenance = FakeMaintenance()
        patches = FakePatchService(apply_errors={"h1"})

        report = self.driver.rolling_update(hosts, self._orchestrator(maintenance, patches), BUNDLE)

        self.assertFalse(report.halted)
        self.assertIn("h1", report.errors)
        self.assertEqual(report.hosts_in(HostUpdateState.DONE), ["h2"])
        self.assertEqual(maintenance.hosts_for("exit"), ["h1", "h2"])

    def test_validate_only_touches_no_host(self):
        hosts = [FakeHost("h2"), FakeHost("h1")]
        maintenance = FakeMaintenance()

        report = self.driver.rolling_update(
            hosts, self._orchestrator(maintenance, FakePatchService()), BUNDLE, validate_only=True
        )

        self.assertEqual(report.hosts_in(HostUpdateState.NO_OP_NEEDED), ["h1", "h2"])
        self.assertEqual(maintenance.calls, [])

    def test_ssh_failure_returns_host_before_next_host(self):
        hosts = [FakeHost("h1"), FakeHost("h2")]
        maintenance = FakeMaintenance()
        patches = FakePatchService(unreachable_on_apply={"h1"})

        report = self.driver.rolling_update(hosts, self._orchestrator(maintenance, patches), BUNDLE)

        self.assertEqual(maintenance.calls[:3], [("enter", "h1"), ("exit", "h1"), ("enter", "h2")])
        self.assertFalse(hosts[0].in_maintenance)
        self.assertEqual(report.hosts_in(HostUpdateState.FAILED), ["h1"])
        self.assertEqual(report.hosts_in(HostUpdateState.DONE), ["h2"])

    def test_refused_reboot_returns_host_before_next_host(self):
        hosts = [FakeHost("h1"), FakeHost("h2")]
        maintenance = FakeMaintenance(reject_reboot={"h1"})

        report = self.driver.rolling_update(hosts, self._orchestrator(maintenance, FakePatchService()), BUNDLE)

        self.assertEqual(maintenance.calls[:4],
                         [("enter", "h1"), ("reboot", "h1"), ("exit", "h1"), ("enter", "h2")])
        self.assertFalse(hosts[0].in_maintenance)
        self.assertIn("h1", report.errors)

    def test_host_left_in_maintenance_halts_remaining_hosts(self):
        hosts = [FakeHost("h1"), FakeHost("h2")]
        maintenance = FakeMaintenance(reject_exit={"h1"})
        patches = FakePatchService(apply_errors={"h1"})

        with self.assertRaises(MaintenanceModeExitFailure):
            self.driver.rolling_update(hosts, self._orchestrator(maintenance, patches), BUNDLE)

        self.assertEqual(self.driver.last_report.halted_at, "h1")
        self.assertEqual(self.driver.last_report.hosts_in(HostUpdateState.FAILED), ["h1"])
        self.assertNotIn("h2", [name for _, name in maintenance.calls])
        self.assertEqual(patches.evaluated, ["h1"])

    def test_failed_host_history_is_kept(self):
        hosts = [FakeHost("h1")]
        patches = FakePatchService(apply_errors={"h1"})

        report = self.driver.rolling_update(hosts, self._orchestrator(FakeMaintenance(), patches), BUNDLE)

        result = report.results[0]
        self.assertEqual(result.final_state, HostUpdateState.FAILED)
        self.assertEqual(result.history[:5], [
            HostUpdateState.IDLE,
            HostUpdateState.DRY_RUN,
            HostUpdateState.ENTERING_MAINTENANCE,
            HostUpdateState.IN_MAINTENANCE,
            HostUpdateState.PATCHING,
        ])


class FakeProvisioner:
    def __init__(self, platform, reject=()):
        self.platform = platform
        self.reject = set(reject)
        self.submitted = []

    def submit(self, host, spec):
        if host.name in self.reject:
            raise RuntimeError("vim.fault.DiskHasPartitions")
        self.submitted.append(spec)
        return self.platform.track(FakeVimTask(["success"]), "Create disk group", entity_name=host.name)


class RecordingMonitor:
    def __init__(self):
        self.calls = []

    def await_all(self, tasks, cancel=None):
        self.calls.append(list(tasks))
        return {f"{task.entity_name}#{i}": task.state for i, task in enumerate(tasks)}


def cluster_host(name):
    return FakeHost(name, paths=[
        disk_path("vmhba1:C0:T0:L0", f"naa.{name}0", 745.2),
        disk_path("vmhba1:C0:T1:L0", f"naa.{name}1", 1788.5),
        disk_path("vmhba1:C0:T2:L0", f"naa.{name}2", 1788.5),
    ])


class ProvisioningTests(unittest.TestCase):
    def setUp(self):
        self.platform = FakeTaskPlatform()
        self.monitor = RecordingMonitor()
        self.driver = ClusterDriver(logger=noop_log)

    def test_all_tasks_awaited_once_after_submission(self):
        hosts = [cluster_host("h2"), cluster_host("h1")]
        classifier = AutomaticDiskClassifier(FakeStorage(), logger=noop_log)
        provisioner = FakeProvisioner(self.platform)

        report = self.driver.provision(
            hosts, automatic_planner(classifier, [VmhbaAssignment(1, "vmhba1")]), provisioner, self.monitor
        )

        self.assertEqual(len(self.monitor.calls), 1)
        self.assertEqual([task.entity_name for task in self.monitor.calls[0]], ["h1", "h2"])
        self.assertEqual(report.submitted_count, 2)
        self.assertFalse(report.has_errors)
        self.assertEqual(list(report.task_states.values()), [TaskState.SUCCEEDED, TaskState.SUCCEEDED])

    def test_bad_manual_index_creates_nothing_on_that_host(self):
        hosts = [cluster_host("h1"), cluster_host("h2")]
        answers = iter(["9", "2,3", "1", "2,3"])
        selector = ManualDiskSelector(FakeStorage(), input_fn=lambda prompt: next(answers),
                                      output_fn=noop_log)
        provisioner = FakeProvisioner(self.platform)

        report = self.driver.provision(hosts, manual_planner(selector), provisioner, self.monitor)

        self.assertEqual([spec.host_name for spec in provisioner.submitted], ["h2"])
        self.assertIsInstance(report.outcomes[0].errors[0], InvalidSelection)
        self.assertTrue(report.has_errors)

    def test_rejected_submission_is_recorded_and_others_continue(self):
        hosts = [cluster_host("h1"), cluster_host("h2")]
        classifier = AutomaticDiskClassifier(FakeStorage(), logger=noop_log)
        provisioner = FakeProvisioner(self.platform, reject={"h1"})

        report = self.driver.provision(
            hosts, automatic_planner(classifier, [VmhbaAssignment(1, "vmhba1")]), provisioner, self.monitor
        )

        self.assertEqual(report.submitted_count, 1)
        self.assertIn("Disk Has Partitions", report.outcomes[0].errors[0])
        self.assertEqual(len(self.monitor.calls[0]), 1)

    def test_unreadable_host_does_not_stop_the_cluster(self):
        gb = 1024 ** 3
        luns = [
            SimpleNamespace(key="k1", canonicalName="naa.cache", displayName="Local ATA Disk", lunType="disk",
                            capacity=SimpleNamespace(block=745 * gb // 512, blockSize=512)),
            SimpleNamespace(key="k2", canonicalName="naa.capacity", displayName="Local ATA Disk", lunType="disk",
                            capacity=SimpleNamespace(block=1788 * gb // 512, blockSize=512)),
        ]
        multipath = SimpleNamespace(lun=[
            SimpleNamespace(lun="k1", path=[SimpleNamespace(name="vmhba1:C0:T0:L0")]),
            SimpleNamespace(lun="k2", path=[SimpleNamespace(name="vmhba1:C0:T1:L0")]),
        ])
        hosts = [
            SimpleNamespace(name="h0", config=None),
            SimpleNamespace(name="h1", config=SimpleNamespace(
                storageDevice=SimpleNamespace(scsiLun=luns, multipathInfo=multipath))),
        ]
        classifier = AutomaticDiskClassifier(StorageQueryService(), logger=noop_log)
        provisioner = FakeProvisioner(self.platform)

        report = self.driver.provision(
            hosts, automatic_planner(classifier, [VmhbaAssignment(1, "vmhba1")]), provisioner, self.monitor
        )

        self.assertEqual([spec.host_name for spec in provisioner.submitted], ["h1"])
        self.assertIn("No storage configuration available for h0", report.outcomes[0].errors[0])
        self.assertEqual(len(self.monitor.calls), 1)


if __name__ == "__main__":
    unittest.main()
