import unittest

from vsan_ops.errors import InvalidSelection, NoCacheOrCapacityFound, TooManyDisksError
from vsan_ops.models import VmhbaAssignment
from vsan_ops.tests.fakes import FakeHost, FakeStorage, RecordingLog, disk_path, noop_log
from vsan_ops.vsan.classification import AutomaticDiskClassifier, ManualDiskSelector


def two_adapter_host():
    return FakeHost("esx01.lab.local", paths=[
        disk_path("vmhba1:C0:T0:L0", "naa.500a0751", 745.2),
        disk_path("vmhba1:C0:T1:L0", "naa.500a0752", 1788.5),
        disk_path("vmhba1:C0:T2:L0", "naa.500a0753", 1788.5),
        disk_path("vmhba2:C0:T0:L0", "naa.500a0761", 745.2),
        disk_path("vmhba2:C0:T1:L0", "naa.500a0762", 3576.9),
        disk_path("vmhba0:C0:T0:L0", "mpx.vmhba0", 32.0, display_name="Local USB Direct-Access"),
    ])


class AutomaticDiskClassifierTests(unittest.TestCase):
    def setUp(self):
        self.log = RecordingLog()
        self.classifier = AutomaticDiskClassifier(FakeStorage(), logger=self.log)

    def test_one_disk_group_per_adapter(self):
        specs = self.classifier.classify(
            two_adapter_host(), [VmhbaAssignment(1, "vmhba1"), VmhbaAssignment(2, "vmhba2")]
        )

        self.assertEqual(len(specs), 2)
        self.assertEqual(specs[0].cache_disk, "naa.500a0751")
        self.assertEqual(specs[0].capacity_disks, ("naa.500a0752", "naa.500a0753"))
        self.assertEqual(specs[1].cache_disk, "naa.500a0761")
        self.assertEqual(specs[1].capacity_disks, ("naa.500a0762",))

    def test_result_does_not_depend_on_path_order(self):
        host = two_adapter_host()
        reversed_host = FakeHost(host.name, paths=list(reversed(host.paths)))
        assignment = VmhbaAssignment(1, "vmhba1")

        self.assertEqual(self.classifier.classify_slot(host, assignment),
                         self.classifier.classify_slot(reversed_host, assignment))

    def test_more_than_eight_disks_is_rejected(self):
        paths = [disk_path("vmhba3:C0:T0:L0", "naa.cache", 745.0)]
        paths += [disk_path(f"vmhba3:C0:T{i}:L0", f"naa.cap{i}", 1788.5) for i in range(1, 9)]
        host = FakeHost("esx02.lab.local", paths=paths)
        errors = []

        with self.assertRaises(TooManyDisksError):
            self.classifier.classify_slot(host, VmhbaAssignment(1, "vmhba3"))
        specs = self.classifier.classify(host, [VmhbaAssignment(1, "vmhba3")], errors)

        self.assertEqual(specs, [])
        self.assertIsInstance(errors[0], TooManyDisksError)
        self.assertEqual(len(self.log.at("ERROR")), 1)

    def test_last_cache_sized_disk_wins(self):
        host = FakeHost("esx03.lab.local", paths=[
            disk_path("vmhba1:C0:T0:L0", "naa.first", 745.0),
            disk_path("vmhba1:C0:T1:L0", "naa.second", 760.0),
            disk_path("vmhba1:C0:T2:L0", "naa.capacity", 1788.5),
        ])

        spec = self.classifier.classify_slot(host, VmhbaAssignment(1, "vmhba1"))

        self.assertEqual(spec.cache_disk, "naa.second")
        self.assertEqual(spec.capacity_disks, ("naa.capacity",))
        self.assertEqual(len(self.log.at("WARN")), 1)

    def test_cache_band_bounds_are_exclusive(self):
        host = FakeHost("esx04.lab.local", paths=[
            disk_path("vmhba1:C0:T0:L0", "naa.low", 700.0),
            disk_path("vmhba1:C0:T1:L0", "naa.high", 800.0),
        ])

        with self.assertRaises(NoCacheOrCapacityFound) as ctx:
            self.classifier.classify_slot(host, VmhbaAssignment(1, "vmhba1"))
        self.assertFalse(ctx.exception.cache_found)

    def test_no_capacity_disk_skips_slot(self):
        host = FakeHost("esx05.lab.local", paths=[disk_path("vmhba1:C0:T0:L0", "naa.cache", 745.0)])
        errors = []

        self.assertEqual(self.classifier.classify(host, [VmhbaAssignment(1, "vmhba1")], errors), [])
        self.assertIsInstance(errors[0], NoCacheOrCapacityFound)
        self.assertEqual(errors[0].capacity_count, 0)

    def test_non_disk_paths_on_the_adapter_are_ignored(self):
        paths = [disk_path("vmhba3:C0:T0:L0", "naa.cache", 745.0, display_name="LOCAL NVME DISK (naa.cache)")]
        paths += [disk_path(f"vmhba3:C0:T{i}:L0", f"naa.cap{i}", 1788.5) for i in range(1, 8)]
        paths.append(disk_path("vmhba3:C0:T8:L0", "mpx.usb", 760.0, display_name="Local USB Direct-Access"))
        paths.append(disk_path("vmhba3:C0:T9:L0", "naa.ses", 0.0, display_name="DELL Enclosure Svc Dev"))
        host = FakeHost("esx06.lab.local", paths=paths)

        spec = self.classifier.classify_slot(host, VmhbaAssignment(1, "vmhba3"))

        self.assertEqual(spec.cache_disk, "naa.cache")
        self.assertEqual(len(spec.capacity_disks), 7)
        self.assertNotIn("mpx.usb", spec.capacity_disks)
        self.assertNotIn("naa.ses", spec.capacity_disks)
        self.assertEqual(self.log.at("WARN"), [])

    def test_adapter_substring_match_by_default(self):
        host = FakeHost("esx07.lab.local", paths=[
            disk_path("vmhba1:C0:T0:L0", "naa.cache", 745.0),
            disk_path("vmhba10:C0:T0:L0", "naa.other", 1788.5),
        ])

        self.assertEqual(len(self.classifier.candidates(host, "vmhba1")), 2)

    def test_exact_adapter_match(self):
        host = FakeHost("esx07.lab.local", paths=[
            disk_path("vmhba1:C0:T0:L0", "naa.cache", 745.0),
            disk_path("vmhba1:C0:T1:L0", "naa.capacity", 1788.5),
            disk_path("vmhba10:C0:T0:L0", "naa.other", 1788.5),
        ])
        classifier = AutomaticDiskClassifier(FakeStorage(), exact_adapter=True, logger=noop_log)

        spec = classifier.classify_slot(host, VmhbaAssignment(1, "vmhba1"))

        self.assertEqual(spec.capacity_disks, ("naa.capacity",))

    def test_empty_cache_band_is_refused(self):
        with self.assertRaises(ValueError):
            AutomaticDiskClassifier(FakeStorage(), cache_min_gb=800, cache_max_gb=700)


class ManualDiskSelectorTests(unittest.TestCase):
    def _selector(self, *answers):
        replies = iter(answers)
        self.prompts = []

        def answer(prompt):
            self.prompts.append(prompt)
            return next(replies)

        return ManualDiskSelector(FakeStorage(), input_fn=answer, output_fn=noop_log)

    def test_picks_disks_by_one_based_index(self):
        spec = self._selector("1", "2, 3").select_one(two_adapter_host())

        self.assertEqual(spec.cache_disk, "naa.500a0751")
        self.assertEqual(spec.capacity_disks, ("naa.500a0752", "naa.500a0753"))

    def test_out_of_range_index_is_invalid(self):
        host = FakeHost("esx01.lab.local", paths=two_adapter_host().paths[:5])

        with self.assertRaises(InvalidSelection) as ctx:
            self._selector("9", "1,2").select_one(host)
        self.assertEqual(ctx.exception.host_name, "esx01.lab.local")

    def test_non_numeric_index_is_invalid(self):
        with self.assertRaises(InvalidSelection):
            self._selector("1", "two").select_one(two_adapter_host())

    def test_cache_disk_cannot_be_capacity(self):
        with self.assertRaises(InvalidSelection):
            self._selector("1", "1,2").select_one(two_adapter_host())

    def test_capacity_list_required(self):
        with self.assertRaises(InvalidSelection):
            self._selector("1", " ").select_one(two_adapter_host())

    def test_asks_once_per_disk_group(self):
        specs = self._selector("1", "2", "4", "5").select(two_adapter_host(), num_disk_groups=2)

        self.assertEqual([spec.cache_disk for spec in specs], ["naa.500a0751", "naa.500a0761"])
        self.assertEqual(len(self.prompts), 4)


if __name__ == "__main__":
    unittest.main()
