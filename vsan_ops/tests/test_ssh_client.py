import unittest

from vsan_ops.errors import PatchError
from vsan_ops.esxi.ssh_client import EsxiPatchService, parse_vib_update_output
from vsan_ops.tests.fakes import FakeHost

DRY_RUN_OUTPUT = """Installation Result
   Message: Dryrun only, host not changed. The following installers will be applied: [BootBankInstaller]
   Reboot Required: true
   VIBs Installed: VMware_bootbank_esx-base_8.0.2-0.0.22380479, VMware_bootbank_vsan_8.0.2-0.0.22380479
   VIBs Removed: VMware_bootbank_esx-base_8.0.1-0.0.21495797
   VIBs Skipped: VMware_bootbank_native-misc-drivers_8.0.2-0.0.22380479
"""

NOTHING_TO_DO_OUTPUT = """Installation Result
   Message: Host is not changed.
   Reboot Required: false
   VIBs Installed:
   VIBs Removed:
   VIBs Skipped: VMware_bootbank_esx-base_8.0.2-0.0.22380479
"""


class ParseVibUpdateOutputTests(unittest.TestCase):
    def test_parses_installation_result(self):
        evaluation = parse_vib_update_output(DRY_RUN_OUTPUT)

        self.assertEqual(evaluation.install_count, 2)
        self.assertEqual(evaluation.remove_count, 1)
        self.assertEqual(evaluation.vibs_skipped, ["VMware_bootbank_native-misc-drivers_8.0.2-0.0.22380479"])
        self.assertTrue(evaluation.reboot_required)
        self.assertTrue(evaluation.message.startswith("Dryrun only"))

    def test_up_to_date_host_has_nothing_to_install(self):
        evaluation = parse_vib_update_output(NOTHING_TO_DO_OUTPUT)

        self.assertEqual(evaluation.install_count, 0)
        self.assertFalse(evaluation.reboot_required)


class FakeSshClient:
    instances = []

    def __init__(self, host, username="root", password="", port=22, timeout=30):
        self.host = host
        self.commands = []
        self.exit_code = 0
        self.stdout = DRY_RUN_OUTPUT
        self.stderr = ""
        FakeSshClient.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def vib_update(self, bundle_path, dry_run=False, timeout=1800):
        self.commands.append((bundle_path, dry_run))
        return {
            "success": self.exit_code == 0,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


class FailingSshClient(FakeSshClient):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.exit_code = 1
        self.stdout = ""
        self.stderr = "[MetadataDownloadError] Could not download from depot"


class EsxiPatchServiceTests(unittest.TestCase):
    def setUp(self):
        FakeSshClient.instances = []

    def test_evaluate_runs_a_dry_run(self):
        service = EsxiPatchService(password="secret", client_factory=FakeSshClient)

        evaluation = service.evaluate(FakeHost("esx01.lab.local"), "/vmfs/volumes/ds1/depot.zip")

        self.assertEqual(evaluation.install_count, 2)
        client = FakeSshClient.instances[0]
        self.assertEqual(client.host, "esx01.lab.local")
        self.assertEqual(client.commands, [("/vmfs/volumes/ds1/depot.zip", True)])

    def test_apply_runs_without_dry_run(self):
        service = EsxiPatchService(client_factory=FakeSshClient)

        service.apply(FakeHost("esx01.lab.local"), "/vmfs/volumes/ds1/depot.zip")

        self.assertEqual(FakeSshClient.instances[0].commands, [("/vmfs/volumes/ds1/depot.zip", False)])

    def test_non_zero_exit_raises_patch_error(self):
        service = EsxiPatchService(client_factory=FailingSshClient)

        with self.assertRaises(PatchError) as ctx:
            service.apply(FakeHost("esx01.lab.local"), "/vmfs/volumes/ds1/depot.zip")

        self.assertEqual(ctx.exception.exit_code, 1)
        self.assertIn("MetadataDownloadError", ctx.exception.message)
        self.assertEqual(ctx.exception.host_name, "esx01.lab.local")


if __name__ == "__main__":
    unittest.main()
