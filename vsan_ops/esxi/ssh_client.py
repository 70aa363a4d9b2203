"""
ESXi SSH Client using Paramiko
Runs esxcli VIB updates on ESXi hosts for rolling patching
"""
import logging
import shlex
from typing import Callable, Dict, List, Optional, Tuple

import paramiko

from vsan_ops.errors import ConnectionFailure, PatchError
from vsan_ops.models import PatchEvaluation

logging.getLogger("paramiko").setLevel(logging.WARNING)
logging.getLogger("paramiko.transport").setLevel(logging.WARNING)


def _split_vib_list(value: str) -> List[str]:
    return [vib.strip() for vib in value.split(",") if vib.strip()]


def parse_vib_update_output(stdout: str) -> PatchEvaluation:
    """
    Parse the 'Installation Result' block printed by esxcli software vib update.

    Example:
        Installation Result
           Message: The update completed successfully, but the system needs to be rebooted...
           Reboot Required: true
           VIBs Installed: VMware_bootbank_esx-base_8.0.2-0.0.22380479, ...
           VIBs Removed: VMware_bootbank_esx-base_8.0.1-0.0.21495797
           VIBs Skipped:
    """
    evaluation = PatchEvaluation()
    for line in stdout.splitlines():
        key, sep, value = line.strip().partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        if key == "message":
            evaluation.message = value
        elif key == "reboot required":
            evaluation.reboot_required = value.lower() == "true"
        elif key == "vibs installed":
            evaluation.vibs_to_install = _split_vib_list(value)
        elif key == "vibs removed":
            evaluation.vibs_to_remove = _split_vib_list(value)
        elif key == "vibs skipped":
            evaluation.vibs_skipped = _split_vib_list(value)
    return evaluation


class EsxiSshClient:
    """SSH client for ESXi host operations"""

    def __init__(self, host: str, username: str = 'root', password: str = '',
                 port: int = 22, timeout: int = 30):
        """
        Initialize ESXi SSH client

        Args:
            host: ESXi management address
            username: SSH username (default: root)
            password: SSH password
            port: SSH port
            timeout: Connection timeout in seconds
        """
        self.host = host
        self.username = username
        self.password = password
        self.port = port
        self.timeout = timeout
        self.client: Optional[paramiko.SSHClient] = None

    def connect(self):
        """
        Establish SSH connection to ESXi host

        Raises:
            ConnectionFailure: SSH unreachable or login rejected
        """
        try:
            self.client = paramiko.SSHClient()
            self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            self.client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False
            )
        except (paramiko.SSHException, OSError) as e:
            self.client = None
            raise ConnectionFailure(f"SSH connection failed to {self.host}: {e}", host_name=self.host) from e

    def disconnect(self):
        """Close SSH connection"""
        if self.client:
            self.client.close()
            self.client = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect()
        return False

    def execute_command(self, command: str, timeout: int = 300) -> Tuple[int, str, str]:
        """
        Execute command on ESXi host

        Returns:
            Tuple of (exit_code, stdout, stderr)
        """
        if not self.client:
            raise ConnectionError("Not connected to ESXi host")

        stdin, stdout, stderr = self.client.exec_command(command, timeout=timeout)
        exit_code = stdout.channel.recv_exit_status()
        return exit_code, stdout.read().decode('utf-8'), stderr.read().decode('utf-8')

    def vib_update(self, bundle_path: str, dry_run: bool = False, timeout: int = 1800) -> Dict:
        """
        Run esxcli software vib update against a depot bundle

        Args:
            bundle_path: Depot zip on a datastore (e.g., /vmfs/volumes/ds1/patch.zip)
            dry_run: Only report what would change
            timeout: Command timeout in seconds

        Returns:
            Dict with exit code, stdout and stderr
        """
        cmd = f'esxcli software vib update -d {shlex.quote(bundle_path)}'
        if dry_run:
            cmd += ' --dry-run'
        exit_code, stdout, stderr = self.execute_command(cmd, timeout=timeout)
        return {
            'success': exit_code == 0,
            'exit_code': exit_code,
            'stdout': stdout,
            'stderr': stderr,
        }


class EsxiPatchService:
    """Dry-run and apply patch bundles on hosts through esxcli."""

    def __init__(
        self,
        username: str = 'root',
        password: str = '',
        port: int = 22,
        connect_timeout: int = 30,
        command_timeout: int = 1800,
        client_factory: Callable[..., EsxiSshClient] = EsxiSshClient,
    ):
        self.username = username
        self.password = password
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.client_factory = client_factory

    def _run(self, host, bundle_path: str, dry_run: bool) -> PatchEvaluation:
        client = self.client_factory(
            host.name, username=self.username, password=self.password,
            port=self.port, timeout=self.connect_timeout,
        )
        with client:
            result = client.vib_update(bundle_path, dry_run=dry_run, timeout=self.command_timeout)

        if not result['success']:
            output = (result['stderr'] or result['stdout']).strip()
            action = "Patch dry run" if dry_run else "Patch installation"
            raise PatchError(
                f"{action} failed on {host.name} (exit {result['exit_code']}): {output}",
                host_name=host.name,
                exit_code=result['exit_code'],
                output=output,
            )
        return parse_vib_update_output(result['stdout'])

    def evaluate(self, host, bundle_path: str) -> PatchEvaluation:
        """Dry run: which VIBs the bundle would install and remove. Host unchanged."""
        return self._run(host, bundle_path, dry_run=True)

    def apply(self, host, bundle_path: str) -> PatchEvaluation:
        return self._run(host, bundle_path, dry_run=False)
