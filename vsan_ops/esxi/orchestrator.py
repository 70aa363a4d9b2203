"""
ESXi Patch Orchestrator
Coordinates dry run + vCenter maintenance mode + esxcli patching + reboot for one host
"""
import time
from typing import Callable, Optional

from vsan_ops.config import Settings, settings as default_settings
from vsan_ops.errors import (
    MaintenanceModeEntryFailure,
    MaintenanceModeExitFailure,
    PatchError,
    PollTimeoutError,
    VsanOpsError,
    describe_vcenter_error,
)
from vsan_ops.models import HostUpdateResult, HostUpdateState, TaskState
from vsan_ops.polling import CancellationToken, PollPolicy, wait_until
from vsan_ops.utils import console_log


class PatchOrchestrator:
    """
    Drives one host through the rolling update state machine:

        Idle -> DryRun -> (NoOpNeeded | EnteringMaintenance) -> InMaintenance
             -> Patching -> Rebooting -> Disconnected -> Reconnecting
             -> ExitingMaintenance -> Done

    Failed is absorbing. A host that does not reach maintenance mode raises
    MaintenanceModeEntryFailure and a host that cannot be taken back out of it
    raises MaintenanceModeExitFailure; the cluster driver treats both as fatal
    for the whole batch.
    """

    def __init__(
        self,
        directory,
        maintenance,
        patch_service,
        task_platform,
        config: Optional[Settings] = None,
        logger: Optional[Callable] = None,
        cancel: Optional[CancellationToken] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize orchestrator

        Args:
            directory: ClusterDirectory used for fresh host state reads
            maintenance: MaintenanceController issuing enter/exit/reboot
            patch_service: EsxiPatchService running esxcli dry runs and updates
            task_platform: TaskPlatform wrapping returned vim tasks
            config: Poll intervals, warning periods and optional deadline
            logger: Logging function (defaults to console_log)
            cancel: Cancellation token shared by every wait
            sleep: Sleep function override for the waits
            clock: Monotonic clock for the waits
        """
        self.directory = directory
        self.maintenance = maintenance
        self.patch_service = patch_service
        self.task_platform = task_platform
        self.config = config or default_settings
        self.log = logger or console_log
        self.cancel = cancel
        self.sleep = sleep
        self.clock = clock

    def _wait(self, condition, description: str, interval: float, warn_after: Optional[float] = None) -> int:
        policy = PollPolicy(interval=interval, warn_after=warn_after, deadline=self.config.poll_deadline)
        return wait_until(
            condition,
            description,
            policy,
            logger=self.log,
            cancel=self.cancel,
            sleep=self.sleep,
            clock=self.clock,
        )

    def _transition(self, result: HostUpdateResult, state: HostUpdateState):
        result.history.append(state)
        result.final_state = state
        self.log(f"[Patch] {result.host_name}: {state.value}", "DEBUG")

    def _fail(self, result: HostUpdateResult, error: str):
        result.error = error
        self._transition(result, HostUpdateState.FAILED)
        self.log(f"[Patch] {result.host_name}: {error}", "ERROR")

    def update_host(self, host, bundle_path: str, validate_only: bool = False) -> HostUpdateResult:
        """
        Execute the patch workflow for a single host

        Args:
            host: Host object (vim.HostSystem or equivalent)
            bundle_path: Depot bundle path as seen from the ESXi shell
            validate_only: Stop after the dry run

        Returns:
            HostUpdateResult with the visited states and patch output

        Raises:
            MaintenanceModeEntryFailure: host never entered maintenance mode
            MaintenanceModeExitFailure: host could not be taken out of maintenance mode
            PatchError / ConnectionFailure: dry run or installation failed, host back in service
            PollTimeoutError / PollCancelled: a wait hit its deadline or was cancelled

            Every VsanOpsError raised here carries the partial result as `result`.
        """
        result = HostUpdateResult(host_name=host.name)
        try:
            self._run(host, bundle_path, validate_only, result)
        except VsanOpsError as e:
            if result.final_state != HostUpdateState.FAILED:
                self._fail(result, e.message)
            e.result = result
            raise
        return result

    def _run(self, host, bundle_path: str, validate_only: bool, result: HostUpdateResult):
        self._transition(result, HostUpdateState.IDLE)

        facts = self.directory.host_facts(host)
        vendor = f"{facts.vendor} {facts.model}".strip() or "unknown hardware"
        self.log(f"[Patch] {host.name} ({vendor}), connection: {facts.connection_state}")

        # Step 1: Dry run
        self._transition(result, HostUpdateState.DRY_RUN)
        self.log(f"[Patch] Evaluating {bundle_path} on {host.name} (dry run)...")
        evaluation = self.patch_service.evaluate(host, bundle_path)
        result.evaluation = evaluation
        self.log(
            f"[Patch] {host.name}: {evaluation.install_count} VIB(s) to install, "
            f"{evaluation.remove_count} VIB(s) to remove"
        )
        if evaluation.message:
            self.log(f"[Patch] {host.name}: {evaluation.message}")

        if validate_only or evaluation.install_count == 0:
            reason = "validate only" if validate_only else "nothing to install"
            self.log(f"[Patch] {host.name}: no update performed ({reason})")
            self._transition(result, HostUpdateState.NO_OP_NEEDED)
            return

        # Step 2: Enter maintenance mode
        self._transition(result, HostUpdateState.ENTERING_MAINTENANCE)
        try:
            self._enter_maintenance(host)
        except PollTimeoutError as e:
            self._fail(result, e.message)
            raise MaintenanceModeEntryFailure(
                f"{host.name} did not enter maintenance mode: {e.message}", host_name=host.name
            ) from e
        self._transition(result, HostUpdateState.IN_MAINTENANCE)

        # Host is out of service from here: it either returns to the cluster or the batch halts
        try:
            self._patch_and_reboot(host, bundle_path, result)
        except MaintenanceModeEntryFailure:
            raise
        except Exception as e:
            self._fail(result, e.message if isinstance(e, VsanOpsError) else describe_vcenter_error(e))
            self._leave_maintenance_after_error(host)
            raise

        # Step 5: Exit maintenance mode
        self._transition(result, HostUpdateState.EXITING_MAINTENANCE)
        try:
            self._exit_maintenance(host)
        except Exception as e:
            message = e.message if isinstance(e, VsanOpsError) else describe_vcenter_error(e)
            self._fail(result, message)
            raise MaintenanceModeExitFailure(
                f"{host.name} did not leave maintenance mode: {message}", host_name=host.name
            ) from e

        self._transition(result, HostUpdateState.DONE)
        self.log(f"[Patch] ✓ Update complete for {host.name}")

    def _patch_and_reboot(self, host, bundle_path: str, result: HostUpdateResult):
        # Step 3: Apply the patch
        self._transition(result, HostUpdateState.PATCHING)
        self.log(f"[Patch] Applying {bundle_path} to {host.name}...")
        applied = self.patch_service.apply(host, bundle_path)
        result.patch_message = applied.message
        self.log(f"[Patch] {host.name}: {applied.message or 'patch applied'}")

        # Never reboot a host that is still serving VMs
        facts = self.directory.host_facts(host)
        if not facts.in_maintenance:
            message = f"{host.name} is not in maintenance mode after patching, refusing to reboot"
            self._fail(result, message)
            raise MaintenanceModeEntryFailure(message, host_name=host.name)

        # Step 4: Reboot and wait for the host to come back
        self._transition(result, HostUpdateState.REBOOTING)
        self._request(self.maintenance.request_reboot, host, "reboot")
        self._wait(
            lambda: self.directory.host_facts(host).connection_state != "connected",
            f"{host.name} to disconnect",
            interval=self.config.disconnect_poll_interval,
        )
        self._transition(result, HostUpdateState.DISCONNECTED)
        self.log(f"[Patch] {host.name} disconnected, waiting for it to reconnect...")

        self._transition(result, HostUpdateState.RECONNECTING)
        start = self.clock()
        self._wait(
            lambda: self.directory.host_facts(host).connection_state == "connected",
            f"{host.name} to reconnect",
            interval=self.config.reconnect_poll_interval,
            warn_after=self.config.reconnect_warn_after,
        )
        self.log(f"[Patch] ✓ {host.name} reconnected after {int(self.clock() - start)}s")

    def _request(self, request_fn, host, action: str):
        try:
            return request_fn(host)
        except Exception as e:
            raise PatchError(f"Failed to {action} {host.name}: {describe_vcenter_error(e)}",
                             host_name=host.name) from e

    def _enter_maintenance(self, host):
        """Request maintenance mode and wait until the host holds no powered-on VMs."""
        facts = self.directory.host_facts(host)
        if facts.in_maintenance and facts.powered_on_vms == 0:
            self.log(f"  Host {host.name} already in maintenance mode")
            return

        try:
            vim_task = self.maintenance.request_enter(host)
        except Exception as e:
            raise MaintenanceModeEntryFailure(
                f"{host.name} rejected the maintenance mode request: {describe_vcenter_error(e)}",
                host_name=host.name,
            ) from e
        task = self.task_platform.track(vim_task, "Enter maintenance mode", entity_name=host.name)
        self.log(f"  Host has {facts.powered_on_vms} running VMs to evacuate")

        def in_maintenance() -> bool:
            current = self.directory.host_facts(host)
            if current.in_maintenance and current.powered_on_vms == 0:
                return True
            task.refresh()
            if task.state == TaskState.FAILED:
                raise MaintenanceModeEntryFailure(
                    f"{host.name} failed to enter maintenance mode: {task.error or 'task failed'}",
                    host_name=host.name,
                )
            return False

        self._wait(
            in_maintenance,
            f"{host.name} to enter maintenance mode",
            interval=self.config.maintenance_poll_interval,
            warn_after=self.config.maintenance_warn_after,
        )
        self.log(f"  [OK] {host.name} is in maintenance mode")

    def _exit_maintenance(self, host):
        self._request(self.maintenance.request_exit, host, "exit maintenance mode on")
        self._wait(
            lambda: not self.directory.host_facts(host).in_maintenance,
            f"{host.name} to exit maintenance mode",
            interval=self.config.maintenance_poll_interval,
            warn_after=self.config.maintenance_warn_after,
        )
        self.log(f"  [OK] {host.name} exited maintenance mode")

    def _leave_maintenance_after_error(self, host):
        """
        Hand the host back to the cluster after a failed update.

        Waits until vCenter reports the host out of maintenance mode; if that
        cannot be verified, MaintenanceModeExitFailure stops the batch.
        """
        self.log(f"[Patch] Attempting to exit maintenance mode on {host.name} after error...")
        try:
            self._exit_maintenance(host)
        except Exception as cleanup_error:
            message = (
                cleanup_error.message if isinstance(cleanup_error, VsanOpsError)
                else describe_vcenter_error(cleanup_error)
            )
            self.log(f"[Patch] Failed to exit maintenance mode during cleanup: {message}", "ERROR")
            raise MaintenanceModeExitFailure(
                f"{host.name} is still in maintenance mode after a failed update: {message}",
                host_name=host.name,
            ) from cleanup_error
