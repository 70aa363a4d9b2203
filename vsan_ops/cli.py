"""
Command line entry points.

    vsan-diskgroups     create vSAN disk groups on one host or a whole cluster
    esxi-rolling-patch  patch the hosts of a cluster one at a time
    vsan-cluster        enable vSAN on a cluster / audit disk group layout

Exit codes: 1 when the vCenter, datacenter, cluster or host cannot be
resolved, or when a rolling update had to halt. Per-host provisioning
problems are only reported on the console (exit 0) unless
--fail-on-host-errors is given (exit 2).
"""

import argparse
import getpass
import logging
from typing import List, Optional

from vsan_ops.config import Settings, settings as default_settings
from vsan_ops.driver import ClusterDriver, automatic_planner, manual_planner
from vsan_ops.errors import (
    ConnectionFailure,
    MaintenanceModeEntryFailure,
    MaintenanceModeExitFailure,
    PollCancelled,
    PollTimeoutError,
    ResolutionError,
    VsanOpsError,
)
from vsan_ops.esxi import EsxiPatchService, PatchOrchestrator
from vsan_ops.models import HostUpdateState, build_vmhba_assignments
from vsan_ops.polling import CancellationToken
from vsan_ops.session import VCenterSession
from vsan_ops.utils import console_logger
from vsan_ops.vcenter import ClusterDirectory, MaintenanceController, StorageQueryService, TaskPlatform
from vsan_ops.vcenter.datastore import DatastoreUploader
from vsan_ops.vsan import AutomaticDiskClassifier, DiskGroupProvisioner, ManualDiskSelector, TaskMonitor
from vsan_ops.vsan.audit import audit_disk_groups
from vsan_ops.vsan.cluster_config import enable_vsan

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_HOST_ERRORS = 2


def _add_scope_arguments(parser: argparse.ArgumentParser, with_host: bool = True):
    parser.add_argument("--vcserver", required=True, help="vCenter server hostname or IP")
    parser.add_argument("--datacenter", required=True, help="Datacenter name")
    parser.add_argument("--cluster", required=True, help="Cluster name")
    if with_host:
        parser.add_argument("--esxi", help="Only act on this host (default: every host of the cluster)")
    parser.add_argument("--user", help="vCenter user (default: VCENTER_USER or administrator@vsphere.local)")
    parser.add_argument("--deadline", type=int,
                        help="Give up any single wait after this many seconds (default: wait forever)")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARN or ERROR")


def _effective_settings(args, config: Settings) -> Settings:
    updates = {}
    if args.user:
        updates["vcenter_user"] = args.user
    if args.deadline is not None:
        updates["poll_deadline"] = args.deadline
    if args.log_level:
        updates["log_level"] = args.log_level
    for name in ("cache_min_gb", "cache_max_gb", "esxi_user"):
        value = getattr(args, name, None)
        if value is not None:
            updates[name] = value
    return config.model_copy(update=updates)


def _configure_logging(config: Settings):
    level = config.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, "WARNING" if level == "WARN" else level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    return console_logger(level)


def _open_session(args, config: Settings, log) -> VCenterSession:
    password = config.vcenter_password or getpass.getpass(f"vCenter Password for {config.vcenter_user}: ")
    session = VCenterSession(
        host=args.vcserver,
        user=config.vcenter_user,
        password=password,
        port=config.vcenter_port,
        verify_ssl=config.verify_ssl,
        logger=log,
    )
    session.connect()
    return session


def _resolve_scope(directory: ClusterDirectory, args, with_host: bool = True):
    datacenter = directory.find_datacenter(args.datacenter)
    cluster = directory.find_cluster(datacenter, args.cluster)
    hosts = directory.target_hosts(cluster, getattr(args, "esxi", None) if with_host else None)
    return datacenter, cluster, hosts


# ============================================================================
# vsan-diskgroups
# ============================================================================

def build_diskgroups_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vsan-diskgroups",
        description="Create vSAN disk groups on the hosts of a cluster",
    )
    _add_scope_arguments(parser)
    parser.add_argument("--vmhbas", help="Comma-separated adapters, one disk group per adapter (automatic mode)")
    parser.add_argument("--num-disk-groups-per-host", type=int,
                        help="Disk groups per host (default: 1 in manual mode, one per vmhba otherwise)")
    parser.add_argument("--select-disks", action="store_true", help="Pick cache and capacity disks interactively")
    parser.add_argument("--cache-min-gb", type=float, help="Lower bound of the cache disk size band (exclusive)")
    parser.add_argument("--cache-max-gb", type=float, help="Upper bound of the cache disk size band (exclusive)")
    parser.add_argument("--exact-vmhba", action="store_true",
                        help="Match --vmhbas against the adapter exactly (vmhba1 does not match vmhba10)")
    parser.add_argument("--fail-on-host-errors", action="store_true",
                        help="Exit with status 2 if any host could not be fully provisioned")
    return parser


def diskgroups_main(argv: Optional[List[str]] = None, config: Settings = default_settings) -> int:
    parser = build_diskgroups_parser()
    args = parser.parse_args(argv)
    config = _effective_settings(args, config)
    log = _configure_logging(config)

    assignments = None
    if not args.select_disks:
        if not args.vmhbas:
            parser.error("either --vmhbas or --select-disks is required")
        try:
            assignments = build_vmhba_assignments(args.vmhbas, args.num_disk_groups_per_host)
        except ValueError as e:
            parser.error(str(e))
    elif args.vmhbas:
        log("--vmhbas is ignored when --select-disks is given", "WARN")

    session = None
    try:
        session = _open_session(args, config, log)
        directory = ClusterDirectory(session)
        _, cluster, hosts = _resolve_scope(directory, args)

        storage = StorageQueryService()
        platform = TaskPlatform()
        if args.select_disks:
            planner = manual_planner(ManualDiskSelector(storage), args.num_disk_groups_per_host or 1)
        else:
            classifier = AutomaticDiskClassifier(
                storage,
                cache_min_gb=config.cache_min_gb,
                cache_max_gb=config.cache_max_gb,
                max_disks=config.max_disks_per_adapter,
                exact_adapter=config.exact_vmhba_match or args.exact_vmhba,
                logger=log,
            )
            planner = automatic_planner(classifier, assignments)

        log(f"Provisioning disk groups on {len(hosts)} host(s) of cluster {cluster.name}")
        monitor = TaskMonitor(interval=config.task_poll_interval, deadline=config.poll_deadline, logger=log)
        report = ClusterDriver(logger=log).provision(
            hosts, planner, DiskGroupProvisioner(storage, platform, logger=log), monitor,
            cancel=CancellationToken(),
        )
    except (ResolutionError, ConnectionFailure) as e:
        log(f"✗ {e.message}", "ERROR")
        return EXIT_FAILURE
    except (PollTimeoutError, PollCancelled) as e:
        log(f"✗ {e.message}", "ERROR")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        log("✗ Operation cancelled by user", "ERROR")
        return EXIT_FAILURE
    finally:
        if session is not None:
            session.disconnect()

    log(f"\n{'=' * 60}")
    log(f"Submitted {report.submitted_count} disk group(s), {report.failed_tasks} task(s) failed")
    for outcome in report.outcomes:
        for error in outcome.errors:
            message = error.message if isinstance(error, VsanOpsError) else str(error)
            log(f"  {outcome.host_name}: {message}", "WARN")

    if args.fail_on_host_errors and report.has_errors:
        return EXIT_HOST_ERRORS
    return EXIT_OK


# ============================================================================
# esxi-rolling-patch
# ============================================================================

def build_patch_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="esxi-rolling-patch",
        description="Patch the hosts of a cluster one at a time through maintenance mode",
    )
    _add_scope_arguments(parser)
    parser.add_argument("--datastore-path", help="Depot bundle as seen from ESXi, e.g. /vmfs/volumes/ds1/patch.zip")
    parser.add_argument("--local-path", help="Local depot bundle to upload first (requires --datastore)")
    parser.add_argument("--datastore", help="Datastore receiving the uploaded bundle")
    parser.add_argument("--validate", action="store_true", help="Dry run only, no host is changed")
    parser.add_argument("--esxi-user", help="ESXi shell user (default: root)")
    return parser


def _print_patch_summary(report, log):
    if report is None:
        return
    log(f"\n{'=' * 60}")
    log("Rolling update summary")
    for result in report.results:
        if result.final_state == HostUpdateState.NO_OP_NEEDED and result.evaluation is not None:
            log(f"  {result.host_name}: no update ({result.evaluation.install_count} VIB(s) to install)")
        else:
            log(f"  {result.host_name}: {result.final_state.value}")
    for host_name, error in report.errors.items():
        log(f"  {host_name}: {error}", "ERROR")
    if report.halted:
        log(f"Rolling update halted at {report.halted_at}", "ERROR")


def rolling_patch_main(argv: Optional[List[str]] = None, config: Settings = default_settings) -> int:
    parser = build_patch_parser()
    args = parser.parse_args(argv)
    if not args.datastore_path and not args.local_path:
        parser.error("either --datastore-path or --local-path is required")
    if args.local_path and not args.datastore:
        parser.error("--local-path requires --datastore")

    config = _effective_settings(args, config)
    log = _configure_logging(config)
    esxi_password = config.esxi_password or getpass.getpass(f"ESXi Password for {config.esxi_user}: ")

    session = None
    driver = ClusterDriver(logger=log)
    try:
        session = _open_session(args, config, log)
        directory = ClusterDirectory(session)
        datacenter, cluster, hosts = _resolve_scope(directory, args)

        bundle_path = args.datastore_path
        if args.local_path:
            bundle_path = DatastoreUploader(session, logger=log).upload(
                args.local_path, datacenter.name, args.datastore
            )

        orchestrator = PatchOrchestrator(
            directory,
            MaintenanceController(logger=log),
            EsxiPatchService(
                username=config.esxi_user,
                password=esxi_password,
                port=config.esxi_ssh_port,
                connect_timeout=config.esxi_ssh_timeout,
                command_timeout=config.patch_command_timeout,
            ),
            TaskPlatform(),
            config=config,
            logger=log,
            cancel=CancellationToken(),
        )
        mode = "Validating" if args.validate else "Patching"
        log(f"{mode} {len(hosts)} host(s) of cluster {cluster.name} with {bundle_path}")
        report = driver.rolling_update(hosts, orchestrator, bundle_path, validate_only=args.validate)
    except (ResolutionError, ConnectionFailure) as e:
        log(f"✗ {e.message}", "ERROR")
        return EXIT_FAILURE
    except FileNotFoundError as e:
        log(f"✗ {e}", "ERROR")
        return EXIT_FAILURE
    except (MaintenanceModeEntryFailure, MaintenanceModeExitFailure):
        _print_patch_summary(driver.last_report, log)
        return EXIT_FAILURE
    except (PollTimeoutError, PollCancelled, VsanOpsError) as e:
        log(f"✗ {e.message}", "ERROR")
        _print_patch_summary(driver.last_report, log)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        log("✗ Operation cancelled by user", "ERROR")
        _print_patch_summary(driver.last_report, log)
        return EXIT_FAILURE
    finally:
        if session is not None:
            session.disconnect()

    _print_patch_summary(report, log)
    return EXIT_OK


# ============================================================================
# vsan-cluster
# ============================================================================

def build_cluster_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vsan-cluster",
        description="Cluster level vSAN operations",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    enable = subparsers.add_parser("enable", help="Enable vSAN on the cluster (manual disk claiming)")
    _add_scope_arguments(enable, with_host=False)
    audit = subparsers.add_parser("audit", help="Report hosts whose disk group layout differs")
    _add_scope_arguments(audit, with_host=False)
    return parser


def cluster_main(argv: Optional[List[str]] = None, config: Settings = default_settings) -> int:
    args = build_cluster_parser().parse_args(argv)
    config = _effective_settings(args, config)
    log = _configure_logging(config)

    session = None
    try:
        session = _open_session(args, config, log)
        directory = ClusterDirectory(session)
        _, cluster, hosts = _resolve_scope(directory, args, with_host=False)

        if args.command == "enable":
            monitor = TaskMonitor(interval=config.task_poll_interval, deadline=config.poll_deadline, logger=log)
            enable_vsan(cluster, TaskPlatform(), monitor, logger=log)
            return EXIT_OK

        log(f"Auditing disk groups on {len(hosts)} host(s) of cluster {cluster.name}")
        audit_disk_groups(hosts, logger=log)
        return EXIT_OK
    except (ResolutionError, ConnectionFailure) as e:
        log(f"✗ {e.message}", "ERROR")
        return EXIT_FAILURE
    except (PollTimeoutError, PollCancelled, RuntimeError) as e:
        log(f"✗ {e}", "ERROR")
        return EXIT_FAILURE
    finally:
        if session is not None:
            session.disconnect()
