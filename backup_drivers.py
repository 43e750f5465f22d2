#!/usr/bin/env python3
"""Back up third-party driver packages, or scan INF folders and archives."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from driver_backup.user_settings import SettingsStore, UserSettings
from services.drivers import BackupResult, DriverBackupService, ScanResult
from services.errors import DriverBackupError
from services.grouping import GroupStrategy
from services.inf_parser import InfParser
from services.privilege import ensure_admin, validate_output_directory

logger = logging.getLogger("backup_drivers")


def _build_parser(settings: UserSettings) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", default=settings.verbose, help="Enable debug logging")
    common.add_argument(
        "--group-by",
        choices=[strategy.value for strategy in GroupStrategy],
        default=settings.group_strategy,
        help=f"Grouping strategy (default: {settings.group_strategy})",
    )
    common.add_argument(
        "--bus-prefix",
        action="append",
        default=[],
        metavar="PREFIX",
        help="Extra hardware ID bus prefix to accept, e.g. SCSI (repeatable)",
    )

    parser = argparse.ArgumentParser(description="Back up and inspect Windows driver packages.")
    commands = parser.add_subparsers(dest="command", required=True)

    backup = commands.add_parser("backup", parents=[common], help="Export installed third-party driver packages")
    backup.add_argument(
        "-o",
        "--output",
        default=settings.output_root,
        help=f"Output root for the timestamped backup folder (default: {settings.output_root})",
    )
    backup.add_argument("--dry-run", action="store_true", help="Show what would be exported without writing anything")

    scan = commands.add_parser("scan", parents=[common], help="Parse every INF file under a folder")
    scan.add_argument("path", help="Folder (searched recursively) or single .inf file")
    scan.add_argument("-o", "--output", help="Write scan_summary.csv and scan_report.txt to this folder")

    inspect = commands.add_parser("inspect", parents=[common], help="Extract a driver archive and scan it")
    inspect.add_argument("archive", help="Driver archive (.zip, .cab, .7z, .exe) or .inf file")
    inspect.add_argument("-o", "--output", help="Write scan_summary.csv and scan_report.txt to this folder")
    return parser


def _print_backup(result: BackupResult) -> None:
    mode = " (dry run)" if result.dry_run else ""
    print(f"Driver packages attempted{mode}: {result.attempted}")
    print(f"  succeeded: {result.succeeded}")
    print(f"  failed: {result.failed}")
    for outcome in result.outcomes:
        if not outcome.success:
            print(f"  - {outcome.package.identity}: {outcome.message}")
    if result.dry_run:
        for plan in result.plans:
            for package in plan.packages:
                print(f"  would export {package.identity} -> {plan.package_path(package)}")
    elif result.backup_dir is not None:
        print(f"Backup folder: {result.backup_dir}")


def _print_scan(result: ScanResult) -> None:
    print(f"INF files scanned: {len(result.files)}")
    print(f"  failed to parse: {len(result.failures)}")
    print(f"Driver records: {len(result.records)} in {len(result.groups)} group(s)")
    for group in result.groups:
        print(f"  {group.label}: {len(group)}")
    if result.output_dir is not None:
        print(f"Reports written to {result.output_dir}")


def main(argv: list[str] | None = None) -> int:
    settings = SettingsStore().load()
    args = _build_parser(settings).parse_args(argv)

    logging.basicConfig(
        format="[%(levelname)s] %(message)s",
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    try:
        strategy = GroupStrategy.parse(args.group_by)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    parser = InfParser.with_extra_prefixes([*settings.extra_bus_prefixes, *args.bus_prefix])
    service = DriverBackupService(parser=parser)

    try:
        if args.command == "backup":
            output_root = Path(args.output)
            if not args.dry_run:
                ensure_admin()
                validate_output_directory(output_root)
            records = service.collect()
            result = service.backup(records, output_root, strategy=strategy, dry_run=args.dry_run)
            _print_backup(result)
            return 0
        output = Path(args.output) if args.output else None
        if args.command == "scan":
            scan_result = service.scan(Path(args.path), strategy=strategy, output_dir=output)
        else:
            scan_result = service.inspect(Path(args.archive), strategy=strategy, output_dir=output)
        _print_scan(scan_result)
        return 0
    except DriverBackupError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
