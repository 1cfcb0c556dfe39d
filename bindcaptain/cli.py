"""Command line interface for BindCaptain.

Parses arguments, applies command line overrides to the configuration and
runs the requested operation against the wired services. Human readable
status lines go to stdout; the exit code is 0 on success (or a dry run),
1 on any error.
"""
import argparse
import dataclasses
import logging
import os
import sys
from typing import List, Optional

from bindcaptain import BindCaptainError, __version__
from bindcaptain.config import Config, MODES, CONFLICT_POLICIES, running_in_container
from bindcaptain.models import OperationResult
from bindcaptain.services.record_manager import RecordConflictError


logger = logging.getLogger(__name__)


STATUS_SYMBOLS = {
    "success": "✓",
    "error": "✗",
    "warning": "!",
    "info": "i",
}

DEFAULT_LIST_LIMIT = 20


def print_status(status: str, message: str) -> None:
    """Print a status line prefixed with its symbol."""
    symbol = STATUS_SYMBOLS.get(status, "i")
    stream = sys.stderr if status == "error" else sys.stdout
    print(f"{symbol} {message}", file=stream)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="bindcaptain",
        description="Manage DNS records in BIND zone files",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--mode", choices=MODES, help="Run BIND tools locally or via the container")
    parser.add_argument("--bind-dir", help="Zone file root directory")
    parser.add_argument("--named-conf", help="Path to named.conf")
    parser.add_argument("--backup-dir", help="Zone backup directory")
    parser.add_argument("--log-file", help="Action log file")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    conflict = argparse.ArgumentParser(add_help=False)
    conflict.add_argument(
        "--on-conflict",
        choices=CONFLICT_POLICIES,
        help="What to do when the record already exists",
    )
    conflict.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing records (same as --on-conflict overwrite)",
    )

    p = subparsers.add_parser("create-record", parents=[conflict], help="Create an A record")
    p.add_argument("hostname")
    p.add_argument("domain")
    p.add_argument("ip_address")
    p.add_argument("ttl", nargs="?", type=int, help="Record TTL (zone default when omitted)")

    p = subparsers.add_parser("create-cname", parents=[conflict], help="Create a CNAME record")
    p.add_argument("alias")
    p.add_argument("domain")
    p.add_argument("target")

    p = subparsers.add_parser("create-txt", parents=[conflict], help="Create a TXT record")
    p.add_argument("name")
    p.add_argument("domain")
    p.add_argument("text")

    p = subparsers.add_parser("delete-record", help="Delete records of a name")
    p.add_argument("name")
    p.add_argument("domain")
    p.add_argument("record_type", nargs="?")
    p.add_argument("-y", "--yes", action="store_true", help="Delete without asking for confirmation")

    p = subparsers.add_parser("list-records", help="List records of one or all domains")
    p.add_argument("domain", nargs="?")
    p.add_argument("record_type", nargs="?")
    p.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_LIST_LIMIT,
        help="Records shown per domain, 0 for all (default: %(default)s)",
    )

    subparsers.add_parser("domains", help="List managed domains")
    subparsers.add_parser("show-environment", help="Show the resolved environment")

    p = subparsers.add_parser("refresh", help="Validate all zones and reload BIND on changes")
    p.add_argument("--force-reload", action="store_true", help="Reload even without changes")

    p = subparsers.add_parser("backups", help="List zone backups of a domain")
    p.add_argument("domain")

    subparsers.add_parser("serve", help="Run the HTTP API and refresh scheduler")

    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Return a copy of config with command line values applied."""
    overrides = {}
    for field_name in ("bind_dir", "named_conf", "backup_dir", "log_file"):
        value = getattr(args, field_name, None)
        if value:
            overrides[field_name] = value

    mode = getattr(args, "mode", None)
    if mode:
        if mode == "auto":
            mode = "local" if running_in_container() else "container"
        overrides["mode"] = mode

    if not overrides:
        return config
    return dataclasses.replace(config, **overrides)


def conflict_policy(args: argparse.Namespace) -> Optional[str]:
    if getattr(args, "force", False):
        return "overwrite"
    return getattr(args, "on_conflict", None)


def dispatch(args: argparse.Namespace, config: Config, services: dict) -> int:
    """Run the command selected by args.

    Returns:
        Process exit code
    """
    handler = COMMANDS[args.command]
    try:
        return handler(args, config, services)
    except RecordConflictError as e:
        print_status("error", f"{e} (use --force to overwrite)")
        return 1
    except BindCaptainError as e:
        print_status("error", str(e))
        return 1


def report(result: OperationResult) -> int:
    """Print an operation result and map it to an exit code."""
    if result.is_success:
        print_status("success", result.message)
        if result.new_serial is not None:
            print_status("info", f"Serial: {result.old_serial} -> {result.new_serial}")
        return 0

    if result.is_aborted:
        print_status("warning", result.message)
        for line in result.lines:
            print(f"    {line}")
        return 0

    print_status("error", result.message)
    if result.diagnostics:
        print(result.diagnostics.rstrip())
    return 1


def cmd_create_record(args, config, services) -> int:
    result = services["record_manager"].create_a_record(
        args.hostname, args.domain, args.ip_address,
        ttl=args.ttl, on_conflict=conflict_policy(args),
    )
    return report(result)


def cmd_create_cname(args, config, services) -> int:
    result = services["record_manager"].create_cname(
        args.alias, args.domain, args.target, on_conflict=conflict_policy(args),
    )
    return report(result)


def cmd_create_txt(args, config, services) -> int:
    result = services["record_manager"].create_txt(
        args.name, args.domain, args.text, on_conflict=conflict_policy(args),
    )
    return report(result)


def cmd_delete_record(args, config, services) -> int:
    result = services["record_manager"].delete_record(
        args.name, args.domain, record_type=args.record_type, confirm=args.yes,
    )
    code = report(result)
    if result.is_aborted:
        print_status("info", "Re-run with --yes to delete these records")
    return code


def cmd_list_records(args, config, services) -> int:
    listing = services["record_manager"].list_records(args.domain, args.record_type)
    if not listing:
        print_status("warning", "No zone files found")
        return 0

    for domain, records in listing.items():
        print(f"=== {domain} ({len(records)} records) ===")
        shown = records if args.limit <= 0 else records[:args.limit]
        for record in shown:
            ttl = record.ttl or ""
            print(f"  {record.owner:<24} {ttl:<8} {record.record_type:<6} {record.value}")
        if len(shown) < len(records):
            print(f"  ... {len(records) - len(shown)} more (use --limit 0 to show all)")
    return 0


def cmd_domains(args, config, services) -> int:
    domains = services["record_manager"].domains()
    if not domains:
        print_status("warning", f"No managed domains found in {config.named_conf}")
        return 0
    for domain in domains:
        print(domain)
    return 0


def cmd_show_environment(args, config, services) -> int:
    print("BindCaptain environment")
    print(f"  Mode:             {config.mode}")
    print(f"  Zone directory:   {config.bind_dir}")
    print(f"  named.conf:       {config.named_conf}")
    print(f"  Backup directory: {config.backup_dir}")
    print(f"  Log file:         {config.log_file}")
    print(f"  Default TTL:      {config.default_ttl}")
    print(f"  Conflict policy:  {config.conflict_policy}")
    if config.is_container_mode:
        print(f"  Container:        {config.container_name} ({config.container_runtime})")

    for label, path in (("Zone directory", config.bind_dir), ("named.conf", config.named_conf)):
        if not os.path.exists(path):
            print_status("warning", f"{label} not found: {path}")

    domains = services["record_manager"].domains()
    print(f"  Domains:          {', '.join(domains) if domains else '(none)'}")
    return 0


def cmd_refresh(args, config, services) -> int:
    summary = services["refresh_service"].run(force_reload=args.force_reload)
    if summary is None:
        print_status("warning", "Refresh already in progress")
        return 1

    if summary.error_message:
        print_status("error", summary.error_message)
        return 1
    if not summary.config_valid:
        print_status("error", "Named configuration is invalid")
    for name in summary.zone_errors:
        print_status("error", f"Zone {name} is invalid")
    for name in summary.missing_zones:
        print_status("warning", f"Zone file for {name} not found")
    if not summary.is_valid:
        return 1

    print_status("success", f"Checked {len(summary.zones_checked)} zone(s)")
    if summary.reloaded:
        print_status("success", "BIND reloaded")
    elif summary.changes_detected or args.force_reload:
        print_status("error", "BIND reload failed")
        return 1
    else:
        print_status("info", "No changes detected, BIND not reloaded")
    return 0


def cmd_backups(args, config, services) -> int:
    backups = services["record_manager"].list_backups(args.domain)
    if not backups:
        print_status("info", f"No backups for {args.domain}")
        return 0
    for path in backups:
        print(path)
    return 0


COMMANDS = {
    "create-record": cmd_create_record,
    "create-cname": cmd_create_cname,
    "create-txt": cmd_create_txt,
    "delete-record": cmd_delete_record,
    "list-records": cmd_list_records,
    "domains": cmd_domains,
    "show-environment": cmd_show_environment,
    "refresh": cmd_refresh,
    "backups": cmd_backups,
}


def run(argv: Optional[List[str]] = None, services: Optional[dict] = None) -> int:
    """Parse argv and run a command against the given services.

    Used by tests; the console entry point goes through main.main.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    config = apply_overrides(Config.from_env(), args)
    return dispatch(args, config, services)
