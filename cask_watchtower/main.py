"""
Main entry point for the Cask Watchtower system.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from typing import List, Optional

import yaml

from .components.alert_command_processor import AlertCommandProcessor
from .components.message_dispatcher import DiscordDirectMessageDispatcher
from .models.catalog import CatalogRecord, CycleKind
from .models.command import AlertCommand
from .models.config import Configuration
from .orchestrator import CycleOrchestrator
from .services.config_manager import ConfigurationManager
from .services.origin_lookup import OriginLookup
from .services.persistence import SQLitePersistenceGateway
from .utils.logging import get_logger, setup_logging


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="cask-watchtower",
        description="Mirror the SMWS catalog and send Discord alerts for new casks.",
    )
    parser.add_argument("-c", "--config", help="Path to configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a single cycle now")
    run_parser.add_argument("kind", choices=[kind.value for kind in CycleKind])

    schedule_parser = subparsers.add_parser(
        "schedule", help="Run live and archive cycles on their intervals"
    )
    schedule_parser.add_argument(
        "--no-initial-run",
        action="store_true",
        help="Wait a full interval before the first cycles",
    )

    alerts_parser = subparsers.add_parser("alerts", help="Manage user alerts")
    alerts_sub = alerts_parser.add_subparsers(dest="alerts_command", required=True)

    def add_owner_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--user", required=True, help="Discord user id")
        sub.add_argument("--scope", required=True, help="Discord server id")

    add_parser = alerts_sub.add_parser("add", help="Add an alert")
    add_owner_args(add_parser)
    add_parser.add_argument("kind", help="distillery, region or age")
    add_parser.add_argument("value", nargs="+", help="Alert value")

    list_parser = alerts_sub.add_parser("list", help="List a user's alerts")
    add_owner_args(list_parser)

    remove_parser = alerts_sub.add_parser("remove", help="Remove an alert")
    add_owner_args(remove_parser)
    remove_parser.add_argument("alert_id", help="Alert id")

    test_parser = alerts_sub.add_parser(
        "test", help="Match alerts against available mirror records"
    )
    test_parser.add_argument(
        "--dry-run", action="store_true", help="Log matches without sending messages"
    )

    config_parser = subparsers.add_parser("config", help="Configuration helpers")
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)
    config_sub.add_parser("validate", help="Check a configuration file")
    config_sub.add_parser("template", help="Print a starter configuration")

    mirror_parser = subparsers.add_parser("mirror", help="Inspect the live mirror")
    mirror_sub = mirror_parser.add_subparsers(dest="mirror_command", required=True)
    mirror_list_parser = mirror_sub.add_parser(
        "list", help="List every live record, newest first"
    )
    mirror_list_parser.add_argument(
        "--json", action="store_true", help="Print records as JSON with all fields"
    )

    db_parser = subparsers.add_parser("db", help="Database maintenance")
    db_sub = db_parser.add_subparsers(dest="db_command", required=True)
    db_sub.add_parser("init", help="Create missing tables")

    return parser


def _needs_discord(args: argparse.Namespace) -> bool:
    if args.command in ("run", "schedule"):
        return True
    return args.command == "alerts" and args.alerts_command == "test" and not args.dry_run


def _build_orchestrator(
    config: Configuration, gateway: SQLitePersistenceGateway, with_channel: bool
) -> CycleOrchestrator:
    channel = DiscordDirectMessageDispatcher.from_config(config.discord) if with_channel else None
    return CycleOrchestrator(
        config=config,
        gateway=gateway,
        channel=channel,
        origin_lookup=OriginLookup.from_file(config.origin_lookup_path),
    )


async def async_main(args: argparse.Namespace, config: Configuration) -> int:
    """Run cycle commands inside the event loop."""
    gateway = SQLitePersistenceGateway(config.database.path)
    orchestrator = _build_orchestrator(config, gateway, with_channel=True)

    if args.command == "schedule":
        await orchestrator.run_forever(run_immediately=not args.no_initial_run)
        return 0

    summary = await orchestrator.run_cycle(CycleKind(args.kind))
    print(json.dumps(summary.to_dict(), indent=2, default=str))
    return 0 if summary.success else 1


def run_config_command(args: argparse.Namespace) -> int:
    """Validate a configuration file or print a template, without loading it."""
    if args.config_command == "template":
        template = ConfigurationManager.get_config_template()
        print(yaml.safe_dump(template, sort_keys=False), end="")
        return 0

    try:
        manager = ConfigurationManager(args.config)
        manager.validate_config_file(manager.config_path)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    print(f"Configuration file {manager.config_path} is valid")
    return 0


def format_mirror_line(record: CatalogRecord) -> str:
    """One-line summary of a live mirror record."""
    state = "available" if record.available else "unavailable"
    parts = [
        f"[{record.natural_code}] {record.display_name}",
        record.price_text or "no price",
        state,
    ]
    if record.is_recently_added:
        parts.append("new")
    return " | ".join(parts)


def list_mirror(gateway: SQLitePersistenceGateway, as_json: bool) -> int:
    records = gateway.fetch_live_records()
    if as_json:
        print(json.dumps([asdict(record) for record in records], indent=2, default=str))
        return 0

    if not records:
        print("The live mirror is empty.")
        return 0

    for record in records:
        print(format_mirror_line(record))
    print(f"{len(records)} records")
    return 0


def run_local_command(args: argparse.Namespace, config: Configuration) -> int:
    """Run alert, mirror and database commands that need no browser."""
    gateway = SQLitePersistenceGateway(config.database.path)

    if args.command == "db":
        print(f"Database initialized at {config.database.path}")
        return 0

    if args.command == "mirror":
        return list_mirror(gateway, args.json)

    if args.alerts_command == "test":
        orchestrator = _build_orchestrator(config, gateway, with_channel=not args.dry_run)
        result = orchestrator.run_alert_test(deliver=not args.dry_run)
        print(json.dumps(result, indent=2))
        return 0

    command_args = {
        "add": lambda: [args.kind, *args.value],
        "list": lambda: [],
        "remove": lambda: [args.alert_id],
    }[args.alerts_command]()

    result = AlertCommandProcessor(gateway).process_command(
        AlertCommand(
            command=args.alerts_command,
            user_id=args.user,
            scope_id=args.scope,
            args=command_args,
        )
    )
    print(result.message)
    return 0 if result.success else 1


def main(argv: Optional[List[str]] = None) -> None:
    """Main application entry point."""
    args = build_parser().parse_args(argv)

    if args.command == "config":
        sys.exit(run_config_command(args))

    try:
        config = ConfigurationManager(args.config).load_config(
            require_discord=_needs_discord(args)
        )
    except (ValueError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(
        log_dir=config.logging.directory,
        log_level=args.log_level or config.logging.level,
    )
    logger = get_logger("main")
    logger.info(
        "Starting Cask Watchtower",
        extra={"command": args.command, "config_path": args.config},
    )

    try:
        if args.command in ("run", "schedule"):
            exit_code = asyncio.run(async_main(args, config))
        else:
            exit_code = run_local_command(args, config)
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        exit_code = 130
    except Exception as e:
        logger.error("Application failed", extra={"error": str(e)}, exc_info=True)
        print(f"Fatal error: {e}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
