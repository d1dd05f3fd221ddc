"""
Registry management CLI.

Usage:
  python -m circles_registry.tools.manage refresh [--mode auto|full|incremental] [--batch-size N] [--max-users N]
  python -m circles_registry.tools.manage status 0xabc...
  python -m circles_registry.tools.manage stats
  python -m circles_registry.tools.manage users [--verified]
  python -m circles_registry.tools.manage clear-cursor
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Callable

from circles_registry.registry_logging import get_logger
from circles_registry.service import CirclesUsersService, build_service
from circles_registry.utils.address_utils import extract_address, is_valid_address

logger = get_logger(__name__)


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value}")
    if n <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {value}")
    return n


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_refresh(service: CirclesUsersService, args: argparse.Namespace) -> int:
    result = service.refresh(args.mode, batch_size=args.batch_size, max_users=args.max_users)
    _print_json(result.to_dict())
    return 0 if result.success else 1


def cmd_status(service: CirclesUsersService, args: argparse.Namespace) -> int:
    address = extract_address(args.address) or args.address.strip()
    if not is_valid_address(address):
        print(f"[manage] ERROR: not an address: {args.address}", file=sys.stderr)
        return 2
    out = {"address": address}
    out.update(service.check_status(address).to_dict())
    _print_json(out)
    return 0


def cmd_stats(service: CirclesUsersService, args: argparse.Namespace) -> int:
    out = service.get_statistics().to_dict()
    out["needs_refresh"] = service.needs_refresh()
    _print_json(out)
    return 0


def cmd_users(service: CirclesUsersService, args: argparse.Namespace) -> int:
    users = service.get_cached_users()
    if args.verified:
        users = [u for u in users if u.is_verified]
    _print_json([u.to_dict() for u in users])
    return 0


def cmd_clear_cursor(service: CirclesUsersService, args: argparse.Namespace) -> int:
    return 0 if service.clear_cursor() else 1


COMMANDS: dict[str, Callable[[CirclesUsersService, argparse.Namespace], int]] = {
    "refresh": cmd_refresh,
    "status": cmd_status,
    "stats": cmd_stats,
    "users": cmd_users,
    "clear-cursor": cmd_clear_cursor,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage the Circles users cache.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_refresh = sub.add_parser("refresh", help="Fetch users from the indexer and update the cache")
    p_refresh.add_argument("--mode", choices=("auto", "full", "incremental"), default="auto")
    p_refresh.add_argument("--batch-size", type=_positive_int, default=None, help="Rows per page (default from settings)")
    p_refresh.add_argument("--max-users", type=_positive_int, default=None, help="User cap (new users in incremental mode)")

    p_status = sub.add_parser("status", help="Verification status of one address (cache only)")
    p_status.add_argument("address", help="0x address, or text containing one")

    sub.add_parser("stats", help="Cache statistics and whether a refresh is due")

    p_users = sub.add_parser("users", help="Dump cached users as JSON")
    p_users.add_argument("--verified", action="store_true", help="Only verified users")

    sub.add_parser("clear-cursor", help="Forget the cursor so the next refresh is full")
    return parser


def main(argv: list[str] | None = None, service: CirclesUsersService | None = None) -> int:
    args = build_parser().parse_args(argv)
    service = service or build_service()
    logger.info("manage_command", command=args.command)
    return COMMANDS[args.command](service, args)


if __name__ == "__main__":
    sys.exit(main())
