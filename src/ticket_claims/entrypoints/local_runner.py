"""
Local runner for operators and development.

Drives the claim service against whatever store the environment configures,
so a stuck claim can be inspected or released from a shell.
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from loguru import logger

from ..contracts import PreviousState
from ..service import TicketClaimService, build_service
from ..utils import setup_logging


async def run_command(args: argparse.Namespace, service: TicketClaimService) -> Dict[str, Any]:
    """
    Run one subcommand.

    Args:
        args: Parsed CLI arguments.
        service: Claim service to drive.

    Returns:
        JSON-ready result dict. ``ok`` is False for failure outcomes.
    """
    if args.command == "store":
        record = await service.store_ticket_notification(args.ticket_id, args.chat_id, args.message_id)
        if record is None:
            return {"ok": False, "reason": "storage_error"}
        return {"ok": True, "record": record.model_dump(mode="json", by_alias=True)}

    if args.command == "claim":
        previous = None
        if args.previous_status or args.previous_assignee:
            previous = PreviousState(
                status=args.previous_status,
                assignee_name=args.previous_assignee,
            )
        result = await service.claim_ticket_notification(
            args.chat_id, args.message_id, args.identity, args.name or args.identity, previous
        )
        return result.model_dump(mode="json", by_alias=True)

    if args.command == "unclaim":
        result = await service.unclaim_ticket_notification(args.chat_id, args.message_id, args.identity)
        return result.model_dump(mode="json", by_alias=True)

    if args.command == "show":
        record = await service.load_ticket_notification(args.chat_id, args.message_id)
        if record is None:
            return {"ok": False, "reason": "not_found"}
        holder = await service.coordinator.lock_holder(record.key)
        return {
            "ok": True,
            "record": record.model_dump(mode="json", by_alias=True),
            "lockHolder": holder,
        }

    healthy = await service.coordinator.ping()
    return {"ok": healthy, "backend": service.coordinator.describe()}


async def _run(args: argparse.Namespace) -> Dict[str, Any]:
    async with build_service() as service:
        return await run_command(args, service)


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for the runner."""
    parser = argparse.ArgumentParser(
        description="Inspect and drive ticket claims from a shell."
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (defaults to LOG_LEVEL)",
    )
    parser.add_argument(
        "--no-pretty",
        action="store_true",
        help="Disable pretty printing",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    store = sub.add_parser("store", help="Record a posted ticket notification")
    store.add_argument("ticket_id")
    store.add_argument("chat_id")
    store.add_argument("message_id")

    claim = sub.add_parser("claim", help="Claim a notification")
    claim.add_argument("chat_id")
    claim.add_argument("message_id")
    claim.add_argument("identity", help="Claimant identity, e.g. phone number")
    claim.add_argument("-n", "--name", help="Claimant display name")
    claim.add_argument("--previous-status", help="Ticket status before the claim")
    claim.add_argument("--previous-assignee", help="Technician assigned before the claim")

    unclaim = sub.add_parser("unclaim", help="Release a claim")
    unclaim.add_argument("chat_id")
    unclaim.add_argument("message_id")
    unclaim.add_argument("identity", help="Identity of the current claimant")

    show = sub.add_parser("show", help="Print a stored record and its lock holder")
    show.add_argument("chat_id")
    show.add_argument("message_id")

    sub.add_parser("ping", help="Check the configured store")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)

    logger.debug(f"Running {args.command}")
    result = asyncio.run(_run(args))

    print(json.dumps(result, ensure_ascii=False, indent=None if args.no_pretty else 2))

    # Exit with appropriate code
    if not result.get("ok"):
        sys.exit(1)


if __name__ == "__main__":
    main()
