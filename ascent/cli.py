"""Operational commands for the grading engine.

Usage:
    ascent check-db
    ascent reconcile ATHLETE_ID --actor-id USER_ID [--role gym_admin]
    ascent progress ATHLETE_ID

Examples:
    ascent check-db                                   Verify database connectivity
    ascent reconcile 6f1c... --actor-id 0b7e...       Rebuild XP from the ledger
"""

import argparse
import asyncio
import json
import sys
from uuid import UUID

from ascent.config import get_settings
from ascent.context import Actor, EngineContext, Role
from ascent.experience.service import ExperienceService
from ascent.infrastructure.database import close_db, get_session_factory, init_db
from ascent.repositories.exceptions import RepositoryError
from ascent.repositories.unit_of_work import UnitOfWork
from ascent.shared.utils.logging import (
    bind_command_context,
    clear_command_context,
    configure_from_settings,
    get_logger,
)

logger = get_logger(__name__)


def _experience_service() -> ExperienceService:
    factory = get_session_factory()
    return ExperienceService(lambda: UnitOfWork(factory), get_settings())


async def _check_db(args: argparse.Namespace) -> int:
    try:
        await init_db()
    except RuntimeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print("database ok")
    return 0


async def _reconcile(args: argparse.Namespace) -> int:
    ctx = EngineContext(actor=Actor(user_id=args.actor_id, role=Role(args.role)))
    result = await _experience_service().reconcile(ctx, args.athlete_id)
    print(result.model_dump_json(indent=2))
    return 0


async def _progress(args: argparse.Namespace) -> int:
    rows = await _experience_service().get_progress(args.athlete_id)
    print(json.dumps([row.model_dump(mode="json") for row in rows], indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ascent",
        description="Grading and progression engine tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check-db", help="Verify database connectivity")
    check.set_defaults(handler=_check_db)

    reconcile = commands.add_parser("reconcile", help="Recompute an athlete's XP from the ledger")
    reconcile.add_argument("athlete_id", type=UUID)
    reconcile.add_argument("--actor-id", type=UUID, required=True, help="Administrator user id")
    reconcile.add_argument(
        "--role",
        default=Role.SYSTEM_ADMIN.value,
        choices=[r.value for r in Role],
        help="Role of the acting administrator (default: system_admin)",
    )
    reconcile.set_defaults(handler=_reconcile)

    progress = commands.add_parser("progress", help="Show an athlete's XP and levels per domain")
    progress.add_argument("athlete_id", type=UUID)
    progress.set_defaults(handler=_progress)

    return parser


async def _run(args: argparse.Namespace) -> int:
    actor_id = getattr(args, "actor_id", None)
    bind_command_context(args.command, actor_id=str(actor_id) if actor_id else None)
    try:
        return await args.handler(args)
    finally:
        await close_db()
        clear_command_context()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_from_settings()
    try:
        return asyncio.run(_run(args))
    except RepositoryError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
