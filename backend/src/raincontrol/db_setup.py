"""Utility CLI for creating and seeding the ledger database."""

from __future__ import annotations

import argparse
import sys

from sqlalchemy.exc import SQLAlchemyError

from .commands import SQLCommandRepository
from .database import get_engine, get_session_factory, is_database_configured, prepare_schema
from .system_settings import DEFAULT_SETTINGS, SQLSettingRepository


def ensure_configured() -> None:
    if not is_database_configured():
        raise SystemExit("RAIN_DB_URL is not set; cannot run database commands.")


def init_db() -> None:
    """Create database tables if they do not already exist."""
    ensure_configured()
    engine = get_engine()
    if engine is None:
        raise SystemExit("Unable to create engine for configured database URL.")

    prepare_schema(engine)
    print("Database tables ensured.")


def seed_db(*, force: bool = False) -> None:
    """Insert the default controller settings, keeping existing values unless forced."""
    ensure_configured()
    repository = SQLSettingRepository(get_session_factory())

    try:
        inserted = 0
        for name, (value, description) in DEFAULT_SETTINGS.items():
            if repository.get(name) is not None and not force:
                continue
            repository.upsert(name, value, description=description)
            inserted += 1
    except SQLAlchemyError as exc:
        raise SystemExit(f"Failed to seed database: {exc}") from exc

    if inserted:
        print(f"Seeded {inserted} setting(s).")
    else:
        print("Database already contains settings; skipping.")


def show_pending(limit: int = 100) -> None:
    """Print commands that never reached a terminal state."""
    ensure_configured()
    repository = SQLCommandRepository(get_session_factory())
    pending = repository.list_pending(limit)
    if not pending:
        print("No pending commands.")
        return
    for command in pending:
        print(
            f"#{command.id} {command.command_type.value} "
            f"created {command.created_at.isoformat()} data={command.command_data}"
        )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage the rain control ledger database.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create database tables.")
    seed_parser = sub.add_parser("seed", help="Insert default controller settings.")
    seed_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite settings that already exist.",
    )
    pending_parser = sub.add_parser(
        "pending", help="List commands left pending by an interrupted request."
    )
    pending_parser.add_argument("--limit", type=int, default=100)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    if args.command == "init":
        init_db()
    elif args.command == "seed":
        seed_db(force=args.force)
    elif args.command == "pending":
        show_pending(args.limit)
    else:
        raise SystemExit(f"Unknown command: {args.command}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main(sys.argv[1:])
