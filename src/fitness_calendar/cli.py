"""Command-line interface for the calendar sync service."""

import argparse
import asyncio
import logging
import sys

from fitness_calendar.config import get_settings


async def _init_db() -> None:
    from fitness_calendar.database.connection import close_db, create_tables, init_db

    await init_db()
    try:
        await create_tables()
    finally:
        await close_db()


async def _sync(user_id: str) -> int:
    from fitness_calendar.auth import ProfileOwnerResolver, TokenManager, get_google_oauth
    from fitness_calendar.calendar.sync import CalendarSyncService
    from fitness_calendar.database.connection import close_db, get_db, init_db
    from fitness_calendar.exceptions import CalendarSyncError

    await init_db()
    try:
        async with get_db() as db:
            service = CalendarSyncService(
                db,
                TokenManager(db, get_google_oauth()),
                ProfileOwnerResolver(db),
            )
            try:
                events = await service.sync_from_remote(user_id)
            except CalendarSyncError as e:
                print(f"Sync failed: {e}", file=sys.stderr)
                return 1
    finally:
        await close_db()

    for event in events:
        when = event.start_time or "all day"
        print(f"{event.date} {when:>8}  {event.title}")
    print(f"{len(events)} events")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Fitness Calendar Sync - Keep fitness events and Google Calendar in step"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default: HOST setting)")
    serve_parser.add_argument("--port", type=int, help="Port (default: PORT setting)")
    serve_parser.add_argument(
        "--reload", action="store_true", help="Reload on code changes"
    )

    # Init-db command
    subparsers.add_parser("init-db", help="Create database tables (development only)")

    # Sync command
    sync_parser = subparsers.add_parser(
        "sync", help="Pull a user's Google Calendar into the local table"
    )
    sync_parser.add_argument("user_id", help="Platform user id")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "fitness_calendar.api.app:create_app",
            factory=True,
            host=args.host or settings.host,
            port=args.port or settings.port,
            reload=args.reload,
            log_level=settings.log_level.lower(),
        )
        return 0

    if args.command == "init-db":
        asyncio.run(_init_db())
        print("Database tables created")
        return 0

    return asyncio.run(_sync(args.user_id))


if __name__ == "__main__":
    sys.exit(main())
