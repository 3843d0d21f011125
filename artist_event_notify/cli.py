"""Command-line interface for the artist event notifier."""
import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from artist_event_notify import __version__
from artist_event_notify.app import LOG_LEVELS, SyncScheduler, configure_logging, load_config, trigger
from artist_event_notify.catalog import CatalogClient
from artist_event_notify.db import create_engine_from_config, create_session_factory, init_schema
from artist_event_notify.errors import ConfigurationError
from artist_event_notify.models import ArtistFound, DatabaseConfig
from artist_event_notify.store import EventStore, SubscriptionIndex

logger = logging.getLogger(__name__)


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: List of command line arguments. If None, uses sys.argv[1:].

    Returns:
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="eventnotify",
        description="Discover new events for followed artists and push notifications to followers.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        '--database-url',
        type=str,
        help='SQLAlchemy async database URL (overrides DATABASE_URL)',
    )
    log_group = parser.add_argument_group('Logging')
    log_group.add_argument(
        '--log-level',
        type=str,
        choices=LOG_LEVELS,
        help='Logging level (overrides LOG_LEVEL)',
    )
    log_group.add_argument(
        '--verbose', '-v',
        action='store_const',
        const='DEBUG',
        dest='log_level',
        help='Enable verbose output (same as --log-level DEBUG)',
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}',
        help='show version and exit',
    )

    commands = parser.add_subparsers(dest='command')

    sync_cmd = commands.add_parser('sync', help='run one discover + notify pass')
    sync_cmd.add_argument(
        '--every',
        type=float,
        nargs='?',
        const=0.0,
        metavar='MINUTES',
        help='keep running, one pass every MINUTES (SYNC_INTERVAL_MIN if omitted)',
    )

    commands.add_parser('init-db', help='create database tables')

    follow_cmd = commands.add_parser('follow', help='subscribe a user to an artist')
    follow_cmd.add_argument('user_id')
    target = follow_cmd.add_mutually_exclusive_group(required=True)
    target.add_argument('--artist-id', help='catalog attraction id')
    target.add_argument('--lookup', metavar='NAME', help='resolve the artist by name in the catalog')
    follow_cmd.add_argument('--artist-name', default='', help='display name when using --artist-id')

    token_cmd = commands.add_parser('register-token', help='store a push token for a user')
    token_cmd.add_argument('user_id')
    token_cmd.add_argument('push_token')

    commands.add_parser('status', help='show pending events and unreachable followers')

    if args is None:
        args = sys.argv[1:]
    parsed = parser.parse_args(args)
    if parsed.command is None:
        parsed.command = 'sync'
        parsed.every = None
    return parsed


def _env_with_overrides(args: argparse.Namespace) -> dict:
    load_dotenv()
    env = dict(os.environ)
    if args.database_url:
        env['DATABASE_URL'] = args.database_url
    if args.log_level:
        env['LOG_LEVEL'] = args.log_level
    return env


def _database_config(env: dict) -> DatabaseConfig:
    return DatabaseConfig(url=env.get('DATABASE_URL') or DatabaseConfig.url)


async def _with_store(env: dict, action):
    engine = create_engine_from_config(_database_config(env))
    try:
        await init_schema(engine)
        return await action(create_session_factory(engine))
    finally:
        await engine.dispose()


async def cmd_sync(args: argparse.Namespace, env: dict) -> int:
    if args.every is not None:
        config = load_config(env)
        scheduler = SyncScheduler(config, interval_minutes=args.every or None)
        scheduler.install_signal_handlers()
        try:
            await scheduler.run()
        finally:
            scheduler.remove_signal_handlers()
        return 0

    result = await trigger(env)
    print(json.dumps(result, indent=2))
    return 0 if result.get('success') else 1


async def cmd_init_db(args: argparse.Namespace, env: dict) -> int:
    async def noop(sessions):
        return None

    await _with_store(env, noop)
    print("Database ready")
    return 0


async def cmd_follow(args: argparse.Namespace, env: dict) -> int:
    artist_id, artist_name = args.artist_id, args.artist_name
    if args.lookup:
        config = load_config(env)
        async with CatalogClient(config.catalog) as catalog:
            found = await catalog.lookup_artist(args.lookup)
        if not isinstance(found, ArtistFound):
            print(f"No artist found for '{found.query}': {found.reason}", file=sys.stderr)
            return 1
        artist_id, artist_name = found.artist.artist_id, found.artist.artist_name

    async def follow(sessions):
        return await SubscriptionIndex(sessions).follow(args.user_id, artist_id, artist_name)

    created = await _with_store(env, follow)
    state = "now follows" if created else "already follows"
    print(f"User {args.user_id} {state} {artist_name or artist_id} ({artist_id})")
    return 0


async def cmd_register_token(args: argparse.Namespace, env: dict) -> int:
    async def register(sessions):
        await SubscriptionIndex(sessions).register_push_token(args.user_id, args.push_token)

    await _with_store(env, register)
    print(f"Push token stored for user {args.user_id}")
    return 0


async def cmd_status(args: argparse.Namespace, env: dict) -> int:
    async def status(sessions):
        subscriptions = SubscriptionIndex(sessions)
        return {
            "followedArtists": len(await subscriptions.list_distinct_artist_ids()),
            "followersWithoutPushToken": await subscriptions.count_followers_without_token(),
            "unnotifiedEvents": await EventStore(sessions).count_unnotified(),
        }

    print(json.dumps(await _with_store(env, status), indent=2))
    return 0


COMMANDS = {
    'sync': cmd_sync,
    'init-db': cmd_init_db,
    'follow': cmd_follow,
    'register-token': cmd_register_token,
    'status': cmd_status,
}


async def async_main(argv: Optional[List[str]] = None) -> int:
    """Async entry point for the CLI."""
    args = parse_args(argv)
    env = _env_with_overrides(args)
    level = (env.get('LOG_LEVEL') or 'INFO').upper()
    configure_logging(level=level if level in LOG_LEVELS else 'INFO')

    try:
        return await COMMANDS[args.command](args, env)
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        return 1
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        return 1


def main() -> int:
    """Main entry point for CLI."""
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        print("\n👋 Operation cancelled by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
