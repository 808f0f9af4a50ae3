"""
Murmur Sync Command Line

This is the main entry point for the Murmur Sync client.
It restores the saved session, runs one command against the
Murmur API through the MurmurSync facade, and prints the result.

Version: 1.0
"""

import sys
import asyncio
import argparse
import getpass
import logging
from typing import List, Optional

from config import settings
from config.validators import validate_settings, get_config_summary
from data.models import Actor, Alert, Post
from data.paged_collection import FetchOutcome, PagedCollection
from services.murmur_sync import MurmurSync
from services.mutation_coordinator import MutationResult
from utils.exceptions import ApiError, ConfigurationError, MurmurSyncError, ValidationError
from utils.logger import get_logger, setup_file_logging

# Set up logging
logger = get_logger(__name__)

LIST_COMMANDS = ("timeline", "explore", "user", "replies", "notifications", "search")
AUTH_COMMANDS = ("timeline", "notifications", "post", "like", "unlike", "delete", "follow", "unfollow")


def create_murmur_sync(validate: bool = True) -> MurmurSync:
    """
    Build a MurmurSync wired to the configured API and token file.

    Args:
        validate: Whether to validate settings first.

    Raises:
        ConfigurationError: If validation is enabled and the settings are invalid.
    """
    if validate:
        validate_settings()
        logger.debug(f"Configuration: {get_config_summary()}")
    return MurmurSync()


# =============================================================================
# Output helpers
# =============================================================================

def format_post(post: Post, author: Optional[Actor]) -> str:
    handle = f"@{author.handle}" if author else post.author_id
    liked = "*" if post.liked_by_viewer else " "
    header = f"[{post.id}] {handle}  {liked}likes={post.like_count or 0} replies={post.reply_count or 0}"
    return f"{header}\n    {post.body}"


def format_actor(actor: Actor) -> str:
    line = f"[{actor.id}] @{actor.handle} ({actor.display_name})"
    if actor.follower_count is not None:
        line += f"  followers={actor.follower_count} following={actor.following_count}"
    if actor.followed_by_viewer:
        line += "  [following]"
    return line


def format_alert(alert: Alert, actor: Optional[Actor]) -> str:
    who = f"@{actor.handle}" if actor else alert.actor_id
    unread = " " if alert.is_read else "!"
    subject = f" on {alert.subject_post_id}" if alert.subject_post_id else ""
    return f"{unread}[{alert.id}] {who} {alert.kind.value}{subject}"


def print_collection(sync: MurmurSync, collection: PagedCollection) -> None:
    entries = collection.items()
    if not entries:
        print("(nothing here yet)")
        return
    for entity in entries:
        if isinstance(entity, Post):
            print(format_post(entity, sync.actors.get(entity.author_id)))
        elif isinstance(entity, Alert):
            print(format_alert(entity, sync.actors.get(entity.actor_id)))
        else:
            print(format_actor(entity))
    if collection.has_more:
        print("(more available)")


def report(result: MutationResult, done_message: str) -> bool:
    if result.ok:
        print(done_message)
        return True
    if result.error is None:
        print("Already in progress, ignored.")
        return False
    print(f"Failed: {result.error}")
    if isinstance(result.error, ValidationError):
        for field, message in result.error.field_errors.items():
            print(f"  {field}: {message}")
    return False


# =============================================================================
# Commands
# =============================================================================

async def load_pages(collection: PagedCollection, pages: int) -> bool:
    """Refresh a collection and load up to ``pages`` pages. Returns False on failure."""
    outcome = await collection.fetch_page(refresh=True)
    for _ in range(max(0, pages - 1)):
        if outcome != FetchOutcome.FETCHED or not collection.has_more:
            break
        outcome = await collection.fetch_page()

    if collection.last_error is not None:
        print(f"Could not load {collection.label}: {collection.last_error}")
        return False
    return True


async def run_command(sync: MurmurSync, args: argparse.Namespace) -> bool:
    """
    Run one parsed command against an already started MurmurSync.

    Returns:
        bool: True if the command succeeded, False otherwise.
    """
    command = args.command

    if command in AUTH_COMMANDS and not sync.session.is_authenticated:
        print("Not signed in. Run 'login' first.")
        return False

    if command == "login":
        password = args.password or getpass.getpass("Password: ")
        viewer = await sync.login(args.identifier, password)
        print(f"Signed in as @{viewer.handle}")
        return True

    if command == "logout":
        sync.logout()
        print("Signed out")
        return True

    if command == "whoami":
        viewer = sync.viewer
        if viewer is None:
            print("Not signed in")
            return False
        print(format_actor(viewer))
        return True

    if command in LIST_COMMANDS:
        if command == "timeline":
            collection = sync.timeline()
        elif command == "explore":
            collection = sync.explore()
        elif command == "user":
            actor = await sync.load_actor(args.user_id)
            if actor is not None:
                print(format_actor(actor))
            collection = sync.author_posts(args.user_id)
        elif command == "replies":
            post = await sync.load_post(args.murmur_id)
            if post is None:
                print(f"Murmur {args.murmur_id} no longer exists")
                return False
            print(format_post(post, sync.actors.get(post.author_id)))
            collection = sync.replies(args.murmur_id)
        elif command == "notifications":
            await sync.refresh_unread_count()
            print(f"Unread: {sync.alert_badge.unread_count}")
            collection = sync.notifications()
        elif args.users:
            collection = sync.search_users(args.query)
        else:
            collection = sync.search_posts(args.query)

        if not await load_pages(collection, args.pages):
            return False
        print_collection(sync, collection)
        return True

    if command == "post":
        result = await sync.mutations.create(args.text, parent_id=args.reply_to)
        return report(result, f"Posted {result.value.id}" if result.ok else "")
    if command == "like":
        return report(await sync.mutations.like(args.murmur_id), f"Liked {args.murmur_id}")
    if command == "unlike":
        return report(await sync.mutations.unlike(args.murmur_id), f"Unliked {args.murmur_id}")
    if command == "delete":
        return report(await sync.mutations.delete(args.murmur_id), f"Deleted {args.murmur_id}")
    if command == "follow":
        return report(await sync.mutations.follow(args.user_id), f"Following {args.user_id}")
    if command == "unfollow":
        return report(await sync.mutations.unfollow(args.user_id), f"Unfollowed {args.user_id}")

    logger.error(f"Unknown command: {command}")
    return False


async def run(sync: MurmurSync, args: argparse.Namespace) -> bool:
    """Restore the session, run the command and release the HTTP session."""
    try:
        await sync.start()
        return await run_command(sync, args)
    except ApiError as e:
        print(f"Error: {e}")
        logger.warning(f"{args.command} failed: {e}")
        return False
    finally:
        sync.close()


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Murmur Sync command line client')
    parser.add_argument('--log-file', type=str, default=None,
                        help=f'Log file path (default: {settings.LOG_FILE})')
    parser.add_argument('--log-level', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default=None, help='Logging level')
    parser.add_argument('--pages', type=int, default=1, help='Pages to load for list commands')

    sub = parser.add_subparsers(dest='command', required=True)

    login = sub.add_parser('login', help='Sign in and save the session')
    login.add_argument('identifier', help='Email or username')
    login.add_argument('--password', default=None, help='Password (prompted if omitted)')
    sub.add_parser('logout', help='Sign out and forget the session')
    sub.add_parser('whoami', help='Show the signed-in user')

    sub.add_parser('timeline', help='Murmurs from people you follow')
    sub.add_parser('explore', help='All recent murmurs')
    user = sub.add_parser('user', help="A user's profile and murmurs")
    user.add_argument('user_id')
    replies = sub.add_parser('replies', help='A murmur and its replies')
    replies.add_argument('murmur_id')
    sub.add_parser('notifications', help='Your notifications')
    search = sub.add_parser('search', help='Search murmurs (or users with --users)')
    search.add_argument('query')
    search.add_argument('--users', action='store_true', help='Search users instead of murmurs')

    post = sub.add_parser('post', help='Publish a murmur')
    post.add_argument('text')
    post.add_argument('--reply-to', default=None, help='Murmur id to reply to')
    for name in ('like', 'unlike', 'delete'):
        cmd = sub.add_parser(name, help=f'{name.capitalize()} a murmur')
        cmd.add_argument('murmur_id')
    for name in ('follow', 'unfollow'):
        cmd = sub.add_parser(name, help=f'{name.capitalize()} a user')
        cmd.add_argument('user_id')

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    # Parse command line arguments
    args = parse_arguments(argv)

    # Set up logging
    log_level = getattr(logging, (args.log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    setup_file_logging(args.log_file or settings.LOG_FILE, log_level)

    logger.debug(f"Running command: {args.command}")

    try:
        sync = create_murmur_sync()
        success = asyncio.run(run(sync, args))
        exit_code = 0 if success else 1
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        exit_code = 2
    except MurmurSyncError as e:
        logger.error(f"Murmur Sync error: {e}", exc_info=True)
        exit_code = 2
    except Exception as e:
        logger.error(f"Unhandled exception in Murmur Sync: {e}", exc_info=True)
        exit_code = 2

    logger.debug(f"Command {args.command} finished with exit code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
