"""CLI entry point for the swipe feed ranking engine."""

import argparse
import logging
import random
import sys
from pathlib import Path

from src.core.config import Settings
from src.core.db import init_db, insert_interaction
from src.core.schemas import EntityType, FeedFixture, FeedRequest, InteractionRecord, Stage
from src.pipeline.feed import build_feed, export_feed_json
from src.pipeline.quota_manager import QuotaManager

_STAGES = {
    "dislike": Stage.DISLIKE,
    "like": Stage.LIKE,
    "superlike": Stage.SUPERLIKE,
}


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Swipe feed ranking engine - rank jobs for students and students for jobs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- feed subcommand ---
    feed_parser = subparsers.add_parser("feed", help="Build a ranked feed page from a fixture")
    feed_parser.add_argument(
        "--fixture",
        required=True,
        help="YAML file with a 'viewer' profile and a 'candidates' pool",
    )
    feed_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    feed_parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help="Cards per page, 1-50 (default: from settings)",
    )
    feed_parser.add_argument(
        "--exploration",
        type=float,
        default=None,
        help="Share of the ranking tail to shuffle, 0-1 (default: from settings)",
    )
    feed_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the exploration shuffle (reproducible output)",
    )
    _add_common(feed_parser)

    # --- interact subcommand ---
    interact_parser = subparsers.add_parser("interact", help="Record a like, superlike or dislike")
    interact_parser.add_argument("--viewer", required=True, help="Acting user ID")
    interact_parser.add_argument(
        "--type",
        required=True,
        choices=[t.value for t in EntityType],
        help="Entity type being swiped",
    )
    interact_parser.add_argument("--id", required=True, help="Entity ID being swiped")
    interact_parser.add_argument(
        "--stage",
        required=True,
        choices=list(_STAGES),
        help="Swipe outcome",
    )
    _add_common(interact_parser)

    # --- quota subcommand ---
    quota_parser = subparsers.add_parser("quota", help="Show today's like usage for a viewer")
    quota_parser.add_argument("--viewer", required=True, help="User ID")
    _add_common(quota_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str) -> Settings:
    """Load settings, falling back to defaults when the default path is absent."""
    if not Path(path).exists() and path == "config/settings.yaml":
        logging.getLogger(__name__).info("No %s found - using default settings", path)
        return Settings()
    return Settings.from_yaml(path)


def cmd_feed(args: argparse.Namespace, settings: Settings) -> None:
    """Handle the feed subcommand."""
    fixture = FeedFixture.from_yaml(args.fixture)
    request = FeedRequest(
        page=args.page,
        page_size=args.page_size if args.page_size is not None else settings.feed.page_size,
        exploration_ratio=(
            args.exploration if args.exploration is not None
            else settings.feed.exploration_ratio
        ),
    )
    rng = random.Random(args.seed) if args.seed is not None else None

    conn = init_db(settings.database.path)
    try:
        page = build_feed(conn, fixture.viewer, fixture.candidates, request, settings, rng)
    finally:
        conn.close()
    print(export_feed_json(page))


def cmd_interact(args: argparse.Namespace, settings: Settings) -> None:
    """Handle the interact subcommand."""
    record = InteractionRecord(
        from_viewer=args.viewer,
        to_entity_type=EntityType(args.type),
        to_entity_id=args.id,
        stage=_STAGES[args.stage],
    )
    conn = init_db(settings.database.path)
    try:
        quota = QuotaManager(conn, settings.quota)
        if record.stage != Stage.DISLIKE and quota.has_reached_limit(args.viewer):
            msg = f"daily like limit of {settings.quota.daily_like_limit} reached"
            raise ValueError(msg)
        insert_interaction(conn, record)
        remaining = quota.remaining_likes(args.viewer)
    finally:
        conn.close()
    print(f"Recorded {args.stage} of {args.type} '{args.id}' by '{args.viewer}'.")
    print(f"  Remaining likes today: {remaining}")


def cmd_quota(args: argparse.Namespace, settings: Settings) -> None:
    """Handle the quota subcommand."""
    conn = init_db(settings.database.path)
    try:
        quota = QuotaManager(conn, settings.quota)
        used = quota.daily_like_count(args.viewer)
        remaining = quota.remaining_likes(args.viewer)
    finally:
        conn.close()
    print(f"'{args.viewer}': {used} likes today, {remaining} remaining "
          f"(limit {settings.quota.daily_like_limit})")


_COMMANDS = {
    "feed": cmd_feed,
    "interact": cmd_interact,
    "quota": cmd_quota,
}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        _COMMANDS[args.command](args, settings)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
