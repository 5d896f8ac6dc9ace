"""CLI interface for the review engine.

Usage:
    python -m review_engine queue 1 2           Show the study queue of collection 2 for user 1
    python -m review_engine counts 1 2          Show how many items each sub-mode offers
    python -m review_engine stats 1 2           Show today's statistics
    python -m review_engine valid-items 1       Count optimizer training items
    python -m review_engine optimize 1          Fit personalised FSRS weights
"""

import argparse
import asyncio
import logging

from review_engine.config import settings
from review_engine.database import async_session, engine
from review_engine.errors import ReviewEngineError
from review_engine.models import Base
from review_engine.srs.daily_stats import get_daily_stats
from review_engine.srs.optimizer import count_valid_items, optimize_user_parameters
from review_engine.srs.ordering import (
    OrderingOptions,
    get_ordered_items,
    get_submode_counts,
    parse_sub_mode,
)
from review_engine.srs.preferences import get_user_preferences


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def cmd_queue(args: argparse.Namespace) -> None:
    """Print the ordered study queue."""
    await ensure_db()
    async with async_session() as db:
        preferences = await get_user_preferences(db, args.user_id)
        options = OrderingOptions(
            sub_mode=parse_sub_mode(args.sub_mode),
            category_id=args.category,
            limit=args.limit,
            new_cards_per_day=preferences.new_cards_per_day,
            new_cards_ramp_up=preferences.new_cards_ramp_up,
        )
        entries = await get_ordered_items(db, args.user_id, args.collection_id, options)

    if not entries:
        print("\n  Nothing to study right now. You're all caught up!\n")
        return

    print(f"\n  Study queue ({options.sub_mode.value}, {len(entries)} items)")
    for i, entry in enumerate(entries, 1):
        state = entry.card_state.state if entry.card_state else "new"
        print(f"  {i:>3}. [{state:<10}] {entry.category_name}: {entry.item.prompt}")
    print()


async def cmd_counts(args: argparse.Namespace) -> None:
    """Show per-sub-mode item counts."""
    await ensure_db()
    async with async_session() as db:
        counts = await get_submode_counts(db, args.user_id, args.collection_id)

    print("\n  Sub-mode counts")
    print(f"  {'Full:':<20} {counts.full}")
    print(f"  {'Quick review:':<20} {counts.quick_review}")
    print(f"  {'Spaced repetition:':<20} {counts.spaced_repetition}")
    print()


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show today's statistics for a collection."""
    await ensure_db()
    async with async_session() as db:
        stats = await get_daily_stats(db, args.user_id, args.collection_id)

    accuracy = f"{stats.correct_rate * 100:.0f}%" if stats.correct_rate is not None else "-"
    avg_time = f"{stats.avg_answer_time_ms / 1000:.1f}s" if stats.avg_answer_time_ms else "-"
    print("\n  Today")
    print(f"  {'Reviews:':<20} {stats.reviews_today}")
    print(f"  {'New items:':<20} {stats.new_items_today}")
    print(f"  {'Accuracy:':<20} {accuracy}")
    print(f"  {'Avg answer time:':<20} {avg_time}")
    print(f"  {'Due tomorrow:':<20} {stats.due_tomorrow}")
    print()


async def cmd_valid_items(args: argparse.Namespace) -> None:
    """Show whether a user has enough history to optimize."""
    await ensure_db()
    async with async_session() as db:
        valid = await count_valid_items(db, args.user_id)

    needed = settings.min_items_for_optimization
    print(f"  {valid} valid training items ({needed} needed to optimize)")


async def cmd_optimize(args: argparse.Namespace) -> None:
    """Fit and store personalised FSRS weights."""
    await ensure_db()
    async with async_session() as db:
        await get_user_preferences(db, args.user_id)
        result = await optimize_user_parameters(db, args.user_id)

    if result is None:
        print("  Not enough review history to optimize yet.")
        return
    print(f"  Optimized from {result.review_count} reviews ({result.item_count} training items)")
    print("  Weights: " + ", ".join(f"{w:.4f}" for w in result.weights))


def main() -> None:
    """Entry point for the review engine CLI."""
    parser = argparse.ArgumentParser(
        prog="review_engine",
        description="Spaced repetition review engine",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # queue
    queue_parser = subparsers.add_parser("queue", help="Show the ordered study queue")
    queue_parser.add_argument("user_id", type=int)
    queue_parser.add_argument("collection_id", type=int)
    queue_parser.add_argument("-m", "--sub-mode", default="full", help="full, quick_review, ...")
    queue_parser.add_argument("-c", "--category", type=int, default=None, help="Category to focus")
    queue_parser.add_argument("-n", "--limit", type=int, default=None, help="Max items to show")

    # counts
    counts_parser = subparsers.add_parser("counts", help="Show item counts per sub-mode")
    counts_parser.add_argument("user_id", type=int)
    counts_parser.add_argument("collection_id", type=int)

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show today's statistics")
    stats_parser.add_argument("user_id", type=int)
    stats_parser.add_argument("collection_id", type=int)

    # valid-items
    valid_parser = subparsers.add_parser("valid-items", help="Count optimizer training items")
    valid_parser.add_argument("user_id", type=int)

    # optimize
    optimize_parser = subparsers.add_parser("optimize", help="Fit personalised FSRS weights")
    optimize_parser.add_argument("user_id", type=int)

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "queue": cmd_queue,
        "counts": cmd_counts,
        "stats": cmd_stats,
        "valid-items": cmd_valid_items,
        "optimize": cmd_optimize,
    }

    try:
        asyncio.run(cmd_map[args.command](args))
    except ReviewEngineError as exc:
        parser.exit(1, f"  Error: {exc}\n")


if __name__ == "__main__":
    main()
