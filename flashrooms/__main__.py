"""CLI interface for Flashrooms.

Usage:
    python -m flashrooms create-deck "Title" -c "front::back" ...   Create a deck
    python -m flashrooms start-run DECK_ID                          Start a run, print its code
    python -m flashrooms play CODE [-n NICKNAME]                    Join a run and practise
    python -m flashrooms progress RUN_ID PLAYER_ID                  Show a player's progress
    python -m flashrooms analytics DECK_ID                          Per-card stats for a deck
    python -m flashrooms end-run RUN_ID                             End a run
"""

import argparse
import asyncio
import logging

from backend.database import async_session, init_db
from backend.engine.errors import EngineError
from backend.engine.lifecycle import (
    add_card,
    create_deck,
    create_run,
    deck_analytics,
    end_run,
    join_run,
    set_published,
)
from backend.engine.mastery import AnswerLabel
from backend.engine.practice import PracticeService
from backend.engine.selector import Selector
from backend.engine.sql_store import SqlRunDirectory, SqlStateStore

CARD_SEPARATOR = "::"

ANSWER_KEYS = {"k": AnswerLabel.KNOW, "r": AnswerLabel.REFRESHER}


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    await init_db()


def parse_card(value: str) -> tuple[str, str]:
    """Split a ``front::back`` argument into its two sides."""
    front, sep, back = value.partition(CARD_SEPARATOR)
    if not sep or not front.strip() or not back.strip():
        raise argparse.ArgumentTypeError(f"expected 'front{CARD_SEPARATOR}back', got {value!r}")
    return front.strip(), back.strip()


async def cmd_create_deck(args: argparse.Namespace) -> None:
    """Create a deck with cards, optionally publishing it."""
    await ensure_db()
    async with async_session() as db:
        deck = await create_deck(db, args.title, args.description)
        for front, back in args.card or []:
            await add_card(db, deck.id, front, back)
        if args.publish:
            await set_published(db, deck.id, True)

    status = "published" if args.publish else "draft"
    print(f"  Created deck {deck.id} ({status}) with {len(args.card or [])} cards")


async def cmd_start_run(args: argparse.Namespace) -> None:
    """Start a run of a published deck."""
    await ensure_db()
    async with async_session() as db:
        run = await create_run(db, args.deck_id)
    print(f"  Run {run.id} started. Join code: {run.code}")
    print(f"  Expires at {run.expires_at:%Y-%m-%d %H:%M} UTC")


async def cmd_play(args: argparse.Namespace) -> None:
    """Join a run and practise interactively until every card is mastered."""
    await ensure_db()
    async with async_session() as db:
        joined = await join_run(db, args.code, args.nickname)
        practice = PracticeService(Selector(store=SqlStateStore(db), runs=SqlRunDirectory(db)))

        print(f"\n  {joined.deck_title}  (player {joined.player_id})")
        print("  Press enter to flip, then k=know  r=needs review  q=quit\n")

        while True:
            next_card = await practice.next(joined.player_id, joined.run_id)
            if next_card.finished:
                print("\n  All cards mastered!")
                break

            card = next_card.card
            print(f"  {card.front}")
            if input("  ").strip().lower() == "q":
                print("\n  Session ended early.")
                break
            print(f"  -> {card.back}")

            choice = input("  [k/r/q]: ").strip().lower()
            while choice not in ANSWER_KEYS and choice != "q":
                choice = input("  [k/r/q]: ").strip().lower()
            if choice == "q":
                print("\n  Session ended early.")
                break

            result = await practice.answer(
                joined.player_id, joined.run_id, card.id, ANSWER_KEYS[choice]
            )
            note = "  mastered!" if result.mastered else ""
            print(
                f"  {result.progress.mastered_count}/{result.progress.total} mastered{note}\n"
            )


async def cmd_progress(args: argparse.Namespace) -> None:
    """Show a player's mastery progress."""
    await ensure_db()
    async with async_session() as db:
        practice = PracticeService(Selector(store=SqlStateStore(db), runs=SqlRunDirectory(db)))
        progress = await practice.progress(args.player_id, args.run_id)

    print(f"  {'Mastered:':<12} {progress.mastered_count}/{progress.total}")
    print(f"  {'Finished:':<12} {'yes' if progress.finished else 'no'}")


async def cmd_analytics(args: argparse.Namespace) -> None:
    """Show per-card answer totals for a deck."""
    await ensure_db()
    async with async_session() as db:
        analytics = await deck_analytics(db, args.deck_id)

    print(f"\n  {analytics.players} players, {analytics.responses} responses\n")
    print(f"  {'Card':<30} {'Know':>5} {'Review':>7} {'Mastered':>9} {'Avg':>5}")
    for m in analytics.cards:
        avg = f"{m.average_know_to_mastery:.2f}" if m.average_know_to_mastery is not None else "-"
        mastered = f"{m.mastered_players}/{m.total_players}"
        print(
            f"  {m.card.front[:30]:<30} {m.total_know:>5} {m.total_refresher:>7} "
            f"{mastered:>9} {avg:>5}"
        )
    print()


async def cmd_end_run(args: argparse.Namespace) -> None:
    await ensure_db()
    async with async_session() as db:
        run = await end_run(db, args.run_id)
    print(f"  Run {run.id} {run.status.lower()}")


def main() -> None:
    """Entry point for the Flashrooms CLI application."""
    parser = argparse.ArgumentParser(
        prog="flashrooms",
        description="Live classroom flashcard practice",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # create-deck
    deck_parser = subparsers.add_parser("create-deck", help="Create a deck of cards")
    deck_parser.add_argument("title", help="Deck title")
    deck_parser.add_argument("-d", "--description", default=None, help="Deck description")
    deck_parser.add_argument(
        "-c",
        "--card",
        action="append",
        type=parse_card,
        help=f"Card as 'front{CARD_SEPARATOR}back' (repeatable)",
    )
    deck_parser.add_argument("--publish", action="store_true", help="Publish the deck")

    # start-run
    run_parser = subparsers.add_parser("start-run", help="Start a run of a published deck")
    run_parser.add_argument("deck_id", type=int)

    # play
    play_parser = subparsers.add_parser("play", help="Join a run and practise")
    play_parser.add_argument("code", help="Run join code")
    play_parser.add_argument("-n", "--nickname", default=None)

    # progress
    progress_parser = subparsers.add_parser("progress", help="Show a player's progress")
    progress_parser.add_argument("run_id", type=int)
    progress_parser.add_argument("player_id", type=int)

    # analytics
    analytics_parser = subparsers.add_parser("analytics", help="Per-card stats for a deck")
    analytics_parser.add_argument("deck_id", type=int)

    # end-run
    end_parser = subparsers.add_parser("end-run", help="End a run")
    end_parser.add_argument("run_id", type=int)

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "create-deck": cmd_create_deck,
        "start-run": cmd_start_run,
        "play": cmd_play,
        "progress": cmd_progress,
        "analytics": cmd_analytics,
        "end-run": cmd_end_run,
    }

    try:
        asyncio.run(cmd_map[args.command](args))
    except EngineError as exc:
        parser.exit(1, f"  {exc.message}\n")


if __name__ == "__main__":
    main()
