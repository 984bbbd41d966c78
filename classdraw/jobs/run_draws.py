"""
Run a draw session from the command line.

Loads a roster from a JSON file (or generates one), draws entities with
the chosen policy and logs every lifecycle notification. Useful for
checking weights against a real roster before class.
"""

import argparse
import asyncio
import logging
import random
from pathlib import Path

from classdraw.config import settings
from classdraw.models.events import (
    BaseDrawObserver,
    DrawCompleted,
    DrawFailed,
    DrawStarted,
    ResetCompleted,
)
from classdraw.models.failure import ExhaustedPoolError
from classdraw.services.draw_engine import DrawEngine, DrawStatistics
from classdraw.services.entity_pool import EntityPool

logger = logging.getLogger(__name__)


class LoggingObserver(BaseDrawObserver):
    """Logs each notification."""

    def on_draw_start(self, event: DrawStarted) -> None:
        logger.info("Drawing from %d available...", event.available_count)

    def on_draw_complete(self, event: DrawCompleted) -> None:
        logger.info(
            "Drew #%d %s [%s], %d remaining",
            event.entity.id,
            event.entity.name,
            event.entity.rarity.value,
            event.remaining_count,
        )

    def on_draw_error(self, event: DrawFailed) -> None:
        logger.warning("Draw failed (%s): %s", event.reason.kind.value, event.reason.message)

    def on_reset(self, event: ResetCompleted) -> None:
        logger.info("Roster reset, %d entities available", event.total_count)


async def run_draws(
    pool: EntityPool,
    *,
    draws: int | None = None,
    policy: str | None = None,
    delay_seconds: float = 0.0,
    seed: int | None = None,
) -> DrawStatistics:
    """
    Draw up to `draws` entities (all of them when None).

    Args:
        pool: Loaded entity pool
        draws: Number of draws; stops early when the pool is exhausted
        policy: Selection policy name; settings default when None
        delay_seconds: Presentation gap per draw
        seed: Seed for reproducible sessions

    Returns:
        Engine statistics after the session
    """
    engine = DrawEngine(
        pool,
        policy=policy,
        delay_seconds=delay_seconds,
        rng=random.Random(seed) if seed is not None else None,
    )
    engine.subscribe(LoggingObserver())

    target = len(pool) if draws is None else draws
    for _ in range(target):
        try:
            await engine.draw()
        except ExhaustedPoolError:
            break

    stats = engine.statistics()
    logger.info(
        "Session complete: %d draws, %d available, drawn by rarity %s",
        stats.total_draws,
        stats.available_count,
        stats.drawn_by_rarity,
    )
    return stats


def build_pool(roster: Path | None, count: int | None, seed: int | None = None) -> EntityPool:
    """Load the roster file, or generate `count` entities."""
    pool = EntityPool(rng=random.Random(seed) if seed is not None else None)
    if roster is not None:
        pool.import_roster_json(roster.read_text(encoding="utf-8"))
    else:
        pool.initialize(count if count is not None else settings.default_roster_size)
    return pool


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a classroom draw session")
    parser.add_argument("--roster", type=Path, help="JSON roster file to import")
    parser.add_argument("--count", type=int, help="Generate this many entities")
    parser.add_argument("--draws", type=int, help="Number of draws (default: all)")
    parser.add_argument(
        "--policy",
        choices=["uniform", "weighted", "sequential"],
        default=settings.default_policy,
    )
    parser.add_argument("--delay", type=float, default=0.0, help="Seconds per draw")
    parser.add_argument("--seed", type=int, help="Seed for reproducible sessions")
    parser.add_argument("--export", type=Path, help="Write the roster JSON here")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = parse_args(argv)

    pool = build_pool(args.roster, args.count, args.seed)
    asyncio.run(
        run_draws(
            pool,
            draws=args.draws,
            policy=args.policy,
            delay_seconds=args.delay,
            seed=args.seed,
        )
    )

    if args.export is not None:
        args.export.write_text(pool.export_roster_json(), encoding="utf-8")
        logger.info("Exported roster to %s", args.export)


if __name__ == "__main__":
    main()
