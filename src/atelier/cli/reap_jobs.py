"""CLI command for failing generations stuck in pending or processing.

Usage:
    python -m atelier.cli.reap_jobs [OPTIONS]

Examples:
    # Reap with the configured timeout (STALE_JOB_TIMEOUT_MINUTES)
    python -m atelier.cli.reap_jobs

    # Anything untouched for 10 minutes
    python -m atelier.cli.reap_jobs --older-than-minutes 10

    # Dry run (no database writes)
    python -m atelier.cli.reap_jobs --dry-run -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from datetime import timedelta
from typing import Optional, Sequence

import structlog

from atelier.core import timezone  # noqa: F401
from atelier.core.config import Settings, configure_logging
from atelier.core.database import setup_db_session
from atelier.workers.reaper import reap_stale_generations

logger = structlog.get_logger()


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Mark stale pending/processing generations as error")

    parser.add_argument(
        "--older-than-minutes",
        type=int,
        help="Staleness threshold in minutes (default: STALE_JOB_TIMEOUT_MINUTES)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List stale generations without database writes",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


def resolve_older_than(args: Namespace, settings: Settings) -> int:
    """Staleness threshold in minutes, falling back to the configured timeout."""
    if args.older_than_minutes is not None:
        return args.older_than_minutes
    return settings.stale_job_timeout_minutes


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    minutes = resolve_older_than(args, settings)
    if minutes < 1:
        logger.error("reap_jobs.error", message="--older-than-minutes must be positive")
        return 1

    logger.info("reap_jobs.start", older_than_minutes=minutes, dry_run=args.dry_run)

    try:
        session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
        async with session_factory() as session:
            reaped = await reap_stale_generations(
                session, timedelta(minutes=minutes), dry_run=args.dry_run
            )

        for generation_id in reaped:
            logger.info("reap_jobs.stale", generation_id=str(generation_id))

        if args.dry_run:
            logger.info(
                "reap_jobs.dry_run_complete",
                message=f"DRY RUN COMPLETE - {len(reaped)} stale generation(s), no changes made",
            )
        else:
            logger.info("reap_jobs.complete", reaped_count=len(reaped))
        return 0

    except KeyboardInterrupt:
        logger.warning("reap_jobs.interrupted")
        return 1

    except Exception as e:
        logger.error("reap_jobs.fatal_error", error=str(e), exc_info=True)
        return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Synchronous wrapper for async main."""
    return asyncio.run(async_main(argv))


if __name__ == "__main__":
    sys.exit(main())
