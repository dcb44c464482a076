#!/usr/bin/env python3
"""Cron-triggered bookmark refresh script.

Runs one lock-guarded refresh against the configured object store. Safe to
run from several hosts at once: only the lock holder persists anything.

Example crontab entry (every 6 hours):
    0 */6 * * * cd /srv/bookmark-sync && .venv/bin/python scripts/refresh_bookmarks.py >> /var/log/bookmark_refresh.log 2>&1

Usage:
    python scripts/refresh_bookmarks.py [--force] [--dry-run] [--status]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

logger = logging.getLogger("refresh_bookmarks")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_SKIPPED = 2


async def run_refresh(force: bool = False, dry_run: bool = False, status: bool = False) -> int:
    """Run one refresh.

    Args:
        force: Rewrite every object even when the checksum is unchanged
        dry_run: Fetch and compare only, persist nothing
        status: Print the engine status and exit

    Returns:
        Exit code (0 success, 1 error, 2 skipped because another instance holds the lock)
    """
    from bookmark_sync.bookmarks.checksum import compute_checksum, has_changed
    from bookmark_sync.config import load_config
    from bookmark_sync.core.logging_utils import setup_json_logging
    from bookmark_sync.di.container import BookmarkEngine
    from bookmark_sync.domain.exceptions import BookmarkEngineError
    from bookmark_sync.domain.models import Bookmark

    try:
        cfg = load_config()
    except RuntimeError as e:
        print(f"\nERROR: {e}")
        return EXIT_FAILED

    setup_json_logging(cfg.runtime.log_level, log_file=cfg.runtime.log_file)

    if not status and not cfg.karakeep.configured:
        logger.error("karakeep_not_configured")
        print("Karakeep is not configured. Set KARAKEEP_API_URL and KARAKEEP_API_KEY.")
        return EXIT_FAILED

    engine = BookmarkEngine(cfg)
    try:
        if status:
            print(json.dumps(await engine.status(), indent=2, default=str))
            return EXIT_OK

        if dry_run:
            logger.info("DRY RUN - no changes will be made")
            raw = await engine.fetch_bookmarks()
            bookmarks = [b if isinstance(b, Bookmark) else Bookmark.model_validate(b) for b in raw]
            previous = await engine.store.read_index()
            checksum = compute_checksum(bookmarks)

            print("\n=== Bookmark Refresh Preview (DRY RUN) ===\n")
            print(f"Fetched:          {len(bookmarks)} bookmarks")
            print(f"Checksum:         {checksum}")
            print(f"Stored checksum:  {previous.checksum if previous else '(none)'}")
            print(f"Would rewrite:    {force or has_changed(previous, bookmarks, checksum)}")
            return EXIT_OK

        index = await engine.orchestrator.refresh_and_persist(force=force)
        report = engine.orchestrator.last_report

        print("\n=== Bookmark Refresh Summary ===")
        print(f"Outcome:  {report.outcome.value if report else 'unknown'}")
        if index is None:
            print("No index written (lock held elsewhere or dataset below threshold).")
            return EXIT_SKIPPED
        print(f"Count:    {index.count} bookmarks in {index.total_pages} pages")
        print(f"Changed:  {index.change_detected}")
        if report:
            print(f"Duration: {report.duration_ms / 1000:.1f}s")
        return EXIT_OK

    except BookmarkEngineError as e:
        logger.error(
            "bookmark_refresh_failed",
            extra={"error": e.message, "error_type": type(e).__name__, "details": e.details},
        )
        print(f"\nERROR: {e.message}")
        return EXIT_FAILED
    finally:
        await engine.close()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Refresh persisted bookmarks from Karakeep")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Rewrite every object even when nothing changed",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and compare without persisting anything",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print index, heartbeat and lock state, then exit",
    )
    args = parser.parse_args()

    exit_code = asyncio.run(run_refresh(force=args.force, dry_run=args.dry_run, status=args.status))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
