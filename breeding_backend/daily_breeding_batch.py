#!/usr/bin/env python3
"""
Daily Breeding Recalculation Script
Runs every night to refresh stored breeding day counters for the whole herd
"""

import logging
import os
import sys
from datetime import datetime

import requests

from breeding_backend.config import (
    ADMIN_SECRET,
    BATCH_DEFAULT_LIMIT,
    BREEDING_API_URL,
    BREEDING_REQUEST_TIMEOUT,
)

LOG_FILE = os.getenv("BREEDING_BATCH_LOG_FILE", "")

logger = logging.getLogger(__name__)


def _configure_logging():
    handlers = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def run_page(session: requests.Session, limit: int, offset: int, force: bool = False) -> dict:
    """
    Run one page of the batch endpoint.

    Raises:
        requests.HTTPError: If the API answers with an error status
    """
    response = session.post(
        f"{BREEDING_API_URL}/breeding/batch/recalculate",
        params={"limit": limit, "offset": offset, "force": str(force).lower()},
        headers={"X-Admin-Secret": ADMIN_SECRET, "Content-Type": "application/json"},
        timeout=BREEDING_REQUEST_TIMEOUT,
    )
    response.raise_for_status()
    return response.json()


def run_daily_breeding_batch(limit: int = BATCH_DEFAULT_LIMIT, force: bool = False, session=None) -> bool:
    """Page through the herd until a short page comes back"""
    session = session or requests.Session()
    start_time = datetime.now()
    logger.info(f"Starting daily breeding recalculation at {start_time}")

    offset = 0
    processed = 0
    updated = 0
    failures = 0
    try:
        while True:
            page = run_page(session, limit, offset, force)
            processed += page["processedCount"]
            updated += page["updatedCount"]
            failures += len(page["errors"])
            for error in page["errors"]:
                logger.warning(f"  - Cattle {error['cattleId']}: {error['error']}")

            if page["processedCount"] < limit:
                break
            offset += limit
    except Exception as e:
        logger.error(f"Breeding recalculation failed at offset {offset}: {e}")
        return False

    duration = (datetime.now() - start_time).total_seconds()
    logger.info(f"Breeding recalculation completed in {duration:.2f} seconds")
    logger.info(f"  - Processed: {processed}")
    logger.info(f"  - Updated: {updated}")
    logger.info(f"  - Errors: {failures}")
    return True


def main():
    _configure_logging()
    logger.info("=" * 60)
    logger.info("BREEDING DAILY RECALCULATION")
    logger.info("=" * 60)

    force = "--force" in sys.argv[1:]
    if not run_daily_breeding_batch(force=force):
        logger.error("Daily breeding recalculation failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
