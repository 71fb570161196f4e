"""
Seed the store with deterministic demo tips for the last N days.

Usage:
    python -m tools.seed_tips
    python -m tools.seed_tips --days 14 --overwrite
"""

import argparse
import asyncio
import logging
import os
import sys

# Add backend to Python path so we can import app modules
sys.path.insert(0, "backend")

# Default to local MongoDB when not set
if "MONGO_URI" not in os.environ:
    os.environ["MONGO_URI"] = "mongodb://localhost:27017"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("seed_tips")


async def seed(days: int, overwrite: bool) -> int:
    import app.database as _db
    from app.config import settings
    from app.services.demo_tips_service import demo_payloads
    from app.services.tip_errors import TipsAlreadyExistError
    from app.services.tip_repository import TipRepository
    from app.utils import parse_date_iso, today_iso

    today = parse_date_iso(today_iso(settings.TIPS_TIMEZONE))
    await _db.connect_db()
    created = skipped = 0
    try:
        repo = TipRepository(
            _db.db,
            _db.client,
            use_transactions=settings.MONGO_TRANSACTIONS_ENABLED,
            timezone=settings.TIPS_TIMEZONE,
        )
        for payload in demo_payloads(days, today):
            try:
                result = await repo.save(payload, overwrite=overwrite)
            except TipsAlreadyExistError:
                log.info("%s already has tips, skipping", payload["dateISO"])
                skipped += 1
                continue
            created += 1
            log.info("Seeded %s: %s", result.date_iso, result.bet_type_breakdown)
    finally:
        await _db.close_db()

    log.info("Seeding complete: %d created, %d skipped", created, skipped)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Seed demo tips")
    parser.add_argument("--days", type=int, default=7, help="Number of days ending today")
    parser.add_argument("--overwrite", action="store_true", help="Replace existing dates")
    args = parser.parse_args()
    if args.days < 1:
        parser.error("--days must be at least 1")

    sys.exit(asyncio.run(seed(args.days, args.overwrite)))


if __name__ == "__main__":
    main()
