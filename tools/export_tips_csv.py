"""
Export filtered tips to a CSV file (one row per leg, plus one summary row per
accumulator).

Usage:
    python -m tools.export_tips_csv
    python -m tools.export_tips_csv --risk safe --date-from 2025-09-01 --output-dir /tmp
"""

import argparse
import asyncio
import logging
import os
import sys
from collections import Counter
from datetime import datetime, timezone

# Add backend to Python path so we can import app modules
sys.path.insert(0, "backend")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("export_tips_csv")


def export_file_name(filters: dict, now: datetime | None = None) -> str:
    """tips-export-<date>[-key-value_key-value].csv"""
    day = (now or datetime.now(timezone.utc)).date().isoformat()
    suffix = "_".join(f"{key}-{value}" for key, value in filters.items() if value)
    return f"tips-export-{day}{'-' + suffix if suffix else ''}.csv"


async def run_export(raw_filters: dict, output_dir: str) -> int:
    import app.database as _db
    from app.config import settings
    from app.services.tip_errors import TipValidationError
    from app.services.tip_export_service import export_rows, render_csv
    from app.services.tip_repository import TipRepository
    from app.services.tip_validation_service import build_tip_filters

    try:
        filters = build_tip_filters(**raw_filters)
    except TipValidationError as exc:
        for issue in exc.issues:
            log.error("%s: %s", issue.field, issue.message)
        return 1

    await _db.connect_db()
    try:
        repo = TipRepository(_db.db, _db.client, timezone=settings.TIPS_TIMEZONE)
        rows = await export_rows(repo, filters)
    finally:
        await _db.close_db()

    if not rows:
        log.info("No tips found matching the filters")
        return 0

    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, export_file_name(raw_filters))
    with open(path, "w", encoding="utf-8", newline="") as fh:
        fh.write(render_csv(rows))

    tip_ids = {row.tip_id for row in rows}
    log.info("Exported %d rows (%d tips) to %s", len(rows), len(tip_ids), path)
    summaries = {row.tip_id: row for row in rows}
    print(f"  risk:   {dict(Counter(r.risk for r in summaries.values()))}")
    print(f"  result: {dict(Counter(r.result for r in summaries.values()))}")
    return 0


def main():
    from app.config import settings

    parser = argparse.ArgumentParser(description="Export tips to CSV")
    parser.add_argument("--sport", type=str, default=None)
    parser.add_argument("--risk", type=str, default=None, choices=["safe", "medium", "high"])
    parser.add_argument("--result", type=str, default=None, choices=["pending", "win", "loss", "void"])
    parser.add_argument("--bet-type", type=str, default=None, choices=["single", "accumulator"])
    parser.add_argument("--min-legs", type=int, default=None)
    parser.add_argument("--date-from", type=str, default=None, help="YYYY-MM-DD, inclusive")
    parser.add_argument("--date-to", type=str, default=None, help="YYYY-MM-DD, inclusive")
    parser.add_argument("--output-dir", type=str, default=settings.EXPORT_DIR)
    args = parser.parse_args()

    raw_filters = {
        "sport": args.sport,
        "risk": args.risk,
        "result": args.result,
        "betType": args.bet_type,
        "minLegs": args.min_legs,
        "dateFrom": args.date_from,
        "dateTo": args.date_to,
    }
    sys.exit(asyncio.run(run_export(raw_filters, args.output_dir)))


if __name__ == "__main__":
    main()
