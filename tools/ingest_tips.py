"""
Ingest a daily tips payload from a file or stdin.

The input is either plain JSON or generator output containing a fenced
```json tipday``` block, which is unwrapped first. The payload is validated
and saved; every validation issue is printed with its path.

Usage:
    python -m tools.ingest_tips tips-2025-09-05.json
    cat generated.md | python -m tools.ingest_tips --overwrite
"""

import argparse
import asyncio
import json
import logging
import re
import sys

# Add backend to Python path so we can import app modules
sys.path.insert(0, "backend")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("ingest_tips")

_FENCED_BLOCK = re.compile(r"```json\s*tipday\s*\n(.*?)\n```", re.DOTALL)


def extract_json_text(raw: str) -> str:
    """Return the fenced ``json tipday`` block if present, else the whole input."""
    match = _FENCED_BLOCK.search(raw)
    return match.group(1) if match else raw


async def ingest(raw: str, overwrite: bool) -> int:
    import app.database as _db
    from app.config import settings
    from app.services.tip_errors import TipsAlreadyExistError, TipValidationError
    from app.services.tip_repository import TipRepository

    try:
        data = json.loads(extract_json_text(raw))
    except json.JSONDecodeError as exc:
        log.error("Input is not valid JSON: %s", exc)
        log.error("Expected plain JSON or a ```json tipday ... ``` block")
        return 1

    await _db.connect_db()
    try:
        repo = TipRepository(
            _db.db,
            _db.client,
            use_transactions=settings.MONGO_TRANSACTIONS_ENABLED,
            timezone=settings.TIPS_TIMEZONE,
        )
        result = await repo.save(data, overwrite=overwrite)
    except TipValidationError as exc:
        log.error("Payload rejected with %d issue(s):", len(exc.issues))
        for issue in exc.issues:
            print(f"  - {issue.field}: {issue.message}")
        return 1
    except TipsAlreadyExistError as exc:
        log.error("%s", exc)
        log.error("Re-run with --overwrite to replace them")
        return 1
    finally:
        await _db.close_db()

    print(f"Saved {result.tip_count} tips for {result.date_iso}{' (replaced)' if result.replaced else ''}")
    print(f"  risk:     {result.risk_breakdown}")
    print(f"  bet type: {result.bet_type_breakdown}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Validate and store a daily tips payload")
    parser.add_argument("path", nargs="?", default=None, help="JSON file (default: stdin)")
    parser.add_argument("--overwrite", action="store_true", help="Replace tips already stored for the date")
    args = parser.parse_args()

    if args.path:
        with open(args.path, encoding="utf-8") as fh:
            raw = fh.read()
    else:
        log.info("Reading tips from stdin...")
        raw = sys.stdin.read()
    if not raw.strip():
        log.error("No input received")
        sys.exit(1)

    sys.exit(asyncio.run(ingest(raw, args.overwrite)))


if __name__ == "__main__":
    main()
