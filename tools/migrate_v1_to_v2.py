"""
Convert version 1 daily tips files to the version 2 leg-based format.

Writes ``<name>.v2.json`` next to each input, or rewrites the file in place
(keeping ``<name>.v1.json`` as a backup). Optionally stores the result.

Usage:
    python -m tools.migrate_v1_to_v2 data/2025-09-05.json
    python -m tools.migrate_v1_to_v2 data/*.json --in-place --save --overwrite
"""

import argparse
import asyncio
import json
import logging
import os
import shutil
import sys

# Add backend to Python path so we can import app modules
sys.path.insert(0, "backend")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("migrate_v1_to_v2")


def output_paths(path: str, in_place: bool) -> tuple[str, str | None]:
    """(target path, backup path or None)"""
    stem, ext = os.path.splitext(path)
    if in_place:
        return path, f"{stem}.v1{ext or '.json'}"
    return f"{stem}.v2{ext or '.json'}", None


async def run_migration(paths: list[str], *, in_place: bool, save: bool, overwrite: bool) -> int:
    from app.services.legacy_migration_service import migrate_v1_payload
    from app.services.tip_errors import TipsAlreadyExistError, TipValidationError

    migrated: list[dict] = []
    failures = 0
    for path in paths:
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            log.error("%s: cannot read JSON: %s", path, exc)
            failures += 1
            continue
        if not isinstance(data, dict):
            log.error("%s: expected a payload object, got %s", path, type(data).__name__)
            failures += 1
            continue
        if data.get("version") == 2:
            log.info("%s is already version 2, skipping", path)
            migrated.append(data)
            continue
        try:
            payload = migrate_v1_payload(data)
        except (TipValidationError, ValueError) as exc:
            log.error("%s: %s", path, exc)
            failures += 1
            continue

        target, backup = output_paths(path, in_place)
        if backup:
            shutil.copyfile(path, backup)
        with open(target, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
        log.info("%s -> %s", path, target)
        migrated.append(payload)

    if save and migrated:
        import app.database as _db
        from app.config import settings
        from app.services.tip_repository import TipRepository

        await _db.connect_db()
        try:
            repo = TipRepository(
                _db.db,
                _db.client,
                use_transactions=settings.MONGO_TRANSACTIONS_ENABLED,
                timezone=settings.TIPS_TIMEZONE,
            )
            for payload in migrated:
                try:
                    result = await repo.save(payload, overwrite=overwrite)
                    log.info("Stored %s (%d tips)", result.date_iso, result.tip_count)
                except (TipValidationError, TipsAlreadyExistError) as exc:
                    log.error("%s not stored: %s", payload.get("dateISO"), exc)
                    failures += 1
        finally:
            await _db.close_db()

    log.info("Done: %d migrated, %d failed", len(migrated), failures)
    return 1 if failures else 0


def main():
    parser = argparse.ArgumentParser(description="Migrate version 1 tips files to version 2")
    parser.add_argument("paths", nargs="+", help="Version 1 JSON files")
    parser.add_argument("--in-place", action="store_true", help="Rewrite files, keeping a .v1.json backup")
    parser.add_argument("--save", action="store_true", help="Also store migrated payloads")
    parser.add_argument("--overwrite", action="store_true", help="Replace stored dates when saving")
    args = parser.parse_args()

    sys.exit(asyncio.run(run_migration(
        args.paths,
        in_place=args.in_place,
        save=args.save,
        overwrite=args.overwrite,
    )))


if __name__ == "__main__":
    main()
