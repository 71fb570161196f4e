"""
backend/app/services/tip_repository.py

Purpose:
    The only component that reads or writes persisted tips. Stores a daily
    payload as four related collections and rebuilds the nested payload on read:

        daily_metadata   one document per date (_id = dateISO)
        tips             one document per tip (_id = tip id, date_iso, position)
        tip_legs         one document per leg (tip_id, leg_index)
        bookmaker_odds   one document per price (tip_id, tip_leg_id | None for combined)

    Tip documents carry denormalized query keys (risk_rank, leg_count, sports)
    so filtered listings can be sorted and paginated inside MongoDB.

    Writes of one call (save, delete) run in a single client-session
    transaction so readers never observe a half-written or half-deleted date.
    Without transactions (standalone mongod) a failed save removes the rows it
    inserted before re-raising.

Dependencies:
    - motor (database and client handles are injected)
    - pymongo
    - app.services.tip_validation_service
"""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Any

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import BulkWriteError, PyMongoError

from app.models.tips import (
    RISK_ORDER,
    BetType,
    DailyTipsPayload,
    DatedTip,
    DeleteTipOutcome,
    Risk,
    SaveResult,
    TipFilters,
    TipItem,
    UpdateResultOutcome,
)
from app.services.tip_errors import (
    CorruptedPayloadError,
    TipNotFoundError,
    TipsAlreadyExistError,
    TipStorageError,
    TipValidationError,
    ValidationIssue,
)
from app.services.tip_validation_service import (
    validate_date_iso,
    validate_payload,
    validate_result,
    validate_tip_item,
)
from app.utils import ensure_utc, today_iso, utcnow

logger = logging.getLogger("dailytips.tip_repository")

# Fixed listing order: newest date first, then safe < medium < high, then tip id.
LISTING_SORT = [("date_iso", DESCENDING), ("risk_rank", ASCENDING), ("_id", ASCENDING)]

PRICE_SCOPE_LEG = "leg"
PRICE_SCOPE_COMBINED = "combined"


def tip_query(filters: TipFilters) -> dict[str, Any]:
    """Translate filters into a query on the tips collection (all predicates ANDed)."""
    query: dict[str, Any] = {}
    if filters.sport:
        # Matches when any leg's sport contains the text
        query["sports"] = {"$regex": re.escape(filters.sport), "$options": "i"}
    if filters.risk:
        query["risk"] = filters.risk.value
    if filters.result:
        query["result"] = filters.result.value
    if filters.bet_type:
        query["bet_type"] = filters.bet_type.value
    if filters.min_legs:
        query["leg_count"] = {"$gte": filters.min_legs}
    date_range: dict[str, str] = {}
    if filters.date_from:
        date_range["$gte"] = filters.date_from
    if filters.date_to:
        date_range["$lte"] = filters.date_to
    if date_range:
        query["date_iso"] = date_range
    return query


def _price_docs(prices, *, tip_id: str, leg_id: ObjectId | None, scope: str) -> list[dict]:
    return [
        {
            "_id": ObjectId(),
            "tip_id": tip_id,
            "tip_leg_id": leg_id,
            "price_scope": scope,
            "position": position,
            "bookmaker_name": price.name,
            "odds": price.odds,
            "bookmaker_url": price.url,
        }
        for position, price in enumerate(prices)
    ]


def _risk_counts(risks: list[str]) -> dict[str, int]:
    return {f"{r.value}_tips_count": sum(1 for x in risks if x == r.value) for r in Risk}


def payload_documents(payload: DailyTipsPayload) -> dict[str, list[dict]]:
    """Split a validated payload into the rows of the four collections."""
    now = utcnow()
    metadata = {
        "_id": payload.date_iso,
        "version": payload.version,
        "generated_at": payload.generated_at,
        "generated_by": payload.generated_by,
        "seo_title": payload.seo.title if payload.seo else None,
        "seo_description": payload.seo.description if payload.seo else None,
        "tips_count": len(payload.tips),
        **_risk_counts([tip.risk.value for tip in payload.tips]),
        "created_at": now,
        "updated_at": now,
    }

    tips: list[dict] = []
    legs: list[dict] = []
    prices: list[dict] = []
    for position, tip in enumerate(payload.tips):
        tips.append({
            "_id": tip.id,
            "date_iso": payload.date_iso,
            "position": position,
            "bet_type": tip.bet_type,
            "risk": tip.risk.value,
            "risk_rank": RISK_ORDER[tip.risk.value],
            "rationale": tip.rationale,
            "result": tip.result.value,
            "leg_count": len(tip.legs),
            "sports": tip.sports,
            "combined_avg_odds": tip.combined.avg_odds if tip.combined else None,
            "created_at": now,
            "updated_at": now,
        })
        for leg_index, leg in enumerate(tip.legs):
            leg_id = ObjectId()
            legs.append({
                "_id": leg_id,
                "tip_id": tip.id,
                "leg_index": leg_index,
                "sport": leg.sport,
                "league": leg.league,
                "event_name": leg.event.name,
                "home_team": leg.event.home,
                "away_team": leg.event.away,
                "scheduled_at": leg.event.scheduled_at,
                "timezone": leg.event.timezone,
                "market": leg.market,
                "selection": leg.selection,
                "avg_odds": leg.avg_odds,
            })
            prices.extend(_price_docs(leg.bookmakers, tip_id=tip.id, leg_id=leg_id, scope=PRICE_SCOPE_LEG))
        if tip.combined:
            prices.extend(_price_docs(tip.combined.bookmakers, tip_id=tip.id, leg_id=None, scope=PRICE_SCOPE_COMBINED))

    return {"daily_metadata": [metadata], "tips": tips, "tip_legs": legs, "bookmaker_odds": prices}


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _price_out(doc: dict) -> dict[str, Any]:
    return _drop_none({"name": doc["bookmaker_name"], "odds": doc["odds"], "url": doc.get("bookmaker_url")})


def _tip_out(tip_doc: dict, legs: list[dict], prices: list[dict]) -> dict[str, Any]:
    """Rebuild the wire-shaped tip from its rows (before validation)."""
    leg_prices: dict[Any, list[dict]] = {}
    combined_prices: list[dict] = []
    for price in prices:
        if price.get("price_scope") == PRICE_SCOPE_COMBINED:
            combined_prices.append(_price_out(price))
        else:
            leg_prices.setdefault(price.get("tip_leg_id"), []).append(_price_out(price))

    out_legs = []
    for leg in legs:
        scheduled_at = leg.get("scheduled_at")
        out_legs.append(_drop_none({
            "sport": leg["sport"],
            "league": leg.get("league"),
            "event": _drop_none({
                "home": leg.get("home_team"),
                "away": leg.get("away_team"),
                "name": leg.get("event_name"),
                "scheduledAt": ensure_utc(scheduled_at) if scheduled_at else None,
                "timezone": leg.get("timezone"),
            }),
            "market": leg["market"],
            "selection": leg["selection"],
            "avgOdds": leg["avg_odds"],
            "bookmakers": leg_prices.get(leg["_id"], []),
        }))

    tip = {
        "id": tip_doc["_id"],
        "betType": tip_doc["bet_type"],
        "risk": tip_doc["risk"],
        "rationale": tip_doc["rationale"],
        "result": tip_doc.get("result"),
        "legs": out_legs,
    }
    if tip_doc.get("combined_avg_odds") is not None:
        tip["combined"] = {"avgOdds": tip_doc["combined_avg_odds"], "bookmakers": combined_prices}
    return tip


class TipRepository:
    def __init__(
        self,
        db,
        client=None,
        *,
        use_transactions: bool = True,
        timezone: str = "Europe/Lisbon",
    ):
        self._db = db
        self._client = client
        self._use_transactions = use_transactions and client is not None
        self._timezone = timezone

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _write_session(self):
        """Yield a session inside an open transaction, or None when transactions are off."""
        if not self._use_transactions:
            yield None
            return
        async with await self._client.start_session() as session:
            async with session.start_transaction():
                yield session

    def _storage_error(self, operation: str, context: str, exc: PyMongoError) -> TipStorageError:
        logger.error("Storage failure during %s (%s): %s", operation, context, exc)
        return TipStorageError(operation, context, exc)

    async def ensure_indexes(self) -> None:
        await self._db.tips.create_index(
            [("date_iso", DESCENDING), ("risk_rank", ASCENDING), ("_id", ASCENDING)]
        )
        await self._db.tips.create_index([("date_iso", ASCENDING), ("position", ASCENDING)])
        await self._db.tips.create_index("result")
        await self._db.tips.create_index("bet_type")
        await self._db.tips.create_index("sports")
        await self._db.tip_legs.create_index([("tip_id", ASCENDING), ("leg_index", ASCENDING)])
        await self._db.bookmaker_odds.create_index(
            [("tip_id", ASCENDING), ("price_scope", ASCENDING), ("position", ASCENDING)]
        )

    async def _hydrate(self, tip_docs: list[dict], session=None) -> list[dict[str, Any]]:
        if not tip_docs:
            return []
        ids = [doc["_id"] for doc in tip_docs]
        legs = await self._db.tip_legs.find(
            {"tip_id": {"$in": ids}}, session=session,
        ).sort([("tip_id", ASCENDING), ("leg_index", ASCENDING)]).to_list(length=None)
        prices = await self._db.bookmaker_odds.find(
            {"tip_id": {"$in": ids}}, session=session,
        ).sort([("tip_id", ASCENDING), ("price_scope", ASCENDING), ("position", ASCENDING)]).to_list(length=None)

        legs_by_tip: dict[str, list[dict]] = {}
        for leg in legs:
            legs_by_tip.setdefault(leg["tip_id"], []).append(leg)
        prices_by_tip: dict[str, list[dict]] = {}
        for price in prices:
            prices_by_tip.setdefault(price["tip_id"], []).append(price)

        return [
            _tip_out(doc, legs_by_tip.get(doc["_id"], []), prices_by_tip.get(doc["_id"], []))
            for doc in tip_docs
        ]

    async def _date_exists(self, date_iso: str, session=None) -> bool:
        if await self._db.daily_metadata.find_one({"_id": date_iso}, {"_id": 1}, session=session):
            return True
        return await self._db.tips.count_documents({"date_iso": date_iso}, limit=1, session=session) > 0

    async def _ensure_ids_free(self, payload: DailyTipsPayload, session=None) -> None:
        """Tip ids are global: reject ids owned by another date."""
        ids = [tip.id for tip in payload.tips]
        owners = await self._db.tips.find(
            {"_id": {"$in": ids}, "date_iso": {"$ne": payload.date_iso}},
            {"date_iso": 1},
            session=session,
        ).to_list(length=None)
        if not owners:
            return
        owner_by_id = {doc["_id"]: doc["date_iso"] for doc in owners}
        raise TipValidationError([
            ValidationIssue(
                ("tips", index, "id"),
                f"Tip id '{tip_id}' is already used by the payload of {owner_by_id[tip_id]}",
            )
            for index, tip_id in enumerate(ids)
            if tip_id in owner_by_id
        ])

    async def _delete_date(self, date_iso: str, session=None) -> None:
        existing = await self._db.tips.find(
            {"date_iso": date_iso}, {"_id": 1}, session=session,
        ).to_list(length=None)
        ids = [doc["_id"] for doc in existing]
        await self._db.tips.delete_many({"date_iso": date_iso}, session=session)
        if ids:
            await self._db.tip_legs.delete_many({"tip_id": {"$in": ids}}, session=session)
            await self._db.bookmaker_odds.delete_many({"tip_id": {"$in": ids}}, session=session)
        await self._db.daily_metadata.delete_one({"_id": date_iso}, session=session)

    async def _insert_documents(
        self,
        docs: dict[str, list[dict]],
        session=None,
        inserted: dict[str, list[dict]] | None = None,
    ) -> None:
        """Insert the rows of a payload, recording into ``inserted`` what was written.

        Inserts are ordered, so when a batch fails with a BulkWriteError only
        its first ``nInserted`` rows reached the collection.
        """
        # Parent rows first so a reader never meets a leg without its tip.
        for name in ("daily_metadata", "tips", "tip_legs", "bookmaker_odds"):
            rows = docs[name]
            if not rows:
                continue
            try:
                await self._db[name].insert_many(rows, ordered=True, session=session)
            except BulkWriteError as exc:
                if inserted is not None:
                    inserted[name] = rows[: exc.details.get("nInserted", 0)]
                raise
            if inserted is not None:
                inserted[name] = rows

    async def _remove_inserted(self, inserted: dict[str, list[dict]]) -> None:
        """Compensating rollback for saves without a transaction.

        Only rows this save wrote are removed; a conflicting row that belongs
        to a concurrent writer stays.
        """
        for name in ("tips", "tip_legs", "bookmaker_odds", "daily_metadata"):
            ids = [row["_id"] for row in inserted.get(name, [])]
            if ids:
                await self._db[name].delete_many({"_id": {"$in": ids}})

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(self, payload: Any, overwrite: bool = False) -> SaveResult:
        """Validate and persist one date's payload.

        Without ``overwrite`` an existing date raises TipsAlreadyExistError and
        storage is untouched. With it, every prior row of the date is removed
        before the new rows are written, in the same transaction.
        """
        validated = validate_payload(payload)
        date_iso = validated.date_iso
        docs = payload_documents(validated)
        replaced = False

        try:
            async with self._write_session() as session:
                replaced = await self._date_exists(date_iso, session)
                if replaced and not overwrite:
                    raise TipsAlreadyExistError(date_iso)
                await self._ensure_ids_free(validated, session)
                if replaced:
                    await self._delete_date(date_iso, session)
                if session is not None:
                    await self._insert_documents(docs, session)
                else:
                    inserted: dict[str, list[dict]] = {}
                    try:
                        await self._insert_documents(docs, inserted=inserted)
                    except PyMongoError:
                        logger.error(
                            "Save of %s failed without a transaction; removing partial rows", date_iso,
                        )
                        await self._remove_inserted(inserted)
                        raise
        except PyMongoError as exc:
            raise self._storage_error("save", f"date={date_iso}", exc) from exc

        logger.info(
            "Saved %d tips for %s (overwrite=%s, replaced=%s)",
            len(validated.tips), date_iso, overwrite, replaced,
        )
        return SaveResult(
            date_iso=date_iso,
            tip_count=len(validated.tips),
            risk_breakdown={r.value: sum(1 for t in validated.tips if t.risk == r) for r in Risk},
            bet_type_breakdown={b.value: sum(1 for t in validated.tips if t.bet_type == b.value) for b in BetType},
            replaced=replaced,
        )

    async def update_result(self, tip_id: str, result: Any, *, date_iso: str | None = None) -> UpdateResultOutcome:
        """Set the result of one tip, located by its global id.

        Only the result enum is checked; the rest of the payload is not revalidated.
        Setting the same value twice is not an error.
        """
        new_result = validate_result(result)
        query: dict[str, Any] = {"_id": tip_id}
        if date_iso is not None:
            query["date_iso"] = validate_date_iso(date_iso)

        try:
            before = await self._db.tips.find_one_and_update(
                query,
                {"$set": {"result": new_result.value, "updated_at": utcnow()}},
                projection={"result": 1, "date_iso": 1},
                return_document=ReturnDocument.BEFORE,
            )
        except PyMongoError as exc:
            raise self._storage_error("update_result", f"tip={tip_id}", exc) from exc

        if before is None:
            key = f"{tip_id}@{date_iso}" if date_iso else tip_id
            raise TipNotFoundError("tip", key)

        logger.info("Tip %s result %s -> %s", tip_id, before.get("result"), new_result.value)
        return UpdateResultOutcome(
            tip_id=tip_id,
            previous_result=before.get("result") or "pending",
            new_result=new_result,
            date_iso=before["date_iso"],
        )

    async def delete_tip(self, tip_id: str) -> DeleteTipOutcome:
        """Remove a tip with its legs and prices. Deleting the last tip of a date removes the date."""
        try:
            async with self._write_session() as session:
                doc = await self._db.tips.find_one({"_id": tip_id}, {"date_iso": 1}, session=session)
                if doc is None:
                    raise TipNotFoundError("tip", tip_id)
                date_iso = doc["date_iso"]

                # Tip row first: legs and prices are only ever reached through it.
                await self._db.tips.delete_one({"_id": tip_id}, session=session)
                await self._db.tip_legs.delete_many({"tip_id": tip_id}, session=session)
                await self._db.bookmaker_odds.delete_many({"tip_id": tip_id}, session=session)

                remaining = await self._db.tips.find(
                    {"date_iso": date_iso}, {"risk": 1}, session=session,
                ).to_list(length=None)
                if remaining:
                    await self._db.daily_metadata.update_one(
                        {"_id": date_iso},
                        {"$set": {
                            "tips_count": len(remaining),
                            **_risk_counts([r["risk"] for r in remaining]),
                            "updated_at": utcnow(),
                        }},
                        session=session,
                    )
                else:
                    await self._db.daily_metadata.delete_one({"_id": date_iso}, session=session)
        except PyMongoError as exc:
            raise self._storage_error("delete_tip", f"tip={tip_id}", exc) from exc

        logger.info("Deleted tip %s from %s (%d remaining)", tip_id, date_iso, len(remaining))
        return DeleteTipOutcome(tip_id=tip_id, date_iso=date_iso, remaining_tips=len(remaining))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load_by_date(self, date_iso: str) -> DailyTipsPayload:
        """Full payload for one date, revalidated on the way out."""
        validate_date_iso(date_iso)
        try:
            tip_docs = await self._db.tips.find({"date_iso": date_iso}).sort(
                "position", ASCENDING,
            ).to_list(length=None)
            if not tip_docs:
                raise TipNotFoundError("tips", date_iso)
            meta = await self._db.daily_metadata.find_one({"_id": date_iso}) or {}
            tips = await self._hydrate(tip_docs)
        except PyMongoError as exc:
            raise self._storage_error("load_by_date", f"date={date_iso}", exc) from exc

        generated_at = meta.get("generated_at") or tip_docs[0].get("created_at") or utcnow()
        raw: dict[str, Any] = {
            "version": meta.get("version", 2),
            "dateISO": date_iso,
            "generatedAt": ensure_utc(generated_at).isoformat(),
            "generatedBy": meta.get("generated_by") or "manual",
            "tips": tips,
        }
        if meta.get("seo_title") and meta.get("seo_description"):
            raw["seo"] = {"title": meta["seo_title"], "description": meta["seo_description"]}

        try:
            return validate_payload(raw)
        except TipValidationError as exc:
            logger.error("Stored payload for %s failed validation: %s", date_iso, exc)
            raise CorruptedPayloadError(date_iso, exc) from exc

    async def load_latest(self, today: str | None = None) -> DailyTipsPayload:
        """Today's payload, else the nearest future date, else the most recent past date."""
        today = today or today_iso(self._timezone)
        try:
            has_today = await self._date_exists(today)
        except PyMongoError as exc:
            raise self._storage_error("load_latest", f"today={today}", exc) from exc
        if has_today:
            try:
                return await self.load_by_date(today)
            except TipNotFoundError:
                logger.warning("Metadata for %s has no tips; falling back to nearest date", today)

        try:
            upcoming = await self._db.daily_metadata.find_one(
                {"_id": {"$gt": today}}, {"_id": 1}, sort=[("_id", ASCENDING)],
            )
            target = upcoming or await self._db.daily_metadata.find_one(
                {"_id": {"$lt": today}}, {"_id": 1}, sort=[("_id", DESCENDING)],
            )
        except PyMongoError as exc:
            raise self._storage_error("load_latest", f"today={today}", exc) from exc

        if target is None:
            raise TipNotFoundError("tips", "latest")
        return await self.load_by_date(target["_id"])

    async def list_available_dates(self) -> list[str]:
        try:
            docs = await self._db.daily_metadata.find({}, {"_id": 1}).sort(
                "_id", DESCENDING,
            ).to_list(length=None)
        except PyMongoError as exc:
            raise self._storage_error("list_available_dates", "all", exc) from exc
        return [doc["_id"] for doc in docs]

    async def search_tips(self, filters: TipFilters, *, skip: int, limit: int) -> tuple[list[DatedTip], int]:
        """One sorted slice of the filtered tip set plus the size of the whole set."""
        query = tip_query(filters)
        try:
            total = await self._db.tips.count_documents(query)
            tip_docs = await self._db.tips.find(query).sort(LISTING_SORT).skip(skip).limit(limit).to_list(
                length=limit,
            )
            raw_tips = await self._hydrate(tip_docs)
        except PyMongoError as exc:
            raise self._storage_error("search_tips", f"query={query}", exc) from exc

        dated: list[DatedTip] = []
        for doc, raw in zip(tip_docs, raw_tips):
            try:
                tip: TipItem = validate_tip_item(raw)
            except TipValidationError as exc:
                logger.error("Stored tip %s failed validation: %s", doc["_id"], exc)
                raise CorruptedPayloadError(doc["date_iso"], exc) from exc
            dated.append(DatedTip(date_iso=doc["date_iso"], tip=tip))
        return dated, total
