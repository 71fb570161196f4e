"""
backend/app/models/tips.py

Purpose:
    Typed domain models for the version 2 daily tips contract (payload -> tips
    -> legs -> bookmaker prices), plus filter, page, stats and export row
    shapes. Wire names are camelCase aliases; attributes are snake_case.

    A tip is a tagged union on ``betType``: ``SingleTip`` holds exactly one leg
    and no combined price, ``AccumulatorTip`` holds two or more legs and a
    required combined price. Raw producer input must go through
    ``app.services.tip_validation_service`` which reports every violation with
    its path; constructing these models directly only guarantees the invariants.

Dependencies:
    - pydantic
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator

from app.utils import ensure_utc, parse_date_iso

PAYLOAD_VERSION = 2
ODDS_MIN = 1.01
ODDS_MAX = 1000.0
MAX_BOOKMAKERS = 6
RATIONALE_MAX_LENGTH = 1000
SEO_TEXT_MAX_LENGTH = 2000
TIP_ID_PATTERN = r"^[a-z0-9-]+$"
DATE_ISO_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class Risk(str, Enum):
    safe = "safe"
    medium = "medium"
    high = "high"


class TipResult(str, Enum):
    pending = "pending"
    win = "win"
    loss = "loss"
    void = "void"


class BetType(str, Enum):
    single = "single"
    accumulator = "accumulator"


# Secondary sort key of every tip listing: cheapest risk first.
RISK_ORDER: dict[str, int] = {Risk.safe.value: 0, Risk.medium.value: 1, Risk.high.value: 2}


def _utc_millis(value: datetime) -> datetime:
    """Aware UTC truncated to milliseconds, the resolution of a stored BSON date."""
    value = ensure_utc(value).astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


UtcTimestamp = Annotated[datetime, AfterValidator(_utc_millis)]

# Decimal odds. Strict: "2.10" and True are type errors, ints are accepted.
Odds = Annotated[float, Field(strict=True, ge=ODDS_MIN, le=ODDS_MAX)]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EventTeams(WireModel):
    home: str | None = None
    away: str | None = None
    name: str | None = None                                       # "Benfica vs Porto", "Alcaraz vs Sinner"
    scheduled_at: UtcTimestamp | None = Field(default=None, alias="scheduledAt")
    timezone: str | None = None

    @model_validator(mode="after")
    def _require_one_label(self) -> "EventTeams":
        if not (self.home or self.away or self.name):
            raise ValueError("At least one of home, away, or name must be provided")
        return self

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.home and self.away:
            return f"{self.home} vs {self.away}"
        return ""


class BookmakerPrice(WireModel):
    name: str = Field(min_length=1)
    odds: Odds
    url: str | None = None

    @field_validator("url")
    @classmethod
    def _absolute_http_url(cls, value: str | None) -> str | None:
        if value is None:
            return value
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("url must be an absolute http(s) URL")
        return value


class Leg(WireModel):
    sport: str = Field(min_length=1)
    league: str | None = None
    event: EventTeams
    market: str = Field(min_length=1)                             # "1X2", "Over 2.5", "Handicap"
    selection: str = Field(min_length=1)
    avg_odds: Odds = Field(alias="avgOdds")
    bookmakers: list[BookmakerPrice] = Field(min_length=1, max_length=MAX_BOOKMAKERS)


class CombinedPrice(WireModel):
    """Accumulator priced as one bet. avg_odds is conventionally the product of leg odds."""
    avg_odds: Odds = Field(alias="avgOdds")
    bookmakers: list[BookmakerPrice] = Field(min_length=1, max_length=MAX_BOOKMAKERS)


class _TipBase(WireModel):
    id: str = Field(min_length=1, pattern=TIP_ID_PATTERN)
    risk: Risk
    rationale: str = Field(min_length=1, max_length=RATIONALE_MAX_LENGTH)
    result: TipResult = TipResult.pending

    @property
    def sports(self) -> list[str]:
        """Distinct leg sports in leg order."""
        seen: list[str] = []
        for leg in self.legs:  # type: ignore[attr-defined]
            if leg.sport not in seen:
                seen.append(leg.sport)
        return seen


class SingleTip(_TipBase):
    bet_type: Literal["single"] = Field(alias="betType")
    legs: list[Leg] = Field(min_length=1, max_length=1)
    combined: None = None


class AccumulatorTip(_TipBase):
    bet_type: Literal["accumulator"] = Field(alias="betType")
    legs: list[Leg] = Field(min_length=2)
    combined: CombinedPrice


TipItem = Annotated[Union[SingleTip, AccumulatorTip], Field(discriminator="bet_type")]


class SeoMeta(WireModel):
    title: str = Field(min_length=1, max_length=SEO_TEXT_MAX_LENGTH)
    description: str = Field(min_length=1, max_length=SEO_TEXT_MAX_LENGTH)


class DailyTipsPayload(WireModel):
    """All tips published for one calendar date (reference timezone)."""
    version: Literal[2] = PAYLOAD_VERSION
    date_iso: str = Field(alias="dateISO", pattern=DATE_ISO_PATTERN)
    generated_at: UtcTimestamp = Field(alias="generatedAt")
    generated_by: str = Field(alias="generatedBy", min_length=1)  # "chatgpt", "manual", "demo-system"
    tips: list[TipItem] = Field(min_length=1)
    seo: SeoMeta | None = None

    @field_validator("date_iso")
    @classmethod
    def _real_calendar_date(cls, value: str) -> str:
        if parse_date_iso(value) is None:
            raise ValueError("Date must be a valid date in YYYY-MM-DD format")
        return value

    @model_validator(mode="after")
    def _unique_tip_ids(self) -> "DailyTipsPayload":
        ids = [tip.id for tip in self.tips]
        if len(set(ids)) != len(ids):
            raise ValueError("All tip IDs must be unique")
        return self


class DatedTip(BaseModel):
    """A tip together with the date of the payload that owns it."""
    date_iso: str
    tip: Union[SingleTip, AccumulatorTip]                         # built from already-validated tips

    def to_wire(self) -> dict[str, Any]:
        data = self.tip.to_wire()
        data["date"] = self.date_iso
        return data


class TipFilters(WireModel):
    sport: str | None = None                                      # case-insensitive, any leg
    risk: Risk | None = None
    result: TipResult | None = None
    bet_type: BetType | None = Field(default=None, alias="betType")
    min_legs: int | None = Field(default=None, alias="minLegs", ge=1)
    date_from: str | None = Field(default=None, alias="dateFrom", pattern=DATE_ISO_PATTERN)
    date_to: str | None = Field(default=None, alias="dateTo", pattern=DATE_ISO_PATTERN)

    @model_validator(mode="after")
    def _ordered_range(self) -> "TipFilters":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("dateFrom must be before or equal to dateTo")
        return self


class TipPage(BaseModel):
    tips: list[DatedTip]
    total: int
    has_more: bool
    page: int
    limit: int

    def to_wire(self) -> dict[str, Any]:
        return {
            "tips": [t.to_wire() for t in self.tips],
            "total": self.total,
            "hasMore": self.has_more,
            "page": self.page,
            "limit": self.limit,
        }


class SportStat(WireModel):
    sport: str
    count: int
    wins: int
    win_rate: float = Field(alias="winRate")


class TipStats(WireModel):
    total_tips: int = Field(alias="totalTips")
    wins: int
    win_rate: float = Field(alias="winRate")
    wins_by_risk: dict[str, int] = Field(alias="winsByRisk")
    total_by_risk: dict[str, int] = Field(alias="totalByRisk")
    bets_by_type: dict[str, int] = Field(alias="betsByType")
    sports: list[SportStat]


# Column order of the tabular export.
CSV_COLUMNS = [
    "dateISO",
    "tipId",
    "betType",
    "risk",
    "legIndex",
    "sport",
    "league",
    "eventName",
    "market",
    "selection",
    "legAvgOdds",
    "legBookmakersJSON",
    "combinedAvgOdds",
    "combinedBookmakersJSON",
    "result",
]


class TipCsvRow(BaseModel):
    """One export row: a leg of a tip, or the summary row of an accumulator (leg_index None)."""
    model_config = ConfigDict(populate_by_name=True)

    date_iso: str = Field(alias="dateISO")
    tip_id: str = Field(alias="tipId")
    bet_type: str = Field(alias="betType")
    risk: str
    leg_index: int | None = Field(default=None, alias="legIndex")
    sport: str | None = None
    league: str | None = None
    event_name: str | None = Field(default=None, alias="eventName")
    market: str | None = None
    selection: str | None = None
    leg_avg_odds: float | None = Field(default=None, alias="legAvgOdds")
    leg_bookmakers_json: str | None = Field(default=None, alias="legBookmakersJSON")
    combined_avg_odds: float | None = Field(default=None, alias="combinedAvgOdds")
    combined_bookmakers_json: str | None = Field(default=None, alias="combinedBookmakersJSON")
    result: str

    @property
    def is_summary(self) -> bool:
        return self.leg_index is None


class SaveResult(WireModel):
    date_iso: str = Field(alias="dateISO")
    tip_count: int = Field(alias="tipCount")
    risk_breakdown: dict[str, int] = Field(alias="riskBreakdown")
    bet_type_breakdown: dict[str, int] = Field(alias="betTypeBreakdown")
    replaced: bool = False


class UpdateResultOutcome(WireModel):
    tip_id: str = Field(alias="tipId")
    previous_result: TipResult = Field(alias="previousResult")
    new_result: TipResult = Field(alias="newResult")
    date_iso: str = Field(alias="date")


class UpdateResultRequest(BaseModel):
    """Request body for the admin result update. ``result`` is checked by the validator (400, not 422)."""
    model_config = ConfigDict(populate_by_name=True)

    tip_id: str = Field(alias="tipId", min_length=1)
    result: str
    date: str | None = None


class DeleteTipRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tip_id: str = Field(alias="tipId", min_length=1)


class DeleteTipOutcome(WireModel):
    tip_id: str = Field(alias="tipId")
    date_iso: str = Field(alias="date")
    remaining_tips: int = Field(alias="remainingTips")
