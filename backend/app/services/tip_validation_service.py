"""
backend/app/services/tip_validation_service.py

Purpose:
    Validation gate for daily tips payloads coming from unreliable producers
    (LLM output, admin uploads, seed/migration tools). Walks the raw input and
    reports the union of all violations, each with a structured path such as
    ``tips.0.legs.1.avgOdds``, instead of stopping at the first one. Only input
    that passes becomes a typed ``DailyTipsPayload`` / ``TipItem``.

    The only normalization is the default ``result = "pending"`` on tips that
    omit it. Combined accumulator odds are not cross-checked against the
    product of the leg odds; ``combined_odds_drift`` reports the difference for
    callers that want to warn about it.

Dependencies:
    - pydantic
    - app.models.tips
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.models.tips import (
    PAYLOAD_VERSION,
    RATIONALE_MAX_LENGTH,
    TIP_ID_PATTERN,
    AccumulatorTip,
    BetType,
    CombinedPrice,
    DailyTipsPayload,
    Leg,
    Risk,
    SeoMeta,
    TipFilters,
    TipItem,
    TipResult,
)
from app.services.tip_errors import PathPart, TipValidationError, ValidationIssue
from app.utils import parse_date_iso

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIP_ADAPTER = TypeAdapter(TipItem)
_DATETIME_ADAPTER = TypeAdapter(datetime)

Path = tuple[PathPart, ...]


class _TipHeader(BaseModel):
    """Scalar fields of a tip; legs/combined are walked separately."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, pattern=TIP_ID_PATTERN)
    bet_type: BetType = Field(alias="betType")
    risk: Risk
    rationale: str = Field(min_length=1, max_length=RATIONALE_MAX_LENGTH)
    result: TipResult | None = None


class _PayloadHeader(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    generated_by: str = Field(alias="generatedBy", min_length=1)
    seo: SeoMeta | None = None


def _clean_message(msg: str) -> str:
    # pydantic prefixes errors raised from custom validators
    return msg.removeprefix("Value error, ")


def _issues_from_pydantic(exc: PydanticValidationError, prefix: Path) -> list[ValidationIssue]:
    issues = []
    for err in exc.errors(include_url=False):
        loc = tuple(err.get("loc", ()))
        issues.append(ValidationIssue(prefix + loc, _clean_message(err.get("msg", "Invalid value"))))
    return issues


def _model_issues(model: type[BaseModel], data: Mapping, path: Path) -> list[ValidationIssue]:
    try:
        model.model_validate(data)
    except PydanticValidationError as exc:
        return _issues_from_pydantic(exc, path)
    return []


def _not_an_object(data: Any, path: Path, what: str) -> list[ValidationIssue]:
    if isinstance(data, Mapping):
        return []
    return [ValidationIssue(path, f"{what} must be an object")]


# ---------------------------------------------------------------------------
# Issue collection (no raising)
# ---------------------------------------------------------------------------

def leg_issues(data: Any, path: Path = ()) -> list[ValidationIssue]:
    """Non-empty sport/market/selection, labelled event, odds in range, 1-6 bookmakers."""
    issues = _not_an_object(data, path, "Leg")
    if issues:
        return issues
    return _model_issues(Leg, data, path)


def combined_price_issues(data: Any, path: Path = ()) -> list[ValidationIssue]:
    issues = _not_an_object(data, path, "Combined price")
    if issues:
        return issues
    return _model_issues(CombinedPrice, data, path)


def _structural_issue(data: Mapping, path: Path) -> ValidationIssue | None:
    bet_type = data.get("betType")
    legs = data.get("legs")
    if bet_type not in (BetType.single.value, BetType.accumulator.value) or not isinstance(legs, list):
        return None

    has_combined = data.get("combined") is not None
    got = f"got {len(legs)} leg(s), combined {'present' if has_combined else 'absent'}"
    if bet_type == BetType.single.value:
        if len(legs) != 1 or has_combined:
            return ValidationIssue(path, f"Single bets must have exactly 1 leg and no combined odds ({got})")
    elif len(legs) < 2 or not has_combined:
        return ValidationIssue(path, f"Accumulator bets must have at least 2 legs and combined odds ({got})")
    return None


def tip_item_issues(data: Any, path: Path = ()) -> list[ValidationIssue]:
    issues = _not_an_object(data, path, "Tip")
    if issues:
        return issues

    issues.extend(_model_issues(_TipHeader, data, path))

    legs = data.get("legs")
    legs_path = path + ("legs",)
    if "legs" not in data or legs is None:
        issues.append(ValidationIssue(legs_path, "Field required"))
    elif not isinstance(legs, list):
        issues.append(ValidationIssue(legs_path, "Input should be a valid list"))
    else:
        if not legs and data.get("betType") not in (BetType.single.value, BetType.accumulator.value):
            issues.append(ValidationIssue(legs_path, "Tip must have at least 1 leg"))
        for index, leg in enumerate(legs):
            issues.extend(leg_issues(leg, legs_path + (index,)))

    combined = data.get("combined")
    if combined is not None:
        issues.extend(combined_price_issues(combined, path + ("combined",)))

    structural = _structural_issue(data, path)
    if structural is not None:
        issues.append(structural)
    return issues


def _version_issue(data: Mapping) -> ValidationIssue | None:
    if "version" not in data:
        return ValidationIssue(("version",), "Field required")
    version = data["version"]
    if isinstance(version, bool) or not isinstance(version, int):
        return ValidationIssue(("version",), f"Unsupported version {version!r}; expected {PAYLOAD_VERSION}")
    if version == 1:
        return ValidationIssue(
            ("version",),
            "Legacy version 1 payload; migrate it to version 2 (leg-based) first",
        )
    if version != PAYLOAD_VERSION:
        return ValidationIssue(("version",), f"Unsupported version {version}; expected {PAYLOAD_VERSION}")
    return None


def date_iso_issues(value: Any, path: Path) -> list[ValidationIssue]:
    if not isinstance(value, str):
        return [ValidationIssue(path, "Date must be a string in YYYY-MM-DD format")]
    if not _DATE_RE.match(value):
        return [ValidationIssue(path, "Date must be in YYYY-MM-DD format")]
    if parse_date_iso(value) is None:
        return [ValidationIssue(path, "Date must be a valid date in YYYY-MM-DD format")]
    return []


def _timestamp_issues(value: Any, path: Path) -> list[ValidationIssue]:
    if not isinstance(value, str):
        return [ValidationIssue(path, "Timestamp must be an ISO-8601 string")]
    try:
        _DATETIME_ADAPTER.validate_python(value)
    except PydanticValidationError:
        return [ValidationIssue(path, "Timestamp must be an ISO-8601 string")]
    return []


def payload_issues(data: Any) -> list[ValidationIssue]:
    issues = _not_an_object(data, (), "Payload")
    if issues:
        return issues

    version = _version_issue(data)
    if version is not None:
        issues.append(version)

    if "dateISO" not in data:
        issues.append(ValidationIssue(("dateISO",), "Field required"))
    else:
        issues.extend(date_iso_issues(data["dateISO"], ("dateISO",)))

    if "generatedAt" not in data:
        issues.append(ValidationIssue(("generatedAt",), "Field required"))
    else:
        issues.extend(_timestamp_issues(data["generatedAt"], ("generatedAt",)))

    issues.extend(_model_issues(_PayloadHeader, data, ()))

    tips = data.get("tips")
    if "tips" not in data or tips is None:
        issues.append(ValidationIssue(("tips",), "Field required"))
        return issues
    if not isinstance(tips, list):
        issues.append(ValidationIssue(("tips",), "Input should be a valid list"))
        return issues
    if not tips:
        issues.append(ValidationIssue(("tips",), "Must have at least 1 tip"))

    first_seen: dict[str, int] = {}
    for index, tip in enumerate(tips):
        issues.extend(tip_item_issues(tip, ("tips", index)))
        tip_id = tip.get("id") if isinstance(tip, Mapping) else None
        if not isinstance(tip_id, str):
            continue
        if tip_id in first_seen:
            issues.append(ValidationIssue(
                ("tips", index, "id"),
                f"Duplicate tip id '{tip_id}' (already used by tips.{first_seen[tip_id]})",
            ))
        else:
            first_seen[tip_id] = index
    return issues


# ---------------------------------------------------------------------------
# Typed validators (raise TipValidationError)
# ---------------------------------------------------------------------------

def _with_default_result(data: Mapping) -> dict[str, Any]:
    tip = dict(data)
    if tip.get("result") is None:
        tip["result"] = TipResult.pending.value
    return tip


def validate_leg(data: Any) -> Leg:
    issues = leg_issues(data)
    if issues:
        raise TipValidationError(issues)
    return Leg.model_validate(data)


def validate_combined_price(data: Any) -> CombinedPrice:
    issues = combined_price_issues(data)
    if issues:
        raise TipValidationError(issues)
    return CombinedPrice.model_validate(data)


def validate_tip_item(data: Any) -> TipItem:
    """Validate one tip. A missing ``result`` is filled with ``pending``."""
    issues = tip_item_issues(data)
    if issues:
        raise TipValidationError(issues)
    try:
        return _TIP_ADAPTER.validate_python(_with_default_result(data))
    except PydanticValidationError as exc:
        raise TipValidationError(_issues_from_pydantic(exc, ())) from None


def validate_payload(data: Any) -> DailyTipsPayload:
    """Validate a whole daily payload, reporting every issue found."""
    if isinstance(data, DailyTipsPayload):
        return data
    issues = payload_issues(data)
    if issues:
        raise TipValidationError(issues)
    normalized = dict(data)
    normalized["tips"] = [_with_default_result(tip) for tip in data["tips"]]
    try:
        return DailyTipsPayload.model_validate(normalized)
    except PydanticValidationError as exc:
        raise TipValidationError(_issues_from_pydantic(exc, ())) from None


def validate_result(value: Any, path: Path = ("result",)) -> TipResult:
    try:
        return TipResult(value)
    except ValueError:
        allowed = ", ".join(r.value for r in TipResult)
        raise TipValidationError([ValidationIssue(path, f"result must be one of: {allowed}")]) from None


def validate_date_iso(value: Any, field: str = "date") -> str:
    issues = date_iso_issues(value, (field,))
    if issues:
        raise TipValidationError(issues)
    return value


def build_tip_filters(**raw: Any) -> TipFilters:
    """Build filters from loosely-typed input (query strings, CLI args).

    Keys use wire names (``betType``, ``minLegs``, ``dateFrom``, ``dateTo``);
    ``None`` and empty strings mean "not filtered".
    """
    cleaned = {k: v for k, v in raw.items() if v is not None and v != ""}
    issues: list[ValidationIssue] = []
    for key in ("dateFrom", "dateTo"):
        if key in cleaned:
            issues.extend(date_iso_issues(cleaned[key], (key,)))
    if issues:
        raise TipValidationError(issues)
    try:
        return TipFilters.model_validate(cleaned)
    except PydanticValidationError as exc:
        raise TipValidationError(_issues_from_pydantic(exc, ())) from None


def combined_odds_drift(tip: TipItem) -> float | None:
    """Relative gap between combined.avgOdds and the product of leg odds (accumulators only)."""
    if not isinstance(tip, AccumulatorTip):
        return None
    product = math.prod(leg.avg_odds for leg in tip.legs)
    return abs(tip.combined.avg_odds - product) / product
