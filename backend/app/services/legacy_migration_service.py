"""
backend/app/services/legacy_migration_service.py

Purpose:
    Convert version 1 daily payloads (one flat selection per tip) into the
    version 2 leg-based contract. Accumulators are recognised from the
    market/selection text and split into legs with approximated per-leg odds.
    Version 1 carried no bookmaker prices, so synthetic ones are generated
    around the known odds; the generator is seeded from the tip id so a rerun
    produces the same file.
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Mapping
from typing import Any

from app.models.tips import ODDS_MIN, PAYLOAD_VERSION, BetType, TipResult
from app.services.tip_errors import TipValidationError, ValidationIssue
from app.services.tip_validation_service import validate_payload

logger = logging.getLogger("dailytips.legacy_migration")

SYNTHETIC_BOOKMAKERS = ["bet365", "Betfair", "Betano", "Pinnacle", "Betclic", "Bwin"]
SYNTHETIC_BOOKMAKER_COUNT = 4
SYNTHETIC_SPREAD = 0.05

_SELECTION_SPLIT = re.compile(r"\s*[+&]\s*")


def is_legacy_accumulator(tip: Mapping[str, Any]) -> bool:
    market = str(tip.get("market") or "")
    selection = str(tip.get("selection") or "")
    return "accumulator" in market.lower() or "+" in selection or "&" in selection


def synthetic_bookmakers(base_odds: float, rng: random.Random, count: int = SYNTHETIC_BOOKMAKER_COUNT) -> list[dict]:
    """Prices within +/-5% of ``base_odds``, rounded to 2 decimals, never below 1.01."""
    prices = []
    for name in SYNTHETIC_BOOKMAKERS[:count]:
        variation = rng.uniform(-SYNTHETIC_SPREAD, SYNTHETIC_SPREAD)
        prices.append({"name": name, "odds": max(ODDS_MIN, round(base_odds * (1 + variation), 2))})
    return prices


def _leg_odds(total_odds: float, parts: int) -> float:
    return max(ODDS_MIN, round(total_odds ** (1 / parts), 2))


def _base_leg(tip: Mapping[str, Any]) -> dict[str, Any]:
    leg = {"sport": tip.get("sport"), "event": tip.get("event")}
    if tip.get("league"):
        leg["league"] = tip["league"]
    return leg


def _accumulator_legs(tip: Mapping[str, Any], rng: random.Random) -> list[dict[str, Any]]:
    odds = float(tip["odds"])
    selections = [s for s in _SELECTION_SPLIT.split(str(tip.get("selection") or "")) if s.strip()]

    if len(selections) >= 2:
        per_leg = _leg_odds(odds, len(selections))
        first_market = re.sub("accumulator", "", str(tip.get("market") or ""), flags=re.IGNORECASE).strip()
        legs = []
        for index, selection in enumerate(selections):
            leg = _base_leg(tip)
            if index > 0:
                leg["event"] = {"name": f"Event {index + 1}"}
            leg["market"] = (first_market or "1X2") if index == 0 else "1X2"
            leg["selection"] = selection.strip()
            leg["avgOdds"] = per_leg
            leg["bookmakers"] = synthetic_bookmakers(per_leg, rng)
            legs.append(leg)
        return legs

    # Not splittable: the original selection plus a generic goals leg
    per_leg = _leg_odds(odds, 2)
    first = _base_leg(tip)
    first.update({"market": "1X2", "selection": tip.get("selection"), "avgOdds": per_leg})
    first["bookmakers"] = synthetic_bookmakers(per_leg, rng)
    second = _base_leg(tip)
    second.update({
        "event": {"name": "Secondary Event"},
        "market": "Over 2.5",
        "selection": "Over 2.5 goals",
        "avgOdds": per_leg,
    })
    second["bookmakers"] = synthetic_bookmakers(per_leg, rng)
    return [first, second]


def migrate_v1_tip(tip: Mapping[str, Any], *, seed: Any = None) -> dict[str, Any]:
    rng = random.Random(f"{seed}:{tip.get('id')}")
    migrated: dict[str, Any] = {
        "id": tip.get("id"),
        "risk": tip.get("risk"),
        "rationale": tip.get("rationale"),
        "result": tip.get("result") or TipResult.pending.value,
    }
    odds = float(tip["odds"])

    if is_legacy_accumulator(tip):
        migrated["betType"] = BetType.accumulator.value
        migrated["legs"] = _accumulator_legs(tip, rng)
        migrated["combined"] = {"avgOdds": odds, "bookmakers": synthetic_bookmakers(odds, rng)}
    else:
        leg = _base_leg(tip)
        leg.update({"market": tip.get("market"), "selection": tip.get("selection"), "avgOdds": odds})
        leg["bookmakers"] = synthetic_bookmakers(odds, rng)
        migrated["betType"] = BetType.single.value
        migrated["legs"] = [leg]
    return migrated


def _v1_shape_issues(tips: Any) -> list[ValidationIssue]:
    """Problems that would stop the conversion itself, before v2 validation runs."""
    if not isinstance(tips, list):
        return [ValidationIssue(("tips",), "Input should be a valid list")]
    issues = []
    for index, tip in enumerate(tips):
        if not isinstance(tip, Mapping):
            issues.append(ValidationIssue(("tips", index), "Tip must be an object"))
            continue
        odds = tip.get("odds")
        if isinstance(odds, bool) or not isinstance(odds, (int, float)) or odds <= 0:
            issues.append(ValidationIssue(("tips", index, "odds"), "odds must be a positive number"))
    return issues


def migrate_v1_payload(data: Any, *, seed: Any = None) -> dict[str, Any]:
    """Return ``data`` as a validated version 2 payload dict.

    Version 2 input is returned unchanged. Raises ValueError for input that is
    not a version 1 payload object, and TipValidationError when a tip cannot
    be converted or the converted payload is still invalid (e.g. a v1 tip with
    a bad risk value).
    """
    if not isinstance(data, Mapping):
        raise ValueError(f"Expected a payload object, got {type(data).__name__}")
    version = data.get("version")
    if version == PAYLOAD_VERSION:
        return dict(data)
    if version != 1:
        raise ValueError(f"Cannot migrate payload with version {version!r}")

    issues = _v1_shape_issues(data.get("tips") or [])
    if issues:
        raise TipValidationError(issues)

    migrated: dict[str, Any] = {
        "version": PAYLOAD_VERSION,
        "dateISO": data.get("dateISO"),
        "generatedAt": data.get("generatedAt"),
        "generatedBy": data.get("generatedBy"),
        "tips": [migrate_v1_tip(tip, seed=seed) for tip in data.get("tips") or []],
    }
    if data.get("seo"):
        migrated["seo"] = data["seo"]

    validate_payload(migrated)
    accumulators = sum(1 for t in migrated["tips"] if t["betType"] == BetType.accumulator.value)
    logger.info(
        "Migrated %s: %d tips (%d accumulators)", migrated["dateISO"], len(migrated["tips"]), accumulators,
    )
    return migrated
