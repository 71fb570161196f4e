"""
backend/tests/test_legacy_migration.py

Purpose:
    Version 1 to version 2 payload conversion and the demo payload generator.
"""

from __future__ import annotations

from datetime import date

import pytest

from app.services.demo_tips_service import demo_payload, demo_payloads
from app.services.legacy_migration_service import (
    is_legacy_accumulator,
    migrate_v1_payload,
)
from app.services.tip_errors import TipValidationError
from app.services.tip_validation_service import validate_payload
from tip_factories import make_payload


def _v1_tip(tip_id, market="1X2", selection="Benfica", odds=1.85, risk="safe"):
    return {
        "id": tip_id,
        "sport": "Football",
        "league": "Liga Portugal",
        "event": {"home": "Benfica", "away": "Porto"},
        "market": market,
        "selection": selection,
        "odds": odds,
        "risk": risk,
        "rationale": "home form",
    }


def _v1_payload(*tips):
    return {
        "version": 1,
        "dateISO": "2025-08-20",
        "generatedAt": "2025-08-20T07:00:00Z",
        "generatedBy": "chatgpt",
        "tips": list(tips),
    }


def test_accumulator_detection():
    assert is_legacy_accumulator({"market": "Accumulator", "selection": "x"})
    assert is_legacy_accumulator({"market": "1X2", "selection": "Benfica + Porto"})
    assert is_legacy_accumulator({"market": "1X2", "selection": "Over & BTTS"})
    assert not is_legacy_accumulator({"market": "1X2", "selection": "Benfica"})


def test_flat_tip_becomes_single_with_synthetic_bookmakers():
    migrated = migrate_v1_payload(_v1_payload(_v1_tip("tip-1")))

    tip = migrated["tips"][0]
    assert migrated["version"] == 2
    assert tip["betType"] == "single"
    assert tip["result"] == "pending"
    leg = tip["legs"][0]
    assert leg["avgOdds"] == 1.85
    assert [b["name"] for b in leg["bookmakers"]] == ["bet365", "Betfair", "Betano", "Pinnacle"]
    for price in leg["bookmakers"]:
        assert 1.85 * 0.95 - 0.01 <= price["odds"] <= 1.85 * 1.05 + 0.01


def test_split_selection_becomes_accumulator_legs():
    tip = _v1_tip("tip-2", market="Accumulator 1X2", selection="Benfica + Porto + Braga", odds=8.0, risk="high")

    migrated = migrate_v1_payload(_v1_payload(tip))["tips"][0]

    assert migrated["betType"] == "accumulator"
    assert [leg["selection"] for leg in migrated["legs"]] == ["Benfica", "Porto", "Braga"]
    assert [leg["avgOdds"] for leg in migrated["legs"]] == [2.0, 2.0, 2.0]
    assert migrated["legs"][0]["market"] == "1X2"
    assert migrated["legs"][1]["event"] == {"name": "Event 2"}
    assert migrated["combined"]["avgOdds"] == 8.0


def test_unsplittable_accumulator_falls_back_to_two_legs():
    tip = _v1_tip("tip-3", market="Accumulator", selection="Benfica and Porto win", odds=4.0, risk="medium")

    migrated = migrate_v1_payload(_v1_payload(tip))["tips"][0]

    assert migrated["betType"] == "accumulator"
    assert [leg["selection"] for leg in migrated["legs"]] == ["Benfica and Porto win", "Over 2.5 goals"]
    assert [leg["avgOdds"] for leg in migrated["legs"]] == [2.0, 2.0]


def test_migration_is_reproducible():
    payload = _v1_payload(_v1_tip("tip-1"), _v1_tip("tip-2", selection="A & B", odds=3.0))
    assert migrate_v1_payload(payload) == migrate_v1_payload(payload)


def test_migrated_payload_passes_validation():
    migrated = migrate_v1_payload(_v1_payload(_v1_tip("tip-1"), _v1_tip("tip-2", selection="A + B", odds=3.3)))
    assert len(validate_payload(migrated).tips) == 2


def test_invalid_v1_content_is_still_rejected():
    with pytest.raises(TipValidationError):
        migrate_v1_payload(_v1_payload(_v1_tip("tip-1", risk="extreme")))


def test_tip_without_usable_odds_is_a_validation_issue():
    missing = _v1_tip("tip-1")
    del missing["odds"]
    quoted = _v1_tip("tip-2", odds="1.85")

    with pytest.raises(TipValidationError) as exc_info:
        migrate_v1_payload(_v1_payload(missing, quoted, "not a tip"))

    assert [i.path for i in exc_info.value.issues] == [
        ("tips", 0, "odds"),
        ("tips", 1, "odds"),
        ("tips", 2),
    ]


def test_non_object_input_is_rejected():
    with pytest.raises(ValueError):
        migrate_v1_payload([_v1_payload(_v1_tip("tip-1"))])


def test_version_two_is_returned_unchanged():
    payload = make_payload()
    assert migrate_v1_payload(payload) == payload


def test_demo_payloads_are_valid_and_deterministic():
    first = demo_payload(date(2025, 9, 5))
    assert first == demo_payload(date(2025, 9, 5))

    validated = validate_payload(first)
    assert [t.bet_type for t in validated.tips] == ["single", "single", "accumulator"]
    assert [t.risk.value for t in validated.tips] == ["safe", "medium", "high"]
    assert validated.generated_by == "demo-system"


def test_demo_payloads_cover_the_requested_days():
    payloads = demo_payloads(3, date(2025, 9, 5))
    assert [p["dateISO"] for p in payloads] == ["2025-09-03", "2025-09-04", "2025-09-05"]
