"""
backend/tests/test_tip_validation.py

Purpose:
    Validator behavior for daily tips payloads: structural rule, unique ids,
    odds bounds, full error collection with paths, and helper validators.
"""

from __future__ import annotations

import pytest

from app.models.tips import AccumulatorTip, DailyTipsPayload, SingleTip, TipResult
from app.services.tip_errors import TipValidationError
from app.services.tip_validation_service import (
    build_tip_filters,
    combined_odds_drift,
    payload_issues,
    validate_date_iso,
    validate_leg,
    validate_payload,
    validate_result,
    validate_tip_item,
)
from tip_factories import make_accumulator, make_leg, make_payload, make_single


def _fields(exc_info) -> set[str]:
    return {issue.field for issue in exc_info.value.issues}


def test_valid_single_payload_defaults_result_to_pending():
    payload = validate_payload(make_payload())

    assert isinstance(payload, DailyTipsPayload)
    assert payload.date_iso == "2025-09-05"
    tip = payload.tips[0]
    assert isinstance(tip, SingleTip)
    assert tip.result == TipResult.pending
    assert tip.legs[0].bookmakers[0].name == "Bet365"


def test_valid_accumulator_is_typed_as_accumulator():
    payload = validate_payload(make_payload(tips=[make_accumulator()]))
    tip = payload.tips[0]
    assert isinstance(tip, AccumulatorTip)
    assert tip.combined.avg_odds == 3.60
    assert tip.sports == ["Football", "Tennis"]


def test_accumulator_with_one_leg_and_no_combined_is_one_structural_issue():
    tip = make_single()
    tip["betType"] = "accumulator"

    issues = payload_issues(make_payload(tips=[tip]))

    assert len(issues) == 1
    assert issues[0].path == ("tips", 0)
    assert "Accumulator bets must have at least 2 legs" in issues[0].message


def test_single_with_two_legs_is_rejected():
    tip = make_single()
    tip["legs"].append(make_leg(sport="Tennis"))

    with pytest.raises(TipValidationError) as exc_info:
        validate_payload(make_payload(tips=[tip]))

    assert [i.path for i in exc_info.value.issues] == [("tips", 0)]
    assert "Single bets must have exactly 1 leg" in exc_info.value.issues[0].message


def test_single_with_combined_price_is_rejected():
    tip = make_single()
    tip["combined"] = {"avgOdds": 2.1, "bookmakers": [{"name": "Bet365", "odds": 2.1}]}

    issues = payload_issues(make_payload(tips=[tip]))

    assert [i.path for i in issues] == [("tips", 0)]
    assert "combined present" in issues[0].message


def test_structural_issue_is_reported_with_leg_errors_of_same_tip():
    tip = make_accumulator()
    tip["legs"] = tip["legs"][:1]
    tip["legs"][0]["avgOdds"] = 0.5

    issues = payload_issues(make_payload(tips=[tip]))
    fields = {i.field for i in issues}

    assert "tips.0" in fields
    assert "tips.0.legs.0.avgOdds" in fields


def test_duplicate_tip_ids_name_the_duplicate():
    tips = [make_single("tip-a"), make_single("tip-b"), make_single("tip-a")]

    with pytest.raises(TipValidationError) as exc_info:
        validate_payload(make_payload(tips=tips))

    issues = exc_info.value.issues
    assert [i.path for i in issues] == [("tips", 2, "id")]
    assert "tip-a" in issues[0].message


@pytest.mark.parametrize("odds", [1.01, 1000])
def test_odds_bounds_are_inclusive(odds):
    leg = make_leg(odds=odds, bookmakers=[{"name": "Bet365", "odds": odds}])
    assert validate_leg(leg).avg_odds == odds


@pytest.mark.parametrize("odds", [1.0, 1000.01])
def test_odds_outside_bounds_are_rejected_at_leg_and_bookmaker(odds):
    leg = make_leg(odds=odds, bookmakers=[{"name": "Bet365", "odds": odds}])
    tip = make_single()
    tip["legs"] = [leg]

    with pytest.raises(TipValidationError) as exc_info:
        validate_payload(make_payload(tips=[tip]))

    assert _fields(exc_info) == {"tips.0.legs.0.avgOdds", "tips.0.legs.0.bookmakers.0.odds"}


@pytest.mark.parametrize("odds", ["2.10", True])
def test_non_numeric_odds_are_rejected_not_coerced(odds):
    leg = make_leg(odds=odds, bookmakers=[{"name": "Bet365", "odds": odds}])
    tip = make_single()
    tip["legs"] = [leg]

    with pytest.raises(TipValidationError) as exc_info:
        validate_payload(make_payload(tips=[tip]))

    assert _fields(exc_info) == {"tips.0.legs.0.avgOdds", "tips.0.legs.0.bookmakers.0.odds"}
    for issue in exc_info.value.issues:
        assert "valid number" in issue.message


def test_combined_odds_given_as_string_is_rejected():
    tip = make_accumulator()
    tip["combined"]["avgOdds"] = "3.60"

    with pytest.raises(TipValidationError) as exc_info:
        validate_payload(make_payload(tips=[tip]))

    assert _fields(exc_info) == {"tips.0.combined.avgOdds"}


def test_combined_odds_out_of_range_is_rejected():
    tip = make_accumulator()
    tip["combined"]["avgOdds"] = 1001

    with pytest.raises(TipValidationError) as exc_info:
        validate_payload(make_payload(tips=[tip]))

    assert _fields(exc_info) == {"tips.0.combined.avgOdds"}


def test_every_issue_is_collected_in_one_pass():
    tip = make_single()
    tip["risk"] = "extreme"
    tip["rationale"] = ""
    tip["legs"][0]["bookmakers"] = []
    payload = make_payload(tips=[tip], dateISO="05-09-2025")

    with pytest.raises(TipValidationError) as exc_info:
        validate_payload(payload)

    assert {
        "dateISO",
        "tips.0.risk",
        "tips.0.rationale",
        "tips.0.legs.0.bookmakers",
    } <= _fields(exc_info)


def test_more_than_six_bookmakers_is_rejected():
    leg = make_leg(bookmakers=[{"name": f"Book {i}", "odds": 2.0} for i in range(7)])
    with pytest.raises(TipValidationError) as exc_info:
        validate_leg(leg)
    assert _fields(exc_info) == {"bookmakers"}


def test_event_needs_at_least_one_label():
    leg = make_leg(event={"timezone": "Europe/Lisbon"})
    with pytest.raises(TipValidationError) as exc_info:
        validate_leg(leg)
    assert _fields(exc_info) == {"event"}
    assert "home, away, or name" in exc_info.value.issues[0].message


def test_event_name_only_is_enough():
    leg = validate_leg(make_leg(event={"name": "Alcaraz vs Sinner"}))
    assert leg.event.display_name == "Alcaraz vs Sinner"


def test_bookmaker_url_must_be_absolute_http():
    leg = make_leg(bookmakers=[{"name": "Bet365", "odds": 2.1, "url": "bet365.com/offer"}])
    with pytest.raises(TipValidationError) as exc_info:
        validate_leg(leg)
    assert _fields(exc_info) == {"bookmakers.0.url"}


def test_invalid_calendar_date_is_rejected():
    with pytest.raises(TipValidationError) as exc_info:
        validate_payload(make_payload(date_iso="2025-02-30"))
    assert "dateISO" in _fields(exc_info)


def test_version_one_payload_asks_for_migration():
    issues = payload_issues(make_payload(version=1))
    assert [i.field for i in issues] == ["version"]
    assert "migrate" in issues[0].message


def test_non_object_payload_is_a_single_root_issue():
    issues = payload_issues(["not", "a", "payload"])
    assert len(issues) == 1
    assert issues[0].field == "payload"


def test_empty_tips_list_is_rejected():
    issues = payload_issues(make_payload(tips=[]))
    assert [i.field for i in issues] == ["tips"]


def test_unknown_bet_type_reports_bet_type_only():
    tip = make_single()
    tip["betType"] = "double"
    issues = payload_issues(make_payload(tips=[tip]))
    assert [i.field for i in issues] == ["tips.0.betType"]


def test_validate_tip_item_fills_pending_and_keeps_given_result():
    assert validate_tip_item(make_single()).result == TipResult.pending
    assert validate_tip_item(make_single(result="win")).result == TipResult.win


def test_typed_payload_passes_through_unchanged():
    payload = validate_payload(make_payload())
    assert validate_payload(payload) is payload


def test_validate_result():
    assert validate_result("void") == TipResult.void
    with pytest.raises(TipValidationError) as exc_info:
        validate_result("won")
    assert exc_info.value.issues[0].field == "result"


def test_validate_date_iso():
    assert validate_date_iso("2025-09-05") == "2025-09-05"
    with pytest.raises(TipValidationError):
        validate_date_iso("2025-9-5")
    with pytest.raises(TipValidationError):
        validate_date_iso(None)


def test_build_tip_filters_ignores_blank_values():
    filters = build_tip_filters(sport="", risk="safe", betType=None, minLegs="2")
    assert filters.sport is None
    assert filters.risk.value == "safe"
    assert filters.min_legs == 2


@pytest.mark.parametrize(
    "raw",
    [
        {"risk": "extreme"},
        {"minLegs": "0"},
        {"dateFrom": "2025-13-01"},
        {"dateFrom": "2025-09-10", "dateTo": "2025-09-01"},
    ],
)
def test_build_tip_filters_rejects_bad_values(raw):
    with pytest.raises(TipValidationError):
        build_tip_filters(**raw)


def test_combined_odds_drift_is_advisory():
    tip = validate_tip_item(make_accumulator())
    drift = combined_odds_drift(tip)
    # legs 1.5 * 1.6 = 2.4 vs declared 3.6
    assert drift == pytest.approx(0.5)
    assert combined_odds_drift(validate_tip_item(make_single())) is None
