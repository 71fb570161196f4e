"""Deterministic demo payloads for seeding a development store.

Each day gets one safe single, one medium single and one high-risk
accumulator. The generator is seeded from the date, so reseeding the same
range produces identical payloads.
"""

from __future__ import annotations

import math
import random
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from app.services.legacy_migration_service import synthetic_bookmakers

DEMO_GENERATED_BY = "demo-system"

DEMO_FIXTURES: dict[str, list[tuple[str, tuple[str, str]]]] = {
    "Football": [
        ("Liga Portugal", ("Benfica", "Porto")),
        ("Liga Portugal", ("Sporting", "Braga")),
        ("La Liga", ("Real Madrid", "Barcelona")),
        ("Premier League", ("Manchester City", "Liverpool")),
        ("Bundesliga", ("Bayern", "Dortmund")),
    ],
    "Tennis": [
        ("ATP", ("Alcaraz", "Sinner")),
        ("ATP", ("Medvedev", "Zverev")),
        ("WTA", ("Swiatek", "Sabalenka")),
    ],
    "Basketball": [
        ("NBA", ("Lakers", "Celtics")),
        ("EuroLeague", ("Panathinaikos", "Olympiacos")),
    ],
}

_ODDS_RANGE = {"safe": (1.20, 1.80), "medium": (1.80, 3.00), "high": (3.00, 10.00)}

_RATIONALES = {
    "safe": "Consistent home form over the last five matches and a settled squad.",
    "medium": "Both sides need points and recent meetings have been close.",
    "high": "Speculative value across several fixtures with favourable match-ups.",
}


def _odds(rng: random.Random, risk: str) -> float:
    low, high = _ODDS_RANGE[risk]
    return round(rng.uniform(low, high), 2)


def _leg(rng: random.Random, odds: float, kickoff: datetime) -> dict[str, Any]:
    sport = rng.choice(sorted(DEMO_FIXTURES))
    league, (home, away) = rng.choice(DEMO_FIXTURES[sport])
    if sport == "Tennis":
        event = {"name": f"{home} vs {away}"}
        market, selection = "Match Winner", home
    else:
        event = {"home": home, "away": away}
        market, selection = rng.choice([("1X2", f"{home} Win"), ("Over 2.5", "Over 2.5"), ("Double Chance", "1X")])
    event["scheduledAt"] = kickoff.isoformat()
    event["timezone"] = "Europe/Lisbon"
    return {
        "sport": sport,
        "league": league,
        "event": event,
        "market": market,
        "selection": selection,
        "avgOdds": odds,
        "bookmakers": synthetic_bookmakers(odds, rng),
    }


def demo_payload(day: date) -> dict[str, Any]:
    """Raw version 2 payload for ``day`` (not yet validated)."""
    rng = random.Random(day.isoformat())
    date_iso = day.isoformat()
    kickoff = datetime.combine(day, time(19, 45), tzinfo=timezone.utc)

    tips: list[dict[str, Any]] = []
    for risk in ("safe", "medium"):
        tips.append({
            "id": f"demo-{date_iso}-{risk}",
            "betType": "single",
            "risk": risk,
            "legs": [_leg(rng, _odds(rng, risk), kickoff)],
            "rationale": _RATIONALES[risk],
        })

    combined_odds = _odds(rng, "high")
    leg_count = rng.choice([2, 3])
    leg_odds = max(1.01, round(combined_odds ** (1 / leg_count), 2))
    legs = [_leg(rng, leg_odds, kickoff + timedelta(hours=i)) for i in range(leg_count)]
    tips.append({
        "id": f"demo-{date_iso}-high",
        "betType": "accumulator",
        "risk": "high",
        "legs": legs,
        "combined": {
            "avgOdds": round(math.prod(leg["avgOdds"] for leg in legs), 2),
            "bookmakers": synthetic_bookmakers(combined_odds, rng),
        },
        "rationale": _RATIONALES["high"],
    })

    return {
        "version": 2,
        "dateISO": date_iso,
        "generatedAt": datetime.combine(day, time(8, 0), tzinfo=timezone.utc).isoformat(),
        "generatedBy": DEMO_GENERATED_BY,
        "tips": tips,
        "seo": {
            "title": f"Betting tips for {date_iso}",
            "description": "Three daily picks: a safe single, a medium single and a high-risk accumulator.",
        },
    }


def demo_payloads(days: int, today: date) -> list[dict[str, Any]]:
    """Payloads for the ``days`` most recent dates ending at ``today``, oldest first."""
    return [demo_payload(today - timedelta(days=offset)) for offset in range(days - 1, -1, -1)]
