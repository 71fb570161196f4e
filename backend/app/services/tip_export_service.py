"""
backend/app/services/tip_export_service.py

Purpose:
    Row-oriented projection of tips for CSV export. Each leg becomes a row
    carrying the tip's shared fields; an accumulator additionally gets one
    summary row with the leg fields empty and the combined price filled.
    Row order follows the listing order of the query service.
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable
from datetime import datetime, timezone

from app.models.tips import CSV_COLUMNS, BookmakerPrice, DatedTip, TipCsvRow, TipFilters
from app.services.tip_query_service import iter_filtered_tips
from app.services.tip_repository import TipRepository


def _bookmakers_json(prices: list[BookmakerPrice]) -> str:
    return json.dumps([p.to_wire() for p in prices], separators=(",", ":"))


def tip_rows(dated: DatedTip) -> list[TipCsvRow]:
    tip = dated.tip
    shared = {
        "date_iso": dated.date_iso,
        "tip_id": tip.id,
        "bet_type": tip.bet_type,
        "risk": tip.risk.value,
        "result": tip.result.value,
    }
    combined = {}
    if tip.combined is not None:
        combined = {
            "combined_avg_odds": tip.combined.avg_odds,
            "combined_bookmakers_json": _bookmakers_json(tip.combined.bookmakers),
        }

    rows = [
        TipCsvRow(
            **shared,
            **combined,
            leg_index=index,
            sport=leg.sport,
            league=leg.league,
            event_name=leg.event.display_name,
            market=leg.market,
            selection=leg.selection,
            leg_avg_odds=leg.avg_odds,
            leg_bookmakers_json=_bookmakers_json(leg.bookmakers),
        )
        for index, leg in enumerate(tip.legs)
    ]
    if combined:
        rows.append(TipCsvRow(**shared, **combined))
    return rows


def build_export_rows(tips: Iterable[DatedTip]) -> list[TipCsvRow]:
    rows: list[TipCsvRow] = []
    for dated in tips:
        rows.extend(tip_rows(dated))
    return rows


async def export_rows(repository: TipRepository, filters: TipFilters | None = None) -> list[TipCsvRow]:
    """Export rows for the whole filtered set (not one page)."""
    return build_export_rows([tip async for tip in iter_filtered_tips(repository, filters)])


def render_csv(rows: Iterable[TipCsvRow]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for row in rows:
        values = row.model_dump(by_alias=True)
        writer.writerow(["" if values[col] is None else values[col] for col in CSV_COLUMNS])
    return output.getvalue()


def export_filename(now: datetime | None = None) -> str:
    day = (now or datetime.now(timezone.utc)).date().isoformat()
    return f"betting-tips-v2-{day}.csv"
