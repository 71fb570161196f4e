"""
backend/app/services/tip_query_service.py

Purpose:
    Filtered, paginated view across all dated payloads, plus aggregate
    statistics over the full filtered set. Callers never deal with dates as
    containers: a tip is listed together with the date that owns it.

    Order is fixed: owning date descending, then risk safe < medium < high,
    then tip id ascending.

Dependencies:
    - app.services.tip_repository
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable

from app.models.tips import (
    BetType,
    DatedTip,
    Risk,
    SportStat,
    TipFilters,
    TipPage,
    TipResult,
    TipStats,
)
from app.services.tip_errors import TipValidationError, ValidationIssue
from app.services.tip_repository import TipRepository

logger = logging.getLogger("dailytips.tip_query")

PUBLIC_MAX_LIMIT = 100
INTERNAL_MAX_LIMIT = 10_000


def _check_window(page: int, limit: int, max_limit: int) -> None:
    issues = []
    if page < 1:
        issues.append(ValidationIssue(("page",), "page must be 1 or greater"))
    if limit < 1 or limit > max_limit:
        issues.append(ValidationIssue(("limit",), f"limit must be between 1 and {max_limit}"))
    if issues:
        raise TipValidationError(issues)


async def query_tips(
    repository: TipRepository,
    filters: TipFilters | None = None,
    page: int = 1,
    limit: int = 20,
    *,
    max_limit: int = PUBLIC_MAX_LIMIT,
) -> TipPage:
    """One page of the filtered tip set. Out-of-range page/limit is rejected, not clamped."""
    filters = filters or TipFilters()
    _check_window(page, limit, max_limit)
    tips, total = await repository.search_tips(filters, skip=(page - 1) * limit, limit=limit)
    return TipPage(tips=tips, total=total, has_more=page * limit < total, page=page, limit=limit)


async def iter_filtered_tips(
    repository: TipRepository,
    filters: TipFilters | None = None,
    *,
    batch_size: int = 500,
) -> AsyncIterator[DatedTip]:
    """Every tip of the filtered set, in listing order, fetched page by page."""
    page = 1
    while True:
        result = await query_tips(repository, filters, page, batch_size, max_limit=INTERNAL_MAX_LIMIT)
        for tip in result.tips:
            yield tip
        if not result.has_more or not result.tips:
            return
        page += 1


def _rate(wins: int, total: int) -> float:
    return wins / total if total else 0.0


def compute_tip_stats(tips: Iterable[DatedTip]) -> TipStats:
    """Aggregate counts and win rates.

    An accumulator spanning several sports counts once for each sport it touches.
    An empty set yields zeros everywhere (win rate 0, never NaN).
    """
    total = 0
    wins = 0
    wins_by_risk = {r.value: 0 for r in Risk}
    total_by_risk = {r.value: 0 for r in Risk}
    bets_by_type = {b.value: 0 for b in BetType}
    sport_counts: dict[str, list[int]] = {}

    for dated in tips:
        tip = dated.tip
        won = tip.result == TipResult.win
        total += 1
        wins += won
        total_by_risk[tip.risk.value] += 1
        wins_by_risk[tip.risk.value] += won
        bets_by_type[tip.bet_type] += 1
        for sport in tip.sports:
            entry = sport_counts.setdefault(sport, [0, 0])
            entry[0] += 1
            entry[1] += won

    sports = [
        SportStat(sport=sport, count=count, wins=sport_wins, win_rate=_rate(sport_wins, count))
        for sport, (count, sport_wins) in sorted(sport_counts.items(), key=lambda kv: (-kv[1][0], kv[0]))
    ]
    return TipStats(
        total_tips=total,
        wins=wins,
        win_rate=_rate(wins, total),
        wins_by_risk=wins_by_risk,
        total_by_risk=total_by_risk,
        bets_by_type=bets_by_type,
        sports=sports,
    )


async def collect_tip_stats(repository: TipRepository, filters: TipFilters | None = None) -> TipStats:
    tips = [tip async for tip in iter_filtered_tips(repository, filters)]
    stats = compute_tip_stats(tips)
    logger.debug("Stats over %d tips (win rate %.3f)", stats.total_tips, stats.win_rate)
    return stats
