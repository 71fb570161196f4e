"""
backend/app/routers/tips.py

Purpose:
    Public read endpoints for daily tips: latest/by-date payloads, the list of
    available dates, filtered history/search with optional stats, and the
    JSON/CSV export. Query-string parameters use the camelCase wire names.

Dependencies:
    - app.services.tip_repository
    - app.services.tip_query_service
    - app.services.tip_export_service
"""

from fastapi import APIRouter, Depends, Query, Response

import app.database as _db
from app.config import settings
from app.models.tips import TipFilters
from app.services.tip_errors import TipValidationError, ValidationIssue
from app.services.tip_export_service import export_filename, export_rows, render_csv
from app.services.tip_query_service import collect_tip_stats, query_tips
from app.services.tip_repository import TipRepository
from app.services.tip_validation_service import build_tip_filters, validate_date_iso

router = APIRouter(prefix="/api/tips", tags=["tips"])

PUBLIC_CACHE_CONTROL = "public, s-maxage=300, stale-while-revalidate=600"


def get_tip_repository() -> TipRepository:
    return TipRepository(
        _db.db,
        _db.client,
        use_transactions=settings.MONGO_TRANSACTIONS_ENABLED,
        timezone=settings.TIPS_TIMEZONE,
    )


def tip_filters(
    sport: str | None = None,
    risk: str | None = None,
    result: str | None = None,
    bet_type: str | None = Query(None, alias="betType"),
    min_legs: str | None = Query(None, alias="minLegs"),
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
) -> TipFilters:
    """Filters from the query string; bad values are a 400 with per-field issues."""
    return build_tip_filters(
        sport=sport,
        risk=risk,
        result=result,
        betType=bet_type,
        minLegs=min_legs,
        dateFrom=date_from,
        dateTo=date_to,
    )


@router.get("/latest")
async def latest_tips(response: Response, repo: TipRepository = Depends(get_tip_repository)):
    """Today's tips, else the nearest upcoming date, else the most recent one."""
    payload = await repo.load_latest()
    response.headers["Cache-Control"] = PUBLIC_CACHE_CONTROL
    return payload.to_wire()


@router.get("/by-date")
async def tips_by_date(
    response: Response,
    date: str | None = None,
    repo: TipRepository = Depends(get_tip_repository),
):
    payload = await repo.load_by_date(validate_date_iso(date))
    response.headers["Cache-Control"] = PUBLIC_CACHE_CONTROL
    return payload.to_wire()


@router.get("/dates")
async def available_dates(response: Response, repo: TipRepository = Depends(get_tip_repository)):
    dates = await repo.list_available_dates()
    response.headers["Cache-Control"] = PUBLIC_CACHE_CONTROL
    return {"dates": dates}


@router.get("/history")
async def tip_history(
    response: Response,
    page: int = 1,
    limit: int = settings.TIPS_DEFAULT_PAGE_SIZE,
    filters: TipFilters = Depends(tip_filters),
    repo: TipRepository = Depends(get_tip_repository),
):
    result = await query_tips(repo, filters, page, limit, max_limit=settings.TIPS_PUBLIC_MAX_LIMIT)
    response.headers["Cache-Control"] = PUBLIC_CACHE_CONTROL
    return result.to_wire()


@router.get("/search")
async def search_tips(
    response: Response,
    page: int = 1,
    limit: int = settings.TIPS_DEFAULT_PAGE_SIZE,
    include_stats: bool = Query(False, alias="includeStats"),
    filters: TipFilters = Depends(tip_filters),
    repo: TipRepository = Depends(get_tip_repository),
):
    """Filtered page; ``includeStats=true`` adds aggregates over the whole filtered set."""
    result = await query_tips(repo, filters, page, limit, max_limit=settings.TIPS_PUBLIC_MAX_LIMIT)
    body = result.to_wire()
    if include_stats:
        body["stats"] = (await collect_tip_stats(repo, filters)).to_wire()
    response.headers["Cache-Control"] = PUBLIC_CACHE_CONTROL
    return body


@router.get("/stats")
async def tip_stats(
    response: Response,
    filters: TipFilters = Depends(tip_filters),
    repo: TipRepository = Depends(get_tip_repository),
):
    stats = await collect_tip_stats(repo, filters)
    response.headers["Cache-Control"] = PUBLIC_CACHE_CONTROL
    return stats.to_wire()


@router.get("/export")
async def export_tips(
    response: Response,
    format: str = "json",
    filters: TipFilters = Depends(tip_filters),
    repo: TipRepository = Depends(get_tip_repository),
):
    """Bulk export of the filtered set as JSON or a CSV download."""
    if format == "csv":
        content = render_csv(await export_rows(repo, filters))
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={
                "Content-Disposition": f'attachment; filename="{export_filename()}"',
                "Cache-Control": "no-cache",
            },
        )
    if format != "json":
        raise TipValidationError([ValidationIssue(("format",), "format must be one of: json, csv")])

    limit = settings.TIPS_INTERNAL_MAX_LIMIT
    result = await query_tips(repo, filters, 1, limit, max_limit=limit)
    response.headers["Cache-Control"] = PUBLIC_CACHE_CONTROL
    return {
        "tips": [t.to_wire() for t in result.tips],
        "total": result.total,
        "hasMore": result.has_more,
    }
