"""JSON API routes: health check and per-user analytics queries."""

import logging
from datetime import date, datetime, time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session

from social_analytics.auth import get_current_user_id
from social_analytics.database import get_session
from social_analytics.models import AnalysisRecord, ContentRow, OverviewRow, utcnow
from social_analytics.uploads import content_row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------


@router.get("/api/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for Docker and load balancers."""
    return {"status": "ok", "timestamp": utcnow().isoformat()}


# ---------------------------------------------------------------------------
# Account overview metrics
# ---------------------------------------------------------------------------


@router.get("/api/analytics/metrics")
def account_metrics(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    owner_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
) -> list[dict[str, Any]]:
    """Return the caller's daily overview metrics, ascending by date.

    Args:
        start_date: Inclusive lower bound on the row date.
        end_date: Inclusive upper bound on the row date (whole day).
    """
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=422, detail="invalid_date_range")

    query = db.query(OverviewRow).filter(OverviewRow.owner_id == owner_id)
    if start_date:
        query = query.filter(OverviewRow.date >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(OverviewRow.date <= datetime.combine(end_date, time.max))
    rows = query.order_by(OverviewRow.date.asc(), OverviewRow.id.asc()).all()

    return [
        {
            "date": r.date.isoformat(),
            "impressions": r.impressions or 0,
            "likes": r.likes or 0,
            "interactions": r.interactions or 0,
            "saves": r.saves or 0,
            "shares": r.shares or 0,
            "new_followers": r.new_followers or 0,
        }
        for r in rows
    ]


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


@router.get("/api/analytics/posts")
def top_posts(
    limit: int = Query(10, ge=1, le=100),
    owner_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
) -> list[dict[str, Any]]:
    """Return the caller's posts by impressions, with the latest analysis flattened in."""
    posts = (
        db.query(ContentRow)
        .filter(ContentRow.owner_id == owner_id)
        .order_by(desc(ContentRow.impressions), ContentRow.id.asc())
        .limit(limit)
        .all()
    )

    latest: dict[int, AnalysisRecord] = {}
    post_ids = {p.post_id for p in posts}
    if post_ids:
        analyses = (
            db.query(AnalysisRecord)
            .filter(AnalysisRecord.owner_id == owner_id, AnalysisRecord.post_id.in_(post_ids))
            .order_by(AnalysisRecord.created_at.asc(), AnalysisRecord.id.asc())
            .all()
        )
        for analysis in analyses:
            # Later rows overwrite earlier ones
            latest[analysis.post_id] = analysis

    out = []
    for post in posts:
        data = content_row_to_dict(post)
        analysis = latest.get(post.post_id)
        data["recommendations"] = analysis.recommendations if analysis else None
        data["virality_score"] = analysis.virality_score if analysis else None
        out.append(data)
    return out
