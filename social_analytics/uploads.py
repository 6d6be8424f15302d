"""Upload windows: scoping previews and deletes to the rows of one upload.

Rows carry no reference to the upload that created them. An upload's rows
are instead the owner's rows whose ``created_at`` falls in

    [upload.uploaded_at, next_upload.uploaded_at)

or ``[upload.uploaded_at, +inf)`` for the owner's most recent upload. This is
exact as long as one owner's ingestions run one after another and their
``uploaded_at`` values strictly increase, which ``ingest.next_upload_timestamp``
maintains.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Query, Session

from social_analytics.models import AnalysisRecord, ContentRow, OverviewRow, Upload

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_LIMIT = 50
MAX_PREVIEW_LIMIT = 200


class UploadNotFoundError(Exception):
    """Raised when an upload does not exist or belongs to another user."""

    reason = "upload_not_found"


@dataclass(frozen=True)
class UploadWindow:
    """Half-open creation-time interval ``[start, end)``; ``end=None`` is unbounded."""

    start: datetime
    end: datetime | None = None

    def contains(self, ts: datetime) -> bool:
        if ts < self.start:
            return False
        return self.end is None or ts < self.end

    def apply(self, query: Query, column: Any) -> Query:
        """Restrict a query to rows whose ``column`` falls in the window."""
        query = query.filter(column >= self.start)
        if self.end is not None:
            query = query.filter(column < self.end)
        return query


@dataclass
class DeleteStats:
    """Row counts removed by a scoped delete or a full reset."""

    overview_rows: int = 0
    content_rows: int = 0
    analyses: int = 0
    uploads: int = 0
    window: UploadWindow | None = None

    @property
    def total_rows(self) -> int:
        return self.overview_rows + self.content_rows + self.analyses

    def as_dict(self) -> dict[str, int]:
        return {
            "overview_rows": self.overview_rows,
            "content_rows": self.content_rows,
            "analyses": self.analyses,
            "uploads": self.uploads,
        }


def get_owned_upload(session: Session, owner_id: int, upload_id: int) -> Upload:
    """Return the upload if it belongs to the owner.

    Raises:
        UploadNotFoundError: For unknown ids and for other users' uploads alike.
    """
    upload = (
        session.query(Upload)
        .filter(Upload.id == upload_id, Upload.owner_id == owner_id)
        .first()
    )
    if upload is None:
        raise UploadNotFoundError(f"Upload {upload_id} not found.")
    return upload


def upload_window(session: Session, upload: Upload) -> UploadWindow:
    """Compute the creation-time window of rows contributed by an upload."""
    next_upload = (
        session.query(Upload)
        .filter(Upload.owner_id == upload.owner_id, Upload.uploaded_at > upload.uploaded_at)
        .order_by(Upload.uploaded_at.asc())
        .first()
    )
    return UploadWindow(
        start=upload.uploaded_at,
        end=next_upload.uploaded_at if next_upload else None,
    )


def list_uploads(session: Session, owner_id: int) -> list[Upload]:
    """Return the owner's uploads, newest first."""
    return (
        session.query(Upload)
        .filter(Upload.owner_id == owner_id)
        .order_by(Upload.uploaded_at.desc(), Upload.id.desc())
        .all()
    )


def _row_model(kind: str):
    return OverviewRow if kind == "overview" else ContentRow


def preview_upload(
    session: Session,
    owner_id: int,
    upload_id: int,
    kind: str = "content",
    limit: int = DEFAULT_PREVIEW_LIMIT,
) -> list[OverviewRow] | list[ContentRow]:
    """Return the rows of one kind inside an upload's window, oldest first.

    Args:
        kind: "overview" for OverviewRows; anything else previews ContentRows.
        limit: Maximum number of rows, clamped to MAX_PREVIEW_LIMIT.

    Raises:
        UploadNotFoundError: If the upload is not the owner's.
    """
    upload = get_owned_upload(session, owner_id, upload_id)
    window = upload_window(session, upload)
    model = _row_model(kind)
    limit = max(1, min(limit, MAX_PREVIEW_LIMIT))

    query = session.query(model).filter(model.owner_id == owner_id)
    query = window.apply(query, model.created_at)
    return query.order_by(model.created_at.asc(), model.id.asc()).limit(limit).all()


def delete_upload(session: Session, owner_id: int, upload_id: int) -> DeleteStats:
    """Delete an upload's window rows, then the upload itself.

    Window lookup and deletes run in one transaction.

    Raises:
        UploadNotFoundError: If the upload is not the owner's.
    """
    try:
        upload = get_owned_upload(session, owner_id, upload_id)
        window = upload_window(session, upload)
        stats = DeleteStats(window=window)

        for model, attr in (
            (AnalysisRecord, "analyses"),
            (ContentRow, "content_rows"),
            (OverviewRow, "overview_rows"),
        ):
            query = session.query(model).filter(model.owner_id == owner_id)
            deleted = window.apply(query, model.created_at).delete(synchronize_session=False)
            setattr(stats, attr, deleted)

        session.delete(upload)
        stats.uploads = 1
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        "Deleted upload %d of owner %s: window [%s, %s), %d rows removed",
        upload_id,
        owner_id,
        window.start,
        window.end or "open",
        stats.total_rows,
    )
    return stats


def reset_user_data(session: Session, owner_id: int) -> DeleteStats:
    """Delete every row and upload of the owner, ignoring windows.

    Safe to call repeatedly; a second call removes nothing.
    """
    stats = DeleteStats()
    try:
        stats.analyses = (
            session.query(AnalysisRecord)
            .filter(AnalysisRecord.owner_id == owner_id)
            .delete(synchronize_session=False)
        )
        stats.content_rows = (
            session.query(ContentRow)
            .filter(ContentRow.owner_id == owner_id)
            .delete(synchronize_session=False)
        )
        stats.overview_rows = (
            session.query(OverviewRow)
            .filter(OverviewRow.owner_id == owner_id)
            .delete(synchronize_session=False)
        )
        stats.uploads = (
            session.query(Upload)
            .filter(Upload.owner_id == owner_id)
            .delete(synchronize_session=False)
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info("Reset data of owner %s: %d rows, %d uploads removed", owner_id, stats.total_rows, stats.uploads)
    return stats


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _metric(value: int | None) -> int:
    return value if value is not None else 0


def upload_to_dict(upload: Upload) -> dict[str, Any]:
    return {
        "upload_id": upload.id,
        "csv_type": upload.kind,
        "file_name": upload.file_name,
        "rows_imported": upload.rows_imported or 0,
        "uploaded_at": upload.uploaded_at.isoformat(),
    }


def overview_row_to_dict(row: OverviewRow) -> dict[str, Any]:
    return {
        "overview_id": row.id,
        "date": row.date.isoformat(),
        "impressions": _metric(row.impressions),
        "likes": _metric(row.likes),
        "interactions": _metric(row.interactions),
        "saves": _metric(row.saves),
        "shares": _metric(row.shares),
        "new_followers": _metric(row.new_followers),
        "unfollows": _metric(row.unfollows),
        "replies": _metric(row.replies),
        "reposts": _metric(row.reposts),
        "profile_visits": _metric(row.profile_visits),
        "create_post": _metric(row.create_post),
        "video_plays": _metric(row.video_plays),
        "media_views": _metric(row.media_views),
        "created_at": row.created_at.isoformat(),
    }


def content_row_to_dict(row: ContentRow) -> dict[str, Any]:
    return {
        # String keeps 64-bit ids exact for JavaScript clients
        "post_id": str(row.post_id),
        "published_at": row.published_at.isoformat() if row.published_at else None,
        "text": row.text,
        "url": row.url,
        "impressions": _metric(row.impressions),
        "likes": _metric(row.likes),
        "interactions": _metric(row.interactions),
        "saves": _metric(row.saves),
        "shares": _metric(row.shares),
        "replies": _metric(row.replies),
        "reposts": _metric(row.reposts),
        "profile_visits": _metric(row.profile_visits),
        "detail_expands": _metric(row.detail_expands),
        "url_clicks": _metric(row.url_clicks),
        "hashtag_clicks": _metric(row.hashtag_clicks),
        "permalink_clicks": _metric(row.permalink_clicks),
        "created_at": row.created_at.isoformat(),
    }
