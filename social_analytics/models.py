"""SQLAlchemy ORM models for imported analytics rows and upload metadata."""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase

UPLOAD_KINDS = ("overview", "content")


def utcnow() -> datetime:
    """Naive UTC timestamp with microsecond precision.

    Row and upload timestamps are compared against each other to scope
    upload windows, so they must all come from the same clock.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class OverviewRow(Base):
    """One day of account-level metrics from an overview export."""

    __tablename__ = "account_overview"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    owner_id: int = Column(Integer, nullable=False, index=True)
    date: datetime = Column(DateTime, nullable=False)
    impressions: int | None = Column(Integer, nullable=True)
    likes: int | None = Column(Integer, nullable=True)
    interactions: int | None = Column(Integer, nullable=True)
    saves: int | None = Column(Integer, nullable=True)
    shares: int | None = Column(Integer, nullable=True)
    new_followers: int | None = Column(Integer, nullable=True)
    unfollows: int | None = Column(Integer, nullable=True)
    replies: int | None = Column(Integer, nullable=True)
    reposts: int | None = Column(Integer, nullable=True)
    profile_visits: int | None = Column(Integer, nullable=True)
    create_post: int | None = Column(Integer, nullable=True)
    video_plays: int | None = Column(Integer, nullable=True)
    media_views: int | None = Column(Integer, nullable=True)
    created_at: datetime = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<OverviewRow id={self.id} owner={self.owner_id} date={self.date}>"


class ContentRow(Base):
    """One post and its engagement metrics from a content export.

    ``post_id`` is the exporter's identifier. It is not unique: rows whose
    identifier was missing get a time-based fallback that may collide.
    """

    __tablename__ = "posts"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    owner_id: int = Column(Integer, nullable=False, index=True)
    post_id: int = Column(BigInteger, nullable=False, index=True)
    published_at: datetime | None = Column(DateTime, nullable=True)
    text: str | None = Column(Text, nullable=True)
    url: str | None = Column(String, nullable=True)
    impressions: int | None = Column(Integer, nullable=True)
    likes: int | None = Column(Integer, nullable=True)
    interactions: int | None = Column(Integer, nullable=True)
    saves: int | None = Column(Integer, nullable=True)
    shares: int | None = Column(Integer, nullable=True)
    new_followers: int | None = Column(Integer, nullable=True)
    replies: int | None = Column(Integer, nullable=True)
    reposts: int | None = Column(Integer, nullable=True)
    profile_visits: int | None = Column(Integer, nullable=True)
    detail_expands: int | None = Column(Integer, nullable=True)
    url_clicks: int | None = Column(Integer, nullable=True)
    hashtag_clicks: int | None = Column(Integer, nullable=True)
    permalink_clicks: int | None = Column(Integer, nullable=True)
    created_at: datetime = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ContentRow id={self.id} owner={self.owner_id} post_id={self.post_id}>"


class Upload(Base):
    """One ingested file.

    The rows an upload contributed are the owner's rows created in
    ``[uploaded_at, next upload's uploaded_at)``.
    """

    __tablename__ = "csv_uploads"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    owner_id: int = Column(Integer, nullable=False, index=True)
    file_name: str = Column(String, nullable=False)
    kind: str = Column(String(20), nullable=False)
    rows_imported: int = Column(Integer, nullable=False, default=0)
    uploaded_at: datetime = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Upload id={self.id} file={self.file_name} kind={self.kind} rows={self.rows_imported}>"


class AnalysisRecord(Base):
    __tablename__ = "ai_analyses"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    owner_id: int = Column(Integer, nullable=False, index=True)
    post_id: int | None = Column(BigInteger, nullable=True, index=True)
    model_name: str = Column(String, nullable=False)
    analysis_type: str = Column(String(50), nullable=False, default="post")
    recommendations: str | None = Column(Text, nullable=True)
    virality_score: float | None = Column(Float, nullable=True)
    created_at: datetime = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AnalysisRecord id={self.id} owner={self.owner_id} model={self.model_name}>"
