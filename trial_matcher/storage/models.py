"""SQLAlchemy ORM models."""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class PendingTermModel(Base):
    """Patient-entered term awaiting (or past) admin review."""

    __tablename__ = "pending_terms"
    __table_args__ = (
        UniqueConstraint("term", "type", name="uq_pending_terms_term_type"),
        Index("idx_pending_terms_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    term: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    # JSON-encoded list of synonyms, set on approval
    synonyms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class SemanticCacheEntryModel(Base):
    """Persisted semantic match verdict, keyed like the in-memory cache."""

    __tablename__ = "semantic_match_cache"

    cache_key: Mapped[str] = mapped_column(String(768), primary_key=True)
    match: Mapped[bool] = mapped_column(Boolean, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
