from sqlalchemy import (Boolean, Column, DateTime, Float, ForeignKey, Integer, String,
                        Text, UniqueConstraint)
from sqlalchemy.orm import relationship

from nashra.db.base_class import Base
from nashra.utils.timeutils import utcnow


class NewsItem(Base):
    __tablename__ = "news_items"

    id = Column(Integer, primary_key=True, index=True)
    # sha256 over source/url/title; re-ingesting the same article is a no-op
    fingerprint = Column(String(64), unique=True, nullable=False, index=True)
    title_en = Column(Text, nullable=False)
    title_ar = Column(Text)
    summary_en = Column(Text)
    summary_ar = Column(Text)
    content_en = Column(Text)
    source_name = Column(String(255))
    original_url = Column(String(500))
    published_at = Column(DateTime, nullable=False, index=True)
    category = Column(String(100))
    sentiment = Column(String(20))  # positive, neutral, negative
    sentiment_score = Column(Float)
    confidence_score = Column(Float)
    is_breaking = Column(Boolean, default=False)
    is_published = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    company_links = relationship("NewsCompany", back_populates="news",
                                 cascade="all, delete-orphan", passive_deletes=True)


class NewsCompany(Base):
    __tablename__ = "news_companies"

    news_id = Column(Integer, ForeignKey("news_items.id", ondelete="CASCADE"), primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"),
                        primary_key=True, index=True)
    relevance_score = Column(Float)

    news = relationship("NewsItem", back_populates="company_links")
    company = relationship("Company", back_populates="news_links")


class AISummary(Base):
    __tablename__ = "ai_summaries"

    id = Column(Integer, primary_key=True, index=True)
    content_type = Column(String(50), nullable=False)
    content_id = Column(Integer, nullable=False)
    summary_en = Column(Text)
    summary_ar = Column(Text)
    confidence_score = Column(Float)
    model_name = Column(String(100))
    is_approved = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("content_type", "content_id", name="uq_ai_summaries_content"),
    )


class ModerationItem(Base):
    __tablename__ = "moderation_queue"

    id = Column(Integer, primary_key=True, index=True)
    content_type = Column(String(50), nullable=False)
    content_id = Column(Integer, nullable=False)
    status = Column(String(50), default="pending", index=True)
    risk_level = Column(String(20))
    flagged_reason = Column(Text)
    reviewed_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
