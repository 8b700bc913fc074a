"""Single-statement upserts used by the refresh pipeline.

Every write here is one ``INSERT ... ON CONFLICT`` so concurrent or repeated
cycles can never race a read-modify-write. PostgreSQL and SQLite are
supported; they differ only in the insert construct and in the spelling of
the two-argument max/min.
"""
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from nashra.models import AISummary, NewsCompany, NewsItem, PriceBar


def _dialect(session: Session) -> str:
    return session.get_bind().dialect.name


def _insert(session: Session):
    name = _dialect(session)
    if name == "postgresql":
        return pg_insert
    if name == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Upserts are not implemented for dialect {name!r}")


def _greatest(session: Session, a, b):
    if _dialect(session) == "postgresql":
        return func.greatest(a, b)
    return func.max(a, b)  # scalar max() in SQLite


def _least(session: Session, a, b):
    if _dialect(session) == "postgresql":
        return func.least(a, b)
    return func.min(a, b)


def upsert_price_bar(
    session: Session,
    company_id: int,
    trade_date: date,
    open_price: float,
    high_price: float,
    low_price: float,
    close_price: float,
    volume: int,
) -> int:
    """Insert the day's bar or merge into it; returns the number of rows written.

    On conflict close and volume are replaced, high and low widen to the
    running extreme, and open keeps the first value seen that day.
    """
    stmt = _insert(session)(PriceBar).values(
        company_id=company_id,
        trade_date=trade_date,
        open_price=open_price,
        high_price=high_price,
        low_price=low_price,
        close_price=close_price,
        volume=volume,
    )
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=["company_id", "trade_date"],
        set_={
            "close_price": excluded.close_price,
            "high_price": _greatest(session, func.coalesce(PriceBar.high_price, excluded.high_price),
                                    excluded.high_price),
            "low_price": _least(session, func.coalesce(PriceBar.low_price, excluded.low_price),
                                excluded.low_price),
            "volume": excluded.volume,
        },
    )
    result = session.execute(stmt)
    return 0 if result.rowcount == 0 else 1


def insert_news_item(session: Session, **values) -> Optional[int]:
    """Insert an article unless its fingerprint exists. Returns the new id, or None for a duplicate."""
    stmt = (
        _insert(session)(NewsItem)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["fingerprint"])
        .returning(NewsItem.id)
    )
    return session.execute(stmt).scalar_one_or_none()


def link_news_company(session: Session, news_id: int, company_id: int, relevance_score: float) -> None:
    stmt = (
        _insert(session)(NewsCompany)
        .values(news_id=news_id, company_id=company_id, relevance_score=relevance_score)
        .on_conflict_do_nothing(index_elements=["news_id", "company_id"])
    )
    session.execute(stmt)


def upsert_ai_summary(
    session: Session,
    content_type: str,
    content_id: int,
    summary_en: str,
    summary_ar: Optional[str],
    confidence_score: float,
    model_name: str,
    is_approved: bool,
) -> None:
    stmt = _insert(session)(AISummary).values(
        content_type=content_type,
        content_id=content_id,
        summary_en=summary_en,
        summary_ar=summary_ar,
        confidence_score=confidence_score,
        model_name=model_name,
        is_approved=is_approved,
    )
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=["content_type", "content_id"],
        set_={
            "summary_en": excluded.summary_en,
            "summary_ar": excluded.summary_ar,
            "confidence_score": excluded.confidence_score,
            "model_name": excluded.model_name,
        },
    )
    session.execute(stmt)
