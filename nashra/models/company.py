from sqlalchemy import (Boolean, Column, Date, DateTime, Float, ForeignKey, Integer,
                        String, Text, UniqueConstraint, Index, BigInteger)
from sqlalchemy.orm import relationship

from nashra.db.base_class import Base
from nashra.utils.timeutils import utcnow


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    ticker = Column(String(20), unique=True, index=True, nullable=False)  # e.g. 2222.SR
    name_en = Column(String(255), nullable=False)
    name_ar = Column(String(255))
    market = Column(String(50), index=True, nullable=False)  # saudi, uae, qatar...
    sector = Column(String(100), index=True)
    industry = Column(String(100))
    market_cap = Column(Float)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Rows are removed by the database (ON DELETE CASCADE); the ORM must not
    # try to null out the foreign keys first.
    prices = relationship("PriceBar", back_populates="company",
                          cascade="all, delete-orphan", passive_deletes=True)
    fundamentals = relationship("Fundamental", back_populates="company",
                                cascade="all, delete-orphan", passive_deletes=True)
    events = relationship("CalendarEvent", back_populates="company",
                          cascade="all, delete-orphan", passive_deletes=True)
    news_links = relationship("NewsCompany", back_populates="company",
                              cascade="all, delete-orphan", passive_deletes=True)
    alerts = relationship("UserAlert", back_populates="company",
                          cascade="all, delete-orphan", passive_deletes=True)


class PriceBar(Base):
    __tablename__ = "prices_ohlc"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    trade_date = Column(Date, nullable=False)
    open_price = Column(Float)
    high_price = Column(Float)
    low_price = Column(Float)
    close_price = Column(Float)
    volume = Column(BigInteger)
    created_at = Column(DateTime, default=utcnow)

    company = relationship("Company", back_populates="prices")

    __table_args__ = (
        UniqueConstraint("company_id", "trade_date", name="uq_prices_company_date"),
        Index("idx_prices_company_date", "company_id", "trade_date"),
    )


class Fundamental(Base):
    __tablename__ = "fundamentals"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    period_type = Column(String(20), nullable=False)  # annual, quarterly
    fiscal_year = Column(Integer, nullable=False)
    fiscal_quarter = Column(Integer)
    revenue = Column(Float)
    net_income = Column(Float)
    ebitda = Column(Float)
    total_assets = Column(Float)
    total_liabilities = Column(Float)
    shareholders_equity = Column(Float)
    eps = Column(Float)
    published_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)

    company = relationship("Company", back_populates="fundamentals")

    __table_args__ = (
        UniqueConstraint("company_id", "period_type", "fiscal_year", "fiscal_quarter",
                         name="uq_fundamentals_period"),
    )


class CalendarEvent(Base):
    __tablename__ = "events_calendar"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), index=True)
    event_type = Column(String(50), nullable=False)  # earnings, dividend, agm...
    event_date = Column(Date, nullable=False, index=True)
    title_en = Column(String(255))
    title_ar = Column(String(255))
    description_en = Column(Text)
    amount = Column(Float)
    currency = Column(String(10))
    created_at = Column(DateTime, default=utcnow)

    company = relationship("Company", back_populates="events")
