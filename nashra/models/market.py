from sqlalchemy import BigInteger, Column, DateTime, Float, Index, Integer, String

from nashra.db.base_class import Base
from nashra.utils.timeutils import utcnow


class MarketIndexSnapshot(Base):
    """Append-only index time series; change is relative to the previous row of the same name."""

    __tablename__ = "market_indices"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)  # TASI, NOMU, MT30
    market = Column(String(50), nullable=False)
    value = Column(Float, nullable=False)
    change_value = Column(Float, default=0.0)
    change_percent = Column(Float, default=0.0)
    volume = Column(BigInteger)
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_market_indices_name_ts", "name", "timestamp"),
    )
