"""Normalized values produced by data sources and consumed by the refresh pipeline."""
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Sentiment = Literal["positive", "neutral", "negative"]


class StockQuote(BaseModel):
    ticker: str
    price: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: int = 0
    change: float = 0.0
    change_percent: float = 0.0
    trade_date: Optional[date] = None

    def bar(self):
        """(open, high, low, close) with missing legs filled from the last price."""
        open_ = self.open if self.open is not None else self.price
        high = self.high if self.high is not None else max(open_, self.price)
        low = self.low if self.low is not None else min(open_, self.price)
        return open_, high, low, self.price


class NewsArticle(BaseModel):
    title: str
    summary: str = ""
    content: str = ""
    url: Optional[str] = None
    source_name: str = "Auto-Scraped"
    published_at: Optional[datetime] = None
    tickers: List[str] = Field(default_factory=list)


class IndexLevel(BaseModel):
    name: str
    market: str
    value: float
    volume: Optional[int] = None


class SentimentResult(BaseModel):
    sentiment: Sentiment
    score: float = Field(ge=-1.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)


class Summary(BaseModel):
    text: str
    confidence: float
    model_name: str
