"""Deterministic stand-ins for the upstream sources.

Values are seeded from the ticker (or index name) and the trade date, so two
refresh cycles on the same day see the same numbers. Used by default until
real provider keys are configured, and by the tests.
"""
import hashlib
import random
from datetime import date
from typing import Callable, Optional, Sequence

from nashra.schemas.market import IndexLevel, NewsArticle, StockQuote
from nashra.services.providers.base import (FetchBatch, IndexSource, NewsSource,
                                            StockSource)
from nashra.utils.timeutils import utctoday


def _rng(*parts) -> random.Random:
    digest = hashlib.sha256("|".join(str(p) for p in parts).encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))


class SimulatedStockSource(StockSource):
    name = "simulated-stocks"

    def __init__(self, today: Optional[Callable[[], date]] = None):
        self._today = today or utctoday

    def fetch_stock_quotes(self, tickers: Sequence[str]) -> FetchBatch[StockQuote]:
        trade_date = self._today()
        batch: FetchBatch[StockQuote] = FetchBatch()
        for ticker in tickers:
            rng = _rng(ticker, trade_date)
            base_price = 100 + rng.random() * 400
            change = (rng.random() - 0.5) * 10
            price = round(base_price + change, 3)
            batch.items.append(StockQuote(
                ticker=ticker,
                price=price,
                open=round(base_price, 3),
                high=round(max(base_price, price) + rng.random(), 3),
                low=round(min(base_price, price) - rng.random(), 3),
                volume=int(1_000_000 + rng.random() * 10_000_000),
                change=round(change, 3),
                change_percent=round(change / base_price * 100, 4),
                trade_date=trade_date,
            ))
        return batch


NEWS_TEMPLATES = [
    {
        "title": "Saudi Market Shows Strong Performance in Q4",
        "summary": "The Saudi stock market demonstrated robust growth in the final quarter.",
        "content": (
            "The Saudi stock market demonstrated robust growth in the final quarter, with major "
            "indices posting significant gains. Strong performance in the energy and banking "
            "sectors drove the overall market upward."
        ),
        "url": "https://example.com/news/saudi-market-q4",
        "tickers": ["2222.SR", "1120.SR"],
    },
    {
        "title": "Major Bank Reports Quarterly Earnings Beat",
        "summary": "Leading financial institution exceeds analyst expectations.",
        "content": (
            "A leading Saudi bank reported quarterly earnings that exceeded analyst expectations, "
            "driven by strong loan growth and improved net interest margins. Digital banking "
            "initiatives contributed to reduced operational costs."
        ),
        "url": "https://example.com/news/bank-earnings-beat",
        "tickers": ["1120.SR"],
    },
]


class SimulatedNewsSource(NewsSource):
    name = "simulated-news"

    def __init__(self, templates=None):
        self.templates = templates if templates is not None else NEWS_TEMPLATES

    def fetch_news_articles(self) -> FetchBatch[NewsArticle]:
        return FetchBatch(items=[NewsArticle(**t) for t in self.templates])


# name -> (market, base level, swing, volume)
TRACKED_INDICES = {
    "TASI": ("saudi", 12450.75, 200.0, 8_500_000_000),
    "NOMU": ("saudi", 25680.20, 100.0, 450_000_000),
    "MT30": ("saudi", 1850.40, 30.0, 3_200_000_000),
}


class SimulatedIndexSource(IndexSource):
    name = "simulated-indices"

    def __init__(self, today: Optional[Callable[[], date]] = None, indices=None):
        self._today = today or utctoday
        self.indices = indices if indices is not None else TRACKED_INDICES

    def fetch_index_levels(self) -> FetchBatch[IndexLevel]:
        trade_date = self._today()
        batch: FetchBatch[IndexLevel] = FetchBatch()
        for name, (market, base, swing, volume) in self.indices.items():
            rng = _rng(name, trade_date)
            value = round(base + (rng.random() * swing - swing / 2), 2)
            batch.items.append(IndexLevel(name=name, market=market, value=value, volume=volume))
        return batch
