from nashra.core.config import Settings
from nashra.services.providers.alpha_vantage import AlphaVantageStockSource
from nashra.services.providers.base import (CompositeStockSource, FetchBatch, IndexSource,
                                            NewsSource, NoDataError, ProviderAuthError,
                                            ProviderError, ProviderRateLimitError,
                                            ProviderTimeoutError, SourceFailure, StockSource)
from nashra.services.providers.newsapi import NewsApiSource
from nashra.services.providers.simulated import (SimulatedIndexSource, SimulatedNewsSource,
                                                 SimulatedStockSource)
from nashra.services.providers.yahoo import YFinanceIndexSource, YFinanceStockSource


class DataSourceFactory:
    @staticmethod
    def stock_source(settings: Settings) -> StockSource:
        kind = settings.STOCK_SOURCE.lower()
        if kind == "yfinance":
            return YFinanceStockSource()
        if kind == "alphavantage":
            # Yahoo fills in whatever Alpha Vantage cannot serve
            return CompositeStockSource([
                AlphaVantageStockSource(settings.ALPHA_VANTAGE_KEY,
                                        max_workers=settings.FETCH_CONCURRENCY),
                YFinanceStockSource(),
            ])
        if kind != "simulated":
            raise ValueError(f"Unknown STOCK_SOURCE: {settings.STOCK_SOURCE}")
        return SimulatedStockSource()

    @staticmethod
    def news_source(settings: Settings) -> NewsSource:
        kind = settings.NEWS_SOURCE.lower()
        if kind == "newsapi":
            return NewsApiSource(settings.NEWS_API_KEY)
        if kind != "simulated":
            raise ValueError(f"Unknown NEWS_SOURCE: {settings.NEWS_SOURCE}")
        return SimulatedNewsSource()

    @staticmethod
    def index_source(settings: Settings) -> IndexSource:
        kind = settings.INDEX_SOURCE.lower()
        if kind == "yfinance":
            return YFinanceIndexSource()
        if kind != "simulated":
            raise ValueError(f"Unknown INDEX_SOURCE: {settings.INDEX_SOURCE}")
        return SimulatedIndexSource()


__all__ = [
    "AlphaVantageStockSource",
    "CompositeStockSource",
    "DataSourceFactory",
    "FetchBatch",
    "IndexSource",
    "NewsApiSource",
    "NewsSource",
    "NoDataError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "SimulatedIndexSource",
    "SimulatedNewsSource",
    "SimulatedStockSource",
    "SourceFailure",
    "StockSource",
    "YFinanceIndexSource",
    "YFinanceStockSource",
]
