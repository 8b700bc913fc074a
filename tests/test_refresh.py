import threading
from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from nashra.models import (AISummary, Company, MarketIndexSnapshot, ModerationItem, NewsCompany,
                           NewsItem, PriceBar, UserAlert)
from nashra.schemas.market import IndexLevel, NewsArticle, StockQuote, Summary
from nashra.services.providers import (FetchBatch, IndexSource, NewsSource,
                                       ProviderRateLimitError, SourceFailure, StockSource)
from nashra.services.refresh_service import compute_index_change

TRADE_DATE = date(2025, 6, 1)


class StaticStocks(StockSource):
    name = "static-stocks"

    def __init__(self, quotes, failures=None):
        self.quotes = quotes
        self.failures = failures or []
        self.requested = []

    def fetch_stock_quotes(self, tickers):
        self.requested.append(list(tickers))
        return FetchBatch(items=list(self.quotes), failures=list(self.failures))


class StaticNews(NewsSource):
    name = "static-news"

    def __init__(self, articles):
        self.articles = articles

    def fetch_news_articles(self):
        return FetchBatch(items=list(self.articles))


class StaticIndices(IndexSource):
    name = "static-indices"

    def __init__(self, *levels):
        self.levels = list(levels)

    def fetch_index_levels(self):
        return FetchBatch(items=[self.levels.pop(0)] if self.levels else [])


class BrokenNews(NewsSource):
    name = "broken-news"

    def fetch_news_articles(self):
        raise ConnectionError("news feed unreachable")


def count(session_factory, model):
    with session_factory() as s:
        return s.scalar(select(func.count()).select_from(model))


def bar_for(session_factory, ticker):
    with session_factory() as s:
        return s.scalar(
            select(PriceBar).join(Company).where(Company.ticker == ticker, PriceBar.trade_date == TRADE_DATE)
        )


def quote(ticker, price, high=None, low=None, volume=1000):
    return StockQuote(ticker=ticker, price=price, open=price, high=high or price, low=low or price,
                      volume=volume, trade_date=TRADE_DATE)


def test_refresh_cycle_populates_all_stages(companies, make_service, session_factory, cache):
    result = make_service().refresh_all_data()

    assert result.success is True
    assert result.errors == []
    assert result.stocks_updated == 2
    assert result.news_added == 2
    assert result.indices_updated == 3
    assert count(session_factory, PriceBar) == 2
    assert count(session_factory, NewsItem) == 2
    # 2222.SR + 1120.SR on the first article, 1120.SR on the second
    assert count(session_factory, NewsCompany) == 3
    assert count(session_factory, MarketIndexSnapshot) == 3
    cache.flush.assert_called_once()


def test_refresh_twice_is_idempotent(companies, make_service, session_factory):
    service = make_service()
    first = service.refresh_all_data()
    second = service.refresh_all_data()

    assert first.stocks_updated == 2
    assert second.stocks_updated == 2
    assert count(session_factory, PriceBar) == 2
    assert count(session_factory, NewsCompany) == 3
    assert count(session_factory, NewsItem) == 2
    assert first.news_added == 2
    assert second.news_added == 0


def test_price_upsert_widens_high_and_low(companies, make_service, session_factory):
    make_service(stock_source=StaticStocks([quote("2222.SR", 95, high=100, low=90, volume=10)])).refresh_all_data()
    make_service(stock_source=StaticStocks([quote("2222.SR", 88, high=95, low=85, volume=20)])).refresh_all_data()

    bar = bar_for(session_factory, "2222.SR")
    assert bar.high_price == 100
    assert bar.low_price == 85
    assert bar.close_price == 88
    assert bar.volume == 20
    assert bar.open_price == 95


def test_unknown_ticker_is_skipped(companies, make_service, session_factory):
    stocks = StaticStocks([quote("2222.SR", 30), quote("9999.SR", 12)])
    result = make_service(stock_source=stocks).refresh_all_data()

    assert result.stocks_updated == 1
    assert result.errors == []
    assert count(session_factory, PriceBar) == 1


def test_only_active_companies_are_requested(companies, db, make_service):
    companies[1].is_active = False
    db.commit()
    stocks = StaticStocks([quote("2222.SR", 30), quote("1120.SR", 80)])

    result = make_service(stock_source=stocks).refresh_all_data()

    assert stocks.requested == [["2222.SR"]]
    # a quote for the deactivated company is dropped at resolution time
    assert result.stocks_updated == 1


def test_news_failure_does_not_block_prices(companies, make_service):
    result = make_service(news_source=BrokenNews()).refresh_all_data()

    assert result.success is False
    assert len(result.errors) == 1
    assert result.errors[0].startswith("News update failed")
    assert "news feed unreachable" in result.errors[0]
    assert result.stocks_updated > 0
    assert result.indices_updated == 3


def test_source_failures_are_reported(companies, make_service):
    failure = SourceFailure.from_exception(
        "yfinance", ProviderRateLimitError("yfinance", "Too Many Requests"), key="1120.SR")
    stocks = StaticStocks([quote("2222.SR", 30)], failures=[failure])

    result = make_service(stock_source=stocks).refresh_all_data()

    assert result.stocks_updated == 1
    assert result.errors == ["yfinance: rate_limited: Too Many Requests (1120.SR)"]


def test_slow_source_times_out(companies, make_service):
    release = threading.Event()

    class HangingNews(NewsSource):
        name = "hanging-news"

        def fetch_news_articles(self):
            release.wait(5)
            return FetchBatch()

    try:
        result = make_service(news_source=HangingNews(), fetch_timeout=0.2).refresh_all_data()
    finally:
        release.set()

    assert result.stocks_updated == 2
    assert len(result.errors) == 1
    assert result.errors[0] == "News update failed: no response within 0.2s"


def test_index_change_is_relative_to_previous_snapshot(make_service, session_factory):
    indices = StaticIndices(IndexLevel(name="TASI", market="saudi", value=100.0),
                            IndexLevel(name="TASI", market="saudi", value=110.0))
    service = make_service(index_source=indices)
    service.refresh_all_data()
    service.refresh_all_data()

    with session_factory() as s:
        rows = s.scalars(select(MarketIndexSnapshot).order_by(MarketIndexSnapshot.id)).all()
    assert [(r.value, r.change_value, r.change_percent) for r in rows] == [
        (100.0, 0.0, 0.0),
        (110.0, 10.0, 10.0),
    ]


def test_compute_index_change():
    assert compute_index_change(100.0, None) == (0.0, 0.0)
    assert compute_index_change(110.0, 100.0) == (10.0, 10.0)
    assert compute_index_change(5.0, 0.0) == (5.0, 0.0)


def test_sentiment_and_links_are_stored(companies, make_service, session_factory):
    article = NewsArticle(
        title="Aramco shares slide",
        content="Shares down on weak demand as the loss widens amid a crisis",
        url="https://example.com/a",
        tickers=["2222.SR", "0000.SR"],
    )
    result = make_service(news_source=StaticNews([article])).refresh_all_data()

    assert result.news_added == 1
    with session_factory() as s:
        item = s.scalar(select(NewsItem))
        links = s.scalars(select(NewsCompany)).all()
    assert item.sentiment == "negative"
    assert item.sentiment_score < -0.2
    assert item.confidence_score == 0.75
    assert [(l.company_id, l.relevance_score) for l in links] == [(companies[0].id, 0.8)]


def test_high_confidence_summary_is_auto_approved(companies, make_service, session_factory):
    make_service().refresh_all_data()

    assert count(session_factory, ModerationItem) == 0
    with session_factory() as s:
        summaries = s.scalars(select(AISummary)).all()
    assert len(summaries) == 2
    assert all(sm.is_approved for sm in summaries)
    assert all(sm.summary_ar.startswith("[AR] ") for sm in summaries)


def test_low_confidence_summary_goes_to_moderation(companies, make_service, session_factory):
    summarizer = MagicMock()
    summarizer.summarize.return_value = Summary(text="short", confidence=0.6, model_name="test")

    make_service(summarizer=summarizer).refresh_all_data()

    with session_factory() as s:
        queued = s.scalars(select(ModerationItem)).all()
        summaries = s.scalars(select(AISummary)).all()
    assert len(queued) == 2
    assert {q.risk_level for q in queued} == {"medium"}
    assert {q.status for q in queued} == {"pending"}
    assert not any(sm.is_approved for sm in summaries)


def test_cache_failure_does_not_fail_cycle(companies, make_service, cache):
    cache.flush.side_effect = ConnectionError("redis down")

    result = make_service().refresh_all_data()

    assert result.success is True
    cache.flush.assert_called_once()


def test_store_outage_aborts_with_single_error(make_service, cache):
    def broken_factory():
        session = MagicMock()
        session.scalars.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
        return session

    service = make_service()
    service.session_factory = broken_factory

    result = service.refresh_all_data()

    assert result.success is False
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Store unavailable")
    cache.flush.assert_called_once()


def test_selected_stages_only(companies, make_service, session_factory):
    result = make_service().refresh_all_data(stages=("news",))

    assert result.success is True
    assert result.stocks_updated == 0
    assert result.indices_updated == 0
    assert result.news_added == 2
    assert count(session_factory, PriceBar) == 0
    assert count(session_factory, MarketIndexSnapshot) == 0


def test_unknown_stage_is_rejected(make_service):
    with pytest.raises(ValueError):
        make_service().refresh_all_data(stages=("stocks", "dividends"))


def test_fetch_pool_size_is_configurable(make_service):
    assert make_service(fetch_concurrency=5)._fetch_pool._max_workers == 5
    assert make_service()._fetch_pool._max_workers == 3


def test_cancelled_cycle_stops_early(companies, make_service, session_factory):
    cancel = threading.Event()
    cancel.set()

    result = make_service().refresh_all_data(cancel_event=cancel)

    assert result.errors == ["Refresh cancelled"]
    assert count(session_factory, PriceBar) == 0


def test_company_delete_cascades(companies, db, make_service, session_factory, user):
    make_service().refresh_all_data()
    with session_factory() as s:
        s.add(UserAlert(user_id=user.id, company_id=companies[0].id, condition_operator="gt",
                        condition_value=1))
        s.commit()

    with session_factory() as s:
        s.delete(s.get(Company, companies[0].id))
        s.commit()

    with session_factory() as s:
        assert s.scalar(select(func.count()).select_from(PriceBar)
                        .where(PriceBar.company_id == companies[0].id)) == 0
        assert s.scalar(select(func.count()).select_from(NewsCompany)
                        .where(NewsCompany.company_id == companies[0].id)) == 0
        assert s.scalar(select(func.count()).select_from(UserAlert)) == 0
        # the other company's rows are untouched
        assert s.scalar(select(func.count()).select_from(PriceBar)) == 1
