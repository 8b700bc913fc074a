"""
End-to-end refresh cycle: prices, news and market indices, then cache
invalidation.

The service is stateless between runs. Everything it needs is re-read from
the store on each cycle and every write is an independent, idempotent
transaction, so a cycle can be interrupted or re-run at any point.

Error policy:
- a failing item (one quote, one article, one index) is logged, added to
  the error list, and the stage continues;
- a failing stage (the fetch itself raised, or timed out) becomes a single
  "<Stage> failed: ..." entry and the next stage still runs;
- a store outage aborts the rest of the cycle with one "Store unavailable"
  entry;
- cache errors are logged and never reach the result.
"""
import hashlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from nashra.core.redis import NullCache, flush_quietly
from nashra.db.session import store_scope
from nashra.db.upserts import (insert_news_item, link_news_company, upsert_ai_summary,
                               upsert_price_bar)
from nashra.models import Company, MarketIndexSnapshot, ModerationItem
from nashra.schemas.market import IndexLevel, NewsArticle, StockQuote
from nashra.services.content import (KeywordSentimentClassifier, PrefixTranslator,
                                     SentimentClassifier, Summarizer, Translator,
                                     TruncatingSummarizer)
from nashra.services.exceptions import RefreshCancelledError, StoreUnavailableError
from nashra.services.providers.base import (FetchBatch, IndexSource, NewsSource,
                                            ProviderTimeoutError, StockSource)
from nashra.utils.timeutils import utcnow, utctoday

logger = logging.getLogger(__name__)

DEFAULT_RELEVANCE = 0.8
AUTO_APPROVE_CONFIDENCE = 0.8
MODERATION_RISK_LEVEL = "medium"
MODERATION_REASON = "Low AI confidence score"

STAGES = ("stocks", "news", "indices")


@dataclass
class RefreshResult:
    stocks_updated: int = 0
    news_added: int = 0
    indices_updated: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "stocksUpdated": self.stocks_updated,
            "newsAdded": self.news_added,
            "indicesUpdated": self.indices_updated,
            "errors": list(self.errors),
        }


def compute_index_change(value: float, previous: Optional[float]) -> Tuple[float, float]:
    """(change, change_percent) against the previous snapshot; the first snapshot has no change."""
    if previous is None:
        previous = value
    change = value - previous
    change_percent = change / previous * 100 if previous else 0.0
    return change, change_percent


def article_fingerprint(article: NewsArticle) -> str:
    key = f"{article.source_name}|{article.url or ''}|{article.title.strip().lower()}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class DataRefreshService:
    def __init__(
        self,
        session_factory: sessionmaker,
        stock_source: StockSource,
        news_source: NewsSource,
        index_source: IndexSource,
        classifier: Optional[SentimentClassifier] = None,
        summarizer: Optional[Summarizer] = None,
        translator: Optional[Translator] = None,
        cache=None,
        fetch_timeout: float = 30.0,
        fetch_concurrency: int = 3,
        today: Callable = utctoday,
    ):
        self.session_factory = session_factory
        self.stock_source = stock_source
        self.news_source = news_source
        self.index_source = index_source
        self.classifier = classifier or KeywordSentimentClassifier()
        self.summarizer = summarizer or TruncatingSummarizer()
        self.translator = translator or PrefixTranslator()
        self.cache = cache if cache is not None else NullCache()
        self.fetch_timeout = fetch_timeout
        self._today = today
        self._fetch_pool = ThreadPoolExecutor(max_workers=max(1, fetch_concurrency),
                                              thread_name_prefix="fetch")

    def close(self) -> None:
        self._fetch_pool.shutdown(wait=False, cancel_futures=True)
        for source in (self.stock_source, self.news_source, self.index_source):
            source.close()

    def _store(self):
        return store_scope(self.session_factory)

    def _fetch(self, source_name: str, fn, *args) -> FetchBatch:
        """Call a source with its own deadline so one slow provider cannot stall the cycle."""
        future = self._fetch_pool.submit(fn, *args)
        try:
            return future.result(timeout=self.fetch_timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise ProviderTimeoutError(source_name, f"no response within {self.fetch_timeout:g}s")

    @staticmethod
    def _check_cancel(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RefreshCancelledError()

    @staticmethod
    def _record_failures(result: RefreshResult, batch: FetchBatch) -> None:
        for failure in batch.failures:
            logger.warning("Source failure: %s", failure.describe())
            result.errors.append(failure.describe())

    def refresh_all_data(
        self,
        cancel_event: Optional[threading.Event] = None,
        result: Optional[RefreshResult] = None,
        stages: Optional[Iterable[str]] = None,
    ) -> RefreshResult:
        """Run one refresh cycle.

        ``result`` may be supplied by a caller that wants to observe progress
        (the runner reports partial counts on timeout); it is filled in place.
        ``stages`` restricts the cycle to a subset of ``STAGES``, in their
        usual order; the cache is flushed either way.
        """
        result = result if result is not None else RefreshResult()
        selected = set(STAGES if stages is None else stages)
        unknown = selected - set(STAGES)
        if unknown:
            raise ValueError(f"Unknown refresh stages: {sorted(unknown)}")
        plan = (
            ("stocks", "Stock update", self.update_stock_prices),
            ("news", "News update", self.update_news),
            ("indices", "Index update", self.update_market_indices),
        )
        try:
            for name, label, stage in plan:
                if name not in selected:
                    continue
                self._check_cancel(cancel_event)
                try:
                    stage(result, cancel_event)
                except (StoreUnavailableError, RefreshCancelledError):
                    raise
                except Exception as e:
                    logger.exception("%s failed", label)
                    result.errors.append(f"{label} failed: {e}")
        except RefreshCancelledError:
            logger.warning("Refresh cancelled")
            result.errors.append("Refresh cancelled")
        except StoreUnavailableError as e:
            logger.error("Store unavailable, aborting refresh: %s", e)
            result.errors.append(f"Store unavailable: {e}")
        finally:
            flush_quietly(self.cache)

        logger.info("Data refresh completed: %s", result.as_dict())
        return result

    # Stage A

    def update_stock_prices(self, result: RefreshResult, cancel_event=None) -> None:
        with self._store() as session:
            tickers = list(session.scalars(
                select(Company.ticker).where(Company.is_active.is_(True)).order_by(Company.ticker)
            ))
        if not tickers:
            logger.info("No active companies, skipping price update")
            return

        logger.info("Fetching stock data for %d companies...", len(tickers))
        batch = self._fetch(self.stock_source.name, self.stock_source.fetch_stock_quotes, tickers)
        self._record_failures(result, batch)

        for quote in batch.items:
            self._check_cancel(cancel_event)
            try:
                with self._store() as session:
                    result.stocks_updated += self._save_quote(session, quote)
            except StoreUnavailableError:
                raise
            except Exception as e:
                logger.error("Failed to update %s: %s", quote.ticker, e)
                result.errors.append(f"Failed to update {quote.ticker}: {e}")
        logger.info("Updated %d stocks", result.stocks_updated)

    def _save_quote(self, session: Session, quote: StockQuote) -> int:
        company_id = session.scalar(
            select(Company.id).where(Company.ticker == quote.ticker, Company.is_active.is_(True))
        )
        if company_id is None:
            # deactivated or deleted since the ticker list was read
            return 0
        open_, high, low, close = quote.bar()
        return upsert_price_bar(
            session,
            company_id=company_id,
            trade_date=quote.trade_date or self._today(),
            open_price=open_,
            high_price=high,
            low_price=low,
            close_price=close,
            volume=quote.volume,
        )

    # Stage B

    def update_news(self, result: RefreshResult, cancel_event=None) -> None:
        logger.info("Fetching news...")
        batch = self._fetch(self.news_source.name, self.news_source.fetch_news_articles)
        self._record_failures(result, batch)

        for article in batch.items:
            self._check_cancel(cancel_event)
            try:
                if self._save_article(article):
                    result.news_added += 1
            except StoreUnavailableError:
                raise
            except Exception as e:
                logger.error("Failed to save news %r: %s", article.title, e)
                result.errors.append(f"Failed to save news '{article.title}': {e}")
        logger.info("Added %d news articles", result.news_added)

    def _translate(self, text: str) -> Optional[str]:
        try:
            return self.translator.translate_to_arabic(text)
        except Exception as e:
            logger.warning("Translation failed, storing summary without Arabic text: %s", e)
            return None

    def _save_article(self, article: NewsArticle) -> bool:
        body = article.content or article.summary or article.title
        sentiment = self.classifier.classify(body)
        summary = self.summarizer.summarize(body)
        summary_ar = self._translate(summary.text)

        with self._store() as session:
            news_id = insert_news_item(
                session,
                fingerprint=article_fingerprint(article),
                title_en=article.title,
                summary_en=article.summary,
                content_en=article.content,
                source_name=article.source_name,
                original_url=article.url,
                published_at=article.published_at or utcnow(),
                sentiment=sentiment.sentiment,
                sentiment_score=sentiment.score,
                confidence_score=sentiment.confidence,
                is_breaking=False,
            )
            if news_id is None:
                logger.debug("Skipping already ingested article %r", article.title)
                return False

            for ticker in article.tickers:
                company_id = session.scalar(select(Company.id).where(Company.ticker == ticker))
                if company_id is not None:
                    link_news_company(session, news_id, company_id, DEFAULT_RELEVANCE)

            approved = summary.confidence > AUTO_APPROVE_CONFIDENCE
            upsert_ai_summary(
                session,
                content_type="news",
                content_id=news_id,
                summary_en=summary.text,
                summary_ar=summary_ar,
                confidence_score=summary.confidence,
                model_name=summary.model_name,
                is_approved=approved,
            )
            if not approved:
                session.add(ModerationItem(
                    content_type="news",
                    content_id=news_id,
                    risk_level=MODERATION_RISK_LEVEL,
                    flagged_reason=MODERATION_REASON,
                ))
        return True

    # Stage C

    def update_market_indices(self, result: RefreshResult, cancel_event=None) -> None:
        logger.info("Updating market indices...")
        batch = self._fetch(self.index_source.name, self.index_source.fetch_index_levels)
        self._record_failures(result, batch)

        for level in batch.items:
            self._check_cancel(cancel_event)
            try:
                with self._store() as session:
                    self._append_snapshot(session, level)
                result.indices_updated += 1
            except StoreUnavailableError:
                raise
            except Exception as e:
                logger.error("Failed to update index %s: %s", level.name, e)
                result.errors.append(f"Failed to update index {level.name}: {e}")
        logger.info("Market indices updated")

    def _append_snapshot(self, session: Session, level: IndexLevel) -> MarketIndexSnapshot:
        previous = session.scalar(
            select(MarketIndexSnapshot.value)
            .where(MarketIndexSnapshot.name == level.name)
            .order_by(MarketIndexSnapshot.timestamp.desc(), MarketIndexSnapshot.id.desc())
            .limit(1)
        )
        change, change_percent = compute_index_change(level.value, previous)
        snapshot = MarketIndexSnapshot(
            name=level.name,
            market=level.market,
            value=level.value,
            change_value=change,
            change_percent=change_percent,
            volume=level.volume,
            timestamp=utcnow(),
        )
        session.add(snapshot)
        return snapshot
