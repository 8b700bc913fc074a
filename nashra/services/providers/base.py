from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, List, Optional, Sequence, TypeVar

from nashra.schemas.market import IndexLevel, NewsArticle, StockQuote

T = TypeVar("T")
K = TypeVar("K")


class ProviderError(Exception):
    """Upstream source failed. ``kind`` ends up in the refresh error list."""

    kind = "error"

    def __init__(self, source: str, message: str):
        super().__init__(message)
        self.source = source
        self.message = message


class ProviderRateLimitError(ProviderError):
    kind = "rate_limited"


class ProviderAuthError(ProviderError):
    kind = "auth_failed"


class ProviderTimeoutError(ProviderError):
    kind = "timeout"


class NoDataError(ProviderError):
    kind = "no_data"


@dataclass
class SourceFailure:
    source: str
    kind: str
    message: str
    key: Optional[str] = None  # ticker or feed the failure belongs to

    @classmethod
    def from_exception(cls, source: str, exc: Exception, key: Optional[str] = None):
        if isinstance(exc, ProviderError):
            return cls(source=exc.source, kind=exc.kind, message=exc.message, key=key)
        return cls(source=source, kind="error", message=str(exc) or type(exc).__name__, key=key)

    def describe(self) -> str:
        where = f" ({self.key})" if self.key else ""
        return f"{self.source}: {self.kind}: {self.message}{where}"


@dataclass
class FetchBatch(Generic[T]):
    """What a source managed to fetch, plus what it could not."""

    items: List[T] = field(default_factory=list)
    failures: List[SourceFailure] = field(default_factory=list)

    def extend(self, other: "FetchBatch[T]") -> None:
        self.items.extend(other.items)
        self.failures.extend(other.failures)


class StockSource(ABC):
    name = "stocks"

    @abstractmethod
    def fetch_stock_quotes(self, tickers: Sequence[str]) -> FetchBatch[StockQuote]:
        """Latest quote for each ticker it can serve."""

    def close(self) -> None:
        pass


class NewsSource(ABC):
    name = "news"

    @abstractmethod
    def fetch_news_articles(self) -> FetchBatch[NewsArticle]:
        """Recent articles, each tagged with the tickers it mentions."""

    def close(self) -> None:
        pass


class IndexSource(ABC):
    name = "indices"

    @abstractmethod
    def fetch_index_levels(self) -> FetchBatch[IndexLevel]:
        """Current level of every tracked index."""

    def close(self) -> None:
        pass


def fetch_each(
    source: str,
    keys: Iterable[K],
    fetch_one: Callable[[K], Optional[T]],
    max_workers: int = 3,
) -> FetchBatch[T]:
    """Run ``fetch_one`` per key on a bounded pool, isolating per-key failures.

    A ``None`` result is recorded as ``no_data`` for that key.
    """
    keys = list(keys)
    batch: FetchBatch[T] = FetchBatch()
    if not keys:
        return batch
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(keys)))) as pool:
        futures = [(key, pool.submit(fetch_one, key)) for key in keys]
        for key, future in futures:
            try:
                item = future.result()
            except Exception as e:
                batch.failures.append(SourceFailure.from_exception(source, e, key=str(key)))
                continue
            if item is None:
                batch.failures.append(SourceFailure(source, NoDataError.kind, "no data returned", str(key)))
            else:
                batch.items.append(item)
    return batch


class CompositeStockSource(StockSource):
    """Asks each source in turn for the tickers the previous ones could not serve."""

    name = "composite"

    def __init__(self, sources: Sequence[StockSource]):
        self.sources = list(sources)

    def fetch_stock_quotes(self, tickers: Sequence[str]) -> FetchBatch[StockQuote]:
        result: FetchBatch[StockQuote] = FetchBatch()
        remaining = list(tickers)
        for source in self.sources:
            if not remaining:
                break
            try:
                batch = source.fetch_stock_quotes(remaining)
            except Exception as e:
                result.failures.append(SourceFailure.from_exception(source.name, e))
                continue
            result.extend(batch)
            served = {q.ticker for q in batch.items}
            remaining = [t for t in remaining if t not in served]
        return result

    def close(self) -> None:
        for source in self.sources:
            source.close()
