import logging
from typing import Optional, Sequence

import requests

from nashra.schemas.market import StockQuote
from nashra.services.providers.base import (FetchBatch, NoDataError, ProviderAuthError,
                                            ProviderError, ProviderRateLimitError,
                                            ProviderTimeoutError, StockSource, fetch_each)

logger = logging.getLogger(__name__)

BASE_URL = "https://www.alphavantage.co/query"


class AlphaVantageStockSource(StockSource):
    """GLOBAL_QUOTE per ticker. The free tier allows 5 calls/min, so keep concurrency low."""

    name = "alphavantage"

    def __init__(self, api_key: Optional[str], max_workers: int = 3, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.max_workers = max_workers
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_stock_quotes(self, tickers: Sequence[str]) -> FetchBatch[StockQuote]:
        if not self.api_key:
            raise ProviderAuthError(self.name, "ALPHA_VANTAGE_KEY is not configured")
        return fetch_each(self.name, tickers, self._fetch_one, max_workers=self.max_workers)

    def _fetch_one(self, ticker: str) -> StockQuote:
        params = {"function": "GLOBAL_QUOTE", "symbol": ticker, "apikey": self.api_key}
        try:
            resp = self.session.get(BASE_URL, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise ProviderTimeoutError(self.name, f"request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ProviderError(self.name, str(e)) from e

        if resp.status_code in (401, 403):
            raise ProviderAuthError(self.name, f"HTTP {resp.status_code}")
        if resp.status_code == 429:
            raise ProviderRateLimitError(self.name, "HTTP 429")
        if resp.status_code != 200:
            raise ProviderError(self.name, f"HTTP {resp.status_code}")

        data = resp.json()
        # Throttling and bad keys come back as 200 with a note instead of data
        if "Note" in data or "Information" in data:
            raise ProviderRateLimitError(self.name, data.get("Note") or data.get("Information"))
        if "Error Message" in data:
            raise ProviderError(self.name, data["Error Message"])

        quote = data.get("Global Quote") or {}
        if not quote.get("05. price"):
            raise NoDataError(self.name, "empty quote")

        return StockQuote(
            ticker=ticker,
            price=float(quote["05. price"]),
            open=float(quote["02. open"]),
            high=float(quote["03. high"]),
            low=float(quote["04. low"]),
            volume=int(quote["06. volume"]),
            change=float(quote["09. change"]),
            change_percent=float(quote["10. change percent"].rstrip("%")),
        )

    def close(self) -> None:
        self.session.close()
