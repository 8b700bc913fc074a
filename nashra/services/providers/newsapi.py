import logging
import re
from datetime import datetime
from typing import List, Optional

import requests

from nashra.schemas.market import NewsArticle
from nashra.services.providers.base import (FetchBatch, NewsSource, ProviderAuthError,
                                            ProviderError, ProviderRateLimitError,
                                            ProviderTimeoutError)

logger = logging.getLogger(__name__)

BASE_URL = "https://newsapi.org/v2/everything"
DEFAULT_QUERY = "Saudi Arabia OR Dubai OR Qatar OR Kuwait stock market"

# Tadawul symbols: four digits plus the .SR suffix
TICKER_PATTERN = re.compile(r"\b(\d{4}\.SR)\b")


def extract_tickers(*texts: Optional[str]) -> List[str]:
    found = []
    for text in texts:
        for match in TICKER_PATTERN.findall(text or ""):
            if match not in found:
                found.append(match)
    return found


def _parse_published(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


class NewsApiSource(NewsSource):
    name = "newsapi"

    def __init__(self, api_key: Optional[str], query: str = DEFAULT_QUERY, page_size: int = 50,
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.query = query
        self.page_size = page_size
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_news_articles(self) -> FetchBatch[NewsArticle]:
        if not self.api_key:
            raise ProviderAuthError(self.name, "NEWS_API_KEY is not configured")
        params = {
            "q": self.query,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": self.page_size,
        }
        try:
            resp = self.session.get(BASE_URL, params=params, timeout=self.timeout,
                                    headers={"X-Api-Key": self.api_key})
        except requests.Timeout as e:
            raise ProviderTimeoutError(self.name, f"request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ProviderError(self.name, str(e)) from e

        if resp.status_code == 401:
            raise ProviderAuthError(self.name, "invalid or missing API key")
        if resp.status_code == 429:
            raise ProviderRateLimitError(self.name, "daily request limit reached")
        if resp.status_code != 200:
            raise ProviderError(self.name, f"HTTP {resp.status_code}")

        data = resp.json()
        if data.get("status") != "ok":
            raise ProviderError(self.name, data.get("message") or "unexpected response")

        batch: FetchBatch[NewsArticle] = FetchBatch()
        for raw in data.get("articles", []):
            title = raw.get("title")
            if not title:
                continue
            summary = raw.get("description") or ""
            content = raw.get("content") or summary
            batch.items.append(NewsArticle(
                title=title,
                summary=summary,
                content=content,
                url=raw.get("url"),
                source_name=(raw.get("source") or {}).get("name") or self.name,
                published_at=_parse_published(raw.get("publishedAt")),
                tickers=extract_tickers(title, summary, content),
            ))
        logger.info("NewsAPI returned %d articles", len(batch.items))
        return batch

    def close(self) -> None:
        self.session.close()
