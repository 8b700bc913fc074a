import logging
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
import yfinance as yf
from yfinance.exceptions import YFRateLimitError

from nashra.schemas.market import IndexLevel, StockQuote
from nashra.services.providers.base import (FetchBatch, IndexSource, NoDataError,
                                            ProviderRateLimitError, SourceFailure,
                                            StockSource)

logger = logging.getLogger(__name__)

# Tadawul tickers are already in Yahoo form (2222.SR). Other GCC exchanges
# are stored with a market prefix in some feeds; map those here.
_SUFFIX_BY_PREFIX = {
    "DFM:": ".AE",
    "ADX:": ".AD",
    "QE:": ".QA",
    "BK:": ".KW",
}


def to_yahoo_symbol(ticker: str) -> str:
    for prefix, suffix in _SUFFIX_BY_PREFIX.items():
        if ticker.startswith(prefix):
            return f"{ticker[len(prefix):]}{suffix}"
    return ticker


def _last_row(df: pd.DataFrame) -> Optional[pd.Series]:
    if df is None or df.empty or df["Close"].isna().all():
        return None
    df = df.dropna(subset=["Close"])
    return df.iloc[-1]


def _download(symbols: List[str], source: str) -> pd.DataFrame:
    try:
        return yf.download(tickers=symbols, period="2d", group_by="ticker",
                           threads=True, auto_adjust=True, progress=False)
    except YFRateLimitError as e:
        raise ProviderRateLimitError(source, str(e) or "Yahoo Finance rate limit") from e


def _frame_for(df: pd.DataFrame, symbol: str, single: bool) -> Optional[pd.DataFrame]:
    # group_by='ticker' puts the ticker on the top column level, except that
    # older yfinance releases return flat columns for a single symbol.
    if single and not isinstance(df.columns, pd.MultiIndex):
        return df
    if symbol not in df.columns.get_level_values(0):
        return None
    return df[symbol]


class YFinanceStockSource(StockSource):
    name = "yfinance"

    def fetch_stock_quotes(self, tickers: Sequence[str]) -> FetchBatch[StockQuote]:
        batch: FetchBatch[StockQuote] = FetchBatch()
        if not tickers:
            return batch
        symbols = {t: to_yahoo_symbol(t) for t in tickers}
        df = _download(list(symbols.values()), self.name)

        for ticker, symbol in symbols.items():
            try:
                frame = _frame_for(df, symbol, single=len(symbols) == 1)
                row = _last_row(frame) if frame is not None else None
                if row is None:
                    batch.failures.append(SourceFailure(self.name, NoDataError.kind, "no data returned", ticker))
                    continue
                closes = frame["Close"].dropna()
                prev_close = float(closes.iloc[-2]) if len(closes) > 1 else float(row["Open"])
                price = round(float(row["Close"]), 3)
                change = price - prev_close
                batch.items.append(StockQuote(
                    ticker=ticker,
                    price=price,
                    open=round(float(row["Open"]), 3),
                    high=round(float(row["High"]), 3),
                    low=round(float(row["Low"]), 3),
                    volume=int(row["Volume"]) if not pd.isna(row["Volume"]) else 0,
                    change=round(change, 3),
                    change_percent=round(change / prev_close * 100, 4) if prev_close else 0.0,
                    trade_date=row.name.date() if hasattr(row.name, "date") else None,
                ))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Error parsing %s: %s", ticker, e)
                batch.failures.append(SourceFailure.from_exception(self.name, e, key=ticker))
        return batch


DEFAULT_YAHOO_INDICES: Dict[str, Tuple[str, str]] = {
    "TASI": ("saudi", "^TASI.SR"),
}


class YFinanceIndexSource(IndexSource):
    name = "yfinance-indices"

    def __init__(self, indices: Optional[Dict[str, Tuple[str, str]]] = None):
        self.indices = indices if indices is not None else DEFAULT_YAHOO_INDICES

    def fetch_index_levels(self) -> FetchBatch[IndexLevel]:
        batch: FetchBatch[IndexLevel] = FetchBatch()
        symbols = [symbol for _, symbol in self.indices.values()]
        if not symbols:
            return batch
        df = _download(symbols, self.name)
        for name, (market, symbol) in self.indices.items():
            frame = _frame_for(df, symbol, single=len(symbols) == 1)
            row = _last_row(frame) if frame is not None else None
            if row is None:
                batch.failures.append(SourceFailure(self.name, NoDataError.kind, "no data returned", name))
                continue
            volume = None if pd.isna(row["Volume"]) else int(row["Volume"])
            batch.items.append(IndexLevel(name=name, market=market,
                                          value=round(float(row["Close"]), 2), volume=volume))
        return batch
