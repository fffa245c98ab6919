"""
Unauthenticated Yahoo endpoints: v8 chart and v1 search.

These need neither cookie nor crumb, which is why the price-only fallback
is built on the chart endpoint.
"""
import concurrent.futures
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import pandas as pd

from ..errors import MalformedResponse, ProviderError, UpstreamError
from ..models.prices import ChartPoint, QuoteSnapshot
from ..normalize import first_text, raw

logger = logging.getLogger(__name__)

CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{ticker}"
SEARCH_URL = "https://query1.finance.yahoo.com/v1/finance/search"

RANGES = ("1d", "5d", "1wk", "1mo", "3mo", "6mo", "1y", "2y", "3y", "5y", "10y", "ytd", "max")
INTERVALS = ("1m", "2m", "5m", "15m", "30m", "60m", "90m", "1h", "1d", "5d", "1wk", "1mo", "3mo")


def _get_json(transport, url: str, params: Dict[str, Any], what: str) -> Dict[str, Any]:
    resp = transport.request("GET", url, params=params)
    if resp.status != 200:
        logger.error(f"Yahoo {what} returned HTTP {resp.status}")
        raise UpstreamError(f"Yahoo returned {resp.status}", status=resp.status, details={"endpoint": what})
    try:
        data = json.loads(resp.body)
    except ValueError as e:
        raise MalformedResponse(f"Yahoo {what} body is not JSON: {e}", details={"endpoint": what})
    if not isinstance(data, dict):
        raise MalformedResponse(f"Yahoo {what} body is not an object", details={"endpoint": what})
    return data


def fetch_chart_result(transport, ticker: str, range_: str = "1mo", interval: str = "1d") -> Dict[str, Any]:
    """Return chart.result[0] (meta, timestamp, indicators)."""
    data = _get_json(
        transport,
        CHART_URL.format(ticker=quote(ticker, safe="")),
        {"range": range_, "interval": interval},
        "chart",
    )
    results = (data.get("chart") or {}).get("result")
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        raise MalformedResponse(f"Yahoo chart for {ticker} has no result", details={"endpoint": "chart"})
    return results[0]


def chart_points(result: Dict[str, Any]) -> List[ChartPoint]:
    """Turn a chart result into closing-price points, skipping null closes."""
    timestamps = result.get("timestamp") or []
    quotes = ((result.get("indicators") or {}).get("quote") or [{}])
    closes = (quotes[0] or {}).get("close") if quotes else None
    if not timestamps or not closes:
        return []

    n = min(len(timestamps), len(closes))
    df = pd.DataFrame({"ts": timestamps[:n], "close": closes[:n]})
    df["close"] = pd.to_numeric(df["close"], errors="coerce")
    df = df.dropna(subset=["close"])
    df = df[df["close"] != 0]
    if df.empty:
        return []

    days = pd.to_datetime(df["ts"], unit="s", utc=True).dt.date
    return [
        ChartPoint(time=int(ts) * 1000, price=round(float(close), 2), day=day.isoformat())
        for ts, close, day in zip(df["ts"], df["close"], days)
    ]


def fetch_chart(transport, ticker: str, range_: str = "1mo", interval: str = "1d") -> List[ChartPoint]:
    """Fetch closing prices for a ticker."""
    return chart_points(fetch_chart_result(transport, ticker, range_, interval))


def _quote_from_meta(meta: Dict[str, Any], ticker: str) -> Optional[QuoteSnapshot]:
    price = raw(meta.get("regularMarketPrice"))
    if price is None:
        logger.warning(f"Chart meta for {ticker} has no usable regularMarketPrice")
        return None
    prev_close = raw(meta.get("chartPreviousClose")) or 0
    change = price - prev_close
    change_percent = (change / prev_close) * 100 if prev_close > 0 else 0
    symbol = first_text(meta.get("symbol")) or ticker
    return QuoteSnapshot(
        symbol=symbol,
        # chart meta does not always carry a name
        short_name=symbol,
        regular_market_price=price,
        regular_market_change=change,
        regular_market_change_percent=change_percent,
        currency=first_text(meta.get("currency")),
    )


def fetch_quote(transport, ticker: str) -> Optional[QuoteSnapshot]:
    result = fetch_chart_result(transport, ticker, "1d", "1d")
    meta = result.get("meta")
    if not isinstance(meta, dict):
        return None
    return _quote_from_meta(meta, ticker)


def fetch_quotes(transport, tickers: List[str], max_workers: int = 4) -> List[QuoteSnapshot]:
    """
    Latest quotes for several tickers via the chart endpoint.
    Tickers that fail are logged and left out.
    """
    if not tickers:
        return []

    def _one(ticker: str) -> Optional[QuoteSnapshot]:
        try:
            return fetch_quote(transport, ticker)
        except ProviderError as e:
            logger.warning(f"Quote for {ticker} failed: {e.message}")
            return None

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        results = list(executor.map(_one, tickers))
    return [q for q in results if q is not None]


def search_tickers(transport, query: str) -> List[Dict[str, Any]]:
    """Autocomplete search; returns Yahoo's quote entries as-is."""
    if not query or not query.strip():
        return []
    # European index funds get buried below news and US listings with fewer hits
    data = _get_json(
        transport,
        SEARCH_URL,
        {"q": query.strip(), "quotesCount": 15, "newsCount": 0},
        "search",
    )
    quotes = data.get("quotes")
    return quotes if isinstance(quotes, list) else []
