import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ..config import get_fmp_key
from ..errors import MalformedResponse, UpstreamError, ValidationError
from ..models.fundamentals import FundamentalsResult
from ..normalize import as_int, first_of, first_text, raw, reconcile_dividend_yield

logger = logging.getLogger(__name__)

BASE_URL = "https://financialmodelingprep.com/api/v3"

# FMP reports the percentage and the fraction side by side in key-metrics-ttm
_FMP_DIVIDEND_SOURCES = (
    ("metrics", "dividendYieldPercentageTTM", 100.0),
    ("metrics", "dividendYieldTTM", 1.0),
)


def _get_list(transport, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
    endpoint = path.split("/")[0]
    resp = transport.request("GET", f"{BASE_URL}/{path}", params=params)
    if resp.status != 200:
        logger.error(f"FMP {endpoint} returned HTTP {resp.status}")
        raise UpstreamError(f"FMP returned {resp.status}", status=resp.status, details={"endpoint": endpoint})
    try:
        data = json.loads(resp.body)
    except ValueError as e:
        raise MalformedResponse(f"FMP body is not JSON: {e}", details={"endpoint": endpoint})
    if isinstance(data, dict):
        # FMP reports plan/limit problems as {"Error Message": ...}
        message = data.get("Error Message") or data.get("error") or "unexpected object"
        raise UpstreamError(f"FMP error: {message}", status=resp.status, details={"endpoint": endpoint})
    if not isinstance(data, list):
        raise MalformedResponse("FMP body is not a list", details={"endpoint": endpoint})
    return [item for item in data if isinstance(item, dict)]


def _peg(metrics: Dict[str, Any]) -> Optional[float]:
    # PEG is not in the TTM metrics; approximate from P/E and earnings yield
    pe = raw(metrics.get("peRatioTTM"))
    earnings_yield = raw(metrics.get("earningsYieldTTM"))
    if pe is None or not earnings_yield:
        return None
    return pe / (earnings_yield * 100)


def fetch_fundamentals(transport, ticker: str, api_key: Optional[str] = None,
                       default_currency: str = "NOK") -> FundamentalsResult:
    """
    Fundamentals from FinancialModelingPrep, in the same schema as Yahoo.
    Reference: https://site.financialmodelingprep.com/developer/docs
    """
    if not isinstance(ticker, str) or not ticker.strip():
        raise ValidationError("Ticker is required")
    api_key = api_key or get_fmp_key()
    if not api_key:
        raise ValidationError(
            "FMP_API_KEY is missing or invalid. "
            "Please add it to your .env file."
        )

    symbol = ticker.strip().upper()
    auth = {"apikey": api_key}
    path_symbol = quote(symbol, safe="")

    quotes = _get_list(transport, f"quote/{path_symbol}", auth)
    if not quotes:
        raise UpstreamError("Ticker not found", status=404, details={"ticker": symbol})
    metrics_list = _get_list(transport, f"key-metrics-ttm/{path_symbol}", auth)
    income_list = _get_list(transport, f"income-statement/{path_symbol}", {"limit": 1, **auth})

    q = quotes[0]
    m = metrics_list[0] if metrics_list else {}
    i = income_list[0] if income_list else {}

    return FundamentalsResult(
        symbol=symbol,
        short_name=first_text(q.get("name")) or symbol,
        currency=first_text(q.get("currency")) or default_currency,
        price=raw(q.get("price")),
        volume=as_int(raw(q.get("volume"))),
        market_cap=raw(q.get("marketCap")),
        trailing_pe=raw(q.get("pe")),
        # forward P/E lives behind a separate endpoint
        forward_pe=None,
        price_to_book=first_of(raw(m.get("pbRatioTTM")), raw(m.get("priceToBookRatioTTM"))),
        price_to_sales=raw(m.get("priceToSalesRatioTTM")),
        peg=_peg(m),
        eps=raw(q.get("eps")),
        book_value=raw(m.get("bookValuePerShareTTM")),
        dividend_yield=reconcile_dividend_yield({"metrics": m}, _FMP_DIVIDEND_SOURCES),
        dividend_per_share=raw(m.get("dividendPerShareTTM")),
        revenue=raw(i.get("revenue")),
        ebitda=raw(i.get("ebitda")),
        # closest TTM figure FMP exposes here; not a true net margin
        profit_margin=raw(m.get("netIncomePerEBT")),
        fifty_two_week_high=raw(q.get("yearHigh")),
        fifty_two_week_low=raw(q.get("yearLow")),
        beta=raw(m.get("beta")),
        source="fmp",
        degraded=False,
    )
