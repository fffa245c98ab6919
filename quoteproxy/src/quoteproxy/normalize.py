"""
Map Yahoo's quoteSummary payload onto FundamentalsResult.

Yahoo modules disagree on which fields they fill for a given ticker, so most
output fields are resolved through an ordered list of (module, field)
sources; the first non-null value wins. The order is part of the output
contract. When a module we read from is missing the miss is logged so a
shape change upstream shows up instead of being papered over.
"""
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

from .models.fundamentals import FundamentalsResult

logger = logging.getLogger(__name__)

MODULES = ("defaultKeyStatistics", "summaryDetail", "financialData", "price")

# output field -> ordered (module, upstream field) sources
FIELD_SOURCES: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "market_cap": (("price", "marketCap"), ("summaryDetail", "marketCap")),
    "trailing_pe": (("summaryDetail", "trailingPE"), ("defaultKeyStatistics", "trailingPE")),
    "forward_pe": (("summaryDetail", "forwardPE"), ("defaultKeyStatistics", "forwardPE")),
    "price_to_book": (("defaultKeyStatistics", "priceToBook"),),
    "price_to_sales": (("defaultKeyStatistics", "priceToSalesTrailing12Months"),),
    "peg": (("defaultKeyStatistics", "pegRatio"),),
    "eps": (("financialData", "earningsPerShare"), ("defaultKeyStatistics", "trailingEps")),
    "book_value": (("defaultKeyStatistics", "bookValue"),),
    "dividend_per_share": (("summaryDetail", "dividendRate"), ("summaryDetail", "trailingAnnualDividendRate")),
    "revenue": (("financialData", "totalRevenue"),),
    "ebitda": (("financialData", "ebitda"),),
    "profit_margin": (("financialData", "profitMargins"),),
    "fifty_two_week_high": (("summaryDetail", "fiftyTwoWeekHigh"),),
    "fifty_two_week_low": (("summaryDetail", "fiftyTwoWeekLow"),),
    "beta": (("summaryDetail", "beta"), ("defaultKeyStatistics", "beta")),
    "price": (("price", "regularMarketPrice"),),
}

# (module, field, divisor): percentages are divided down to fractions
DIVIDEND_YIELD_SOURCES: Tuple[Tuple[str, str, float], ...] = (
    ("summaryDetail", "dividendYield", 1.0),
    ("summaryDetail", "trailingAnnualDividendYield", 1.0),
    ("summaryDetail", "dividendYieldPercentageTTM", 100.0),
    ("defaultKeyStatistics", "dividendYieldPercentageTTM", 100.0),
)


def raw(value: Any) -> Optional[float]:
    """
    Reduce a Yahoo value to a number or None.

    Accepts a bare number, a {"raw": ..., "fmt": ...} envelope, or an empty
    object (Yahoo's "not available").
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, dict):
        inner = value.get("raw")
        if isinstance(inner, (int, float)) and not isinstance(inner, bool):
            return inner
    return None


def first_of(*values: Optional[float]) -> Optional[float]:
    for v in values:
        if v is not None:
            return v
    return None


def reconcile_dividend_yield(modules: Dict[str, Dict[str, Any]],
                             sources: Sequence[Tuple[str, str, float]] = DIVIDEND_YIELD_SOURCES) -> Optional[float]:
    """Dividend yield as a fraction, converting percentage-valued sources."""
    for module, field, divisor in sources:
        value = raw(modules.get(module, {}).get(field))
        if value is not None:
            return value / divisor
    return None


def first_text(*values: Any) -> Optional[str]:
    for v in values:
        if isinstance(v, str) and v.strip():
            return v.strip()
    return None


def locate_result(body: Any) -> Dict[str, Any]:
    """Find the result object, wrapped (quoteSummary.result[0]) or not."""
    if not isinstance(body, dict):
        return {}
    summary = body.get("quoteSummary")
    if isinstance(summary, dict):
        results = summary.get("result")
        if isinstance(results, list) and results and isinstance(results[0], dict):
            return results[0]
    return body


def _modules(result: Dict[str, Any], ticker: str) -> Dict[str, Dict[str, Any]]:
    modules = {}
    for name in MODULES:
        module = result.get(name)
        if isinstance(module, dict):
            modules[name] = module
        else:
            if module is not None:
                logger.warning(f"quoteSummary for {ticker}: module '{name}' is {type(module).__name__}, expected object")
            else:
                logger.warning(f"quoteSummary for {ticker}: module '{name}' missing")
            modules[name] = {}
    return modules


def as_int(value: Optional[float]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (OverflowError, ValueError):
        return None


def normalize(body: Any, ticker: str, default_currency: str = "NOK") -> FundamentalsResult:
    """Build a FundamentalsResult from a quoteSummary body. Never raises on bad data."""
    result = locate_result(body)
    modules = _modules(result, ticker)

    values: Dict[str, Any] = {}
    for out_field, sources in FIELD_SOURCES.items():
        values[out_field] = first_of(*(raw(modules[m].get(f)) for m, f in sources))

    values["dividend_yield"] = reconcile_dividend_yield(modules)
    values["volume"] = as_int(raw(modules["price"].get("regularMarketVolume")))

    price_module = modules["price"]
    short_name = first_text(price_module.get("shortName"), price_module.get("longName")) or ticker
    currency = first_text(
        price_module.get("currency"),
        modules["financialData"].get("financialCurrency"),
    ) or default_currency

    return FundamentalsResult(
        symbol=ticker,
        short_name=short_name,
        currency=currency,
        source="quoteSummary",
        degraded=False,
        **values,
    )
