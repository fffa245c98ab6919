from typing import Optional
from pydantic import BaseModel, Field

# Keys that only the authenticated quoteSummary path (or FMP) can fill.
FUNDAMENTAL_FIELDS = (
    "market_cap",
    "trailing_pe",
    "forward_pe",
    "price_to_book",
    "price_to_sales",
    "peg",
    "eps",
    "book_value",
    "dividend_yield",
    "dividend_per_share",
    "revenue",
    "ebitda",
    "profit_margin",
    "fifty_two_week_high",
    "fifty_two_week_low",
    "beta",
)


class FundamentalsResult(BaseModel):
    """
    Stable fundamentals schema handed to callers.

    Every key is always serialized; missing values are None. A result built
    by the price-only fallback has `degraded=True` and every field in
    FUNDAMENTAL_FIELDS set to None.
    """
    symbol: str
    short_name: str = Field(..., alias="shortName")
    currency: str

    price: Optional[float] = None
    volume: Optional[int] = None

    # Valuation
    market_cap: Optional[float] = Field(None, alias="marketCap")
    trailing_pe: Optional[float] = Field(None, alias="pe")
    forward_pe: Optional[float] = Field(None, alias="forwardPe")
    price_to_book: Optional[float] = Field(None, alias="pb")
    price_to_sales: Optional[float] = Field(None, alias="ps")
    peg: Optional[float] = None

    # Per share
    eps: Optional[float] = None
    book_value: Optional[float] = Field(None, alias="bookValue")

    # Dividends (yield is a fraction: 0.045 == 4.5%)
    dividend_yield: Optional[float] = Field(None, alias="dividendYield")
    dividend_per_share: Optional[float] = Field(None, alias="dividendPerShare")

    # Revenue / profitability
    revenue: Optional[float] = None
    ebitda: Optional[float] = None
    profit_margin: Optional[float] = Field(None, alias="profitMargin")

    # 52-week
    fifty_two_week_high: Optional[float] = Field(None, alias="fiftyTwoWeekHigh")
    fifty_two_week_low: Optional[float] = Field(None, alias="fiftyTwoWeekLow")

    beta: Optional[float] = None

    source: str = "quoteSummary"
    degraded: bool = False

    class Config:
        populate_by_name = True
