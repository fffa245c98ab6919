from typing import Optional
from pydantic import BaseModel, Field

class ChartPoint(BaseModel):
    """
    Single closing price from the chart endpoint.
    """
    time: int  # epoch milliseconds
    price: float
    day: str  # ISO date (UTC)


class QuoteSnapshot(BaseModel):
    """
    Latest quote derived from chart metadata.
    """
    symbol: str
    short_name: str = Field(..., alias="shortName")
    regular_market_price: float = Field(..., alias="regularMarketPrice")
    regular_market_change: float = Field(..., alias="regularMarketChange")
    regular_market_change_percent: float = Field(..., alias="regularMarketChangePercent")
    currency: Optional[str] = None

    class Config:
        populate_by_name = True
