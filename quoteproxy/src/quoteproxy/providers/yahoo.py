import json
import logging
import threading
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from .. import config
from ..cache.session import SESSION_TTL_SECONDS, SessionCache
from ..config import AcquisitionPolicy, CookieStrategy
from ..errors import (
    AcquisitionFailure,
    AuthExpired,
    MalformedResponse,
    UpstreamError,
    ValidationError,
)
from ..models.fundamentals import FundamentalsResult
from ..models.prices import ChartPoint, QuoteSnapshot
from ..models.session import Session
from ..normalize import MODULES, as_int, first_text, normalize, raw
from ..transport import RequestsTransport
from . import yahoo_chart
from .yahoo_auth import acquire_cookie, acquire_crumb

logger = logging.getLogger(__name__)

QUOTE_SUMMARY_URL = "https://query2.finance.yahoo.com/v10/finance/quoteSummary/{ticker}"


class _State(Enum):
    NO_SESSION = "no-session"
    HAS_SESSION = "has-session"


def _clean_ticker(ticker: str) -> str:
    if not isinstance(ticker, str) or not ticker.strip():
        raise ValidationError("Ticker is required")
    return ticker.strip().upper()


class QuoteFetcher:
    """
    Fetch Yahoo fundamentals with a cached cookie/crumb session.

    A 401 from quoteSummary invalidates the session and the request is
    retried exactly once with a fresh one. When no session can be obtained,
    `policy` decides between surfacing the AcquisitionFailure and falling
    back to the price-only chart data.
    """

    def __init__(
        self,
        transport,
        cache: Optional[SessionCache] = None,
        *,
        cookie_strategy: CookieStrategy = CookieStrategy.LIGHTWEIGHT,
        policy: AcquisitionPolicy = AcquisitionPolicy.FAIL,
        default_currency: str = "NOK",
        single_flight: bool = True,
    ):
        self.transport = transport
        self.cache = cache if cache is not None else SessionCache()
        self.cookie_strategy = CookieStrategy(cookie_strategy)
        self.policy = AcquisitionPolicy(policy)
        self.default_currency = default_currency
        self.single_flight = single_flight
        self._acquire_lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "QuoteFetcher":
        """Build a fetcher from QUOTEPROXY_* settings."""
        transport = RequestsTransport(
            timeout=config.get_http_timeout(),
            max_header_bytes=config.get_max_header_bytes(),
        )
        strategy = config.get_cookie_strategy()
        if strategy is CookieStrategy.FULL_PAGE and not transport.large_headers:
            logger.warning("Full-page cookie strategy needs large header support; using lightweight")
            strategy = CookieStrategy.LIGHTWEIGHT
        return cls(
            transport,
            cookie_strategy=strategy,
            policy=config.get_acquisition_policy(),
            default_currency=config.get_default_currency(),
            single_flight=config.get_single_flight(),
        )

    # -- session -----------------------------------------------------------

    def _acquire(self) -> Session:
        logger.info(f"Acquiring Yahoo session ({self.cookie_strategy.value})")
        cookie = acquire_cookie(self.transport, self.cookie_strategy)
        crumb = acquire_crumb(self.transport, cookie)
        return self.cache.put(cookie, crumb, SESSION_TTL_SECONDS)

    def _obtain_session(self) -> Session:
        session = self.cache.get()
        if session is not None:
            return session
        if not self.single_flight:
            return self._acquire()
        with self._acquire_lock:
            # another caller may have finished the handshake while we waited
            session = self.cache.get()
            if session is not None:
                return session
            return self._acquire()

    # -- fundamentals ------------------------------------------------------

    def _request_summary(self, ticker: str, session: Session):
        return self.transport.request(
            "GET",
            QUOTE_SUMMARY_URL.format(ticker=quote(ticker, safe="")),
            headers={"Cookie": session.cookie},
            params={"modules": ",".join(MODULES), "crumb": session.crumb},
        )

    def _parse(self, ticker: str, body: str) -> Dict[str, Any]:
        try:
            data = json.loads(body)
        except ValueError as e:
            logger.error(f"quoteSummary for {ticker} is not JSON: {e}")
            raise MalformedResponse(f"Yahoo quoteSummary body is not JSON: {e}", details={"ticker": ticker})
        if not isinstance(data, dict):
            raise MalformedResponse("Yahoo quoteSummary body is not an object", details={"ticker": ticker})
        return data

    def get_fundamentals(self, ticker: str) -> FundamentalsResult:
        """
        Fundamentals for `ticker`, normalized.

        Raises AcquisitionFailure (policy FAIL), AuthExpired after the one
        retry, UpstreamError for any other non-200, MalformedResponse for an
        unparseable body.
        """
        ticker = _clean_ticker(ticker)
        state = _State.NO_SESSION
        session: Optional[Session] = None
        retried = False

        while True:
            if state is _State.NO_SESSION:
                try:
                    session = self._obtain_session()
                except AcquisitionFailure as e:
                    if self.policy is AcquisitionPolicy.DEGRADE:
                        logger.warning(f"No Yahoo session ({e.reason}); serving price-only data for {ticker}")
                        return self.get_price_only(ticker)
                    raise
                state = _State.HAS_SESSION

            resp = self._request_summary(ticker, session)

            if resp.status == 401:
                self.cache.invalidate()
                if retried:
                    logger.error(f"quoteSummary for {ticker} still 401 after a fresh session")
                    raise AuthExpired(details={"ticker": ticker})
                logger.info(f"quoteSummary for {ticker} returned 401; refreshing session")
                retried = True
                state = _State.NO_SESSION
                continue

            if resp.status != 200:
                logger.error(f"quoteSummary for {ticker} returned HTTP {resp.status}")
                raise UpstreamError(f"Yahoo returned {resp.status}", status=resp.status, details={"ticker": ticker})

            return normalize(self._parse(ticker, resp.body), ticker, self.default_currency)

    # -- degraded mode -----------------------------------------------------

    def get_price_only(self, ticker: str) -> FundamentalsResult:
        """
        Price, volume and currency from the public chart endpoint.
        Every fundamentals field is None and `degraded` is True.
        """
        ticker = _clean_ticker(ticker)
        result = yahoo_chart.fetch_chart_result(self.transport, ticker, "1d", "1d")
        meta = result.get("meta")
        if not isinstance(meta, dict):
            raise MalformedResponse(f"Yahoo chart for {ticker} has no meta", details={"ticker": ticker})

        return FundamentalsResult(
            symbol=ticker,
            short_name=first_text(meta.get("symbol")) or ticker,
            currency=first_text(meta.get("currency")) or self.default_currency,
            price=raw(meta.get("regularMarketPrice")),
            volume=as_int(raw(meta.get("regularMarketVolume"))),
            source="chart",
            degraded=True,
        )

    # -- public chart helpers ----------------------------------------------

    def get_chart(self, ticker: str, range_: str = "1mo", interval: str = "1d") -> List[ChartPoint]:
        return yahoo_chart.fetch_chart(self.transport, _clean_ticker(ticker), range_, interval)

    def get_quotes(self, tickers: List[str]) -> List[QuoteSnapshot]:
        return yahoo_chart.fetch_quotes(self.transport, [_clean_ticker(t) for t in tickers])

    def search(self, query: str) -> List[Dict[str, Any]]:
        return yahoo_chart.search_tickers(self.transport, query)
