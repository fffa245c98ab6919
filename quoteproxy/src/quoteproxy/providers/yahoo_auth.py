"""
Yahoo cookie + crumb handshake.

Yahoo's structured-data endpoints want a session cookie and a crumb derived
from it. The cookie comes from any page that sets one; the crumb from
/v1/test/getcrumb called with that cookie.
"""
import logging
from typing import Iterable

from ..config import CookieStrategy
from ..errors import AcquisitionFailure, ProviderError

logger = logging.getLogger(__name__)

COOKIE_URLS = {
    # Reliable, but the response header block is enormous.
    CookieStrategy.FULL_PAGE: "https://finance.yahoo.com",
    # Answers 404 with the same cookies and a small header block.
    CookieStrategy.LIGHTWEIGHT: "https://fc.yahoo.com",
}
CRUMB_URL = "https://query1.finance.yahoo.com/v1/test/getcrumb"


def extract_cookie(set_cookie_values: Iterable[str]) -> str:
    """Join the name=value part of each set-cookie header, dropping attributes."""
    pairs = []
    for value in set_cookie_values:
        pair = value.split(";", 1)[0].strip()
        if pair and "=" in pair:
            pairs.append(pair)
    return "; ".join(pairs)


def acquire_cookie(transport, strategy: CookieStrategy = CookieStrategy.LIGHTWEIGHT) -> str:
    """Fetch a Yahoo session cookie using the given strategy."""
    url = COOKIE_URLS[CookieStrategy(strategy)]
    try:
        resp = transport.request("GET", url)
    except ProviderError as e:
        raise AcquisitionFailure(
            AcquisitionFailure.NO_COOKIE,
            details={"strategy": CookieStrategy(strategy).value, "cause": e.message},
        )

    cookie = extract_cookie(resp.header_values("set-cookie"))
    if not cookie:
        logger.warning(f"No set-cookie from {url} (HTTP {resp.status})")
        raise AcquisitionFailure(
            AcquisitionFailure.NO_COOKIE,
            details={"strategy": CookieStrategy(strategy).value},
            status=resp.status,
        )
    return cookie


def acquire_crumb(transport, cookie: str) -> str:
    """Exchange a session cookie for a crumb."""
    try:
        resp = transport.request("GET", CRUMB_URL, headers={"Cookie": cookie})
    except ProviderError as e:
        raise AcquisitionFailure(AcquisitionFailure.CRUMB_REJECTED, details={"cause": e.message})

    if resp.status != 200:
        logger.warning(f"Crumb endpoint returned HTTP {resp.status}")
        raise AcquisitionFailure(AcquisitionFailure.CRUMB_REJECTED, status=resp.status)

    crumb = (resp.body or "").strip()
    if not crumb or "Unauthorized" in crumb or crumb.startswith("<"):
        logger.warning("Crumb endpoint returned something other than a token")
        raise AcquisitionFailure(AcquisitionFailure.CRUMB_MALFORMED, status=resp.status)
    return crumb
