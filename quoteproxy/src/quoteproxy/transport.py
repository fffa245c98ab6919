"""
HTTP transport used by the Yahoo and FMP providers.

Providers only depend on `request(method, url, headers=None, params=None)`
returning an HttpResponse, so tests can swap in an in-memory transport.
"""
import http.client
import logging
import re
from typing import Dict, List, Optional

import requests
from pydantic import BaseModel, Field

from .config import MIN_HEADER_BYTES
from .errors import ProviderError

logger = logging.getLogger(__name__)

_CRUMB_RE = re.compile(r"crumb=[^&\s)]+")

BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


class HttpResponse(BaseModel):
    """Status, lower-cased multi-value headers and decoded body."""
    status: int
    headers: Dict[str, List[str]] = Field(default_factory=dict)
    body: str = ""

    def header_values(self, name: str) -> List[str]:
        return list(self.headers.get(name.lower(), []))


class Transport:
    """Capability interface; see RequestsTransport."""

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        raise NotImplementedError


def raise_header_limits(max_header_bytes: int = MIN_HEADER_BYTES) -> bool:
    """
    Lift http.client's per-line and header-count caps.

    finance.yahoo.com answers with a header block far beyond the defaults and
    http.client aborts with LineTooLong / "got more than 100 headers".
    Returns False if this runtime does not expose the limits.
    """
    if not hasattr(http.client, "_MAXLINE") or not hasattr(http.client, "_MAXHEADERS"):
        logger.warning("http.client header limits not adjustable in this runtime")
        return False
    http.client._MAXLINE = max(http.client._MAXLINE, max_header_bytes)
    # a header line is rarely under 64 bytes
    http.client._MAXHEADERS = max(http.client._MAXHEADERS, max_header_bytes // 64)
    return True


def _headers_of(resp) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    raw_headers = getattr(resp.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        # urllib3 keeps repeated headers (set-cookie) apart
        for name in raw_headers.keys():
            out.setdefault(name.lower(), []).extend(raw_headers.getlist(name))
    else:
        for name, value in resp.headers.items():
            out.setdefault(name.lower(), []).append(value)
    return out


def _collect_headers(responses) -> Dict[str, List[str]]:
    """Headers of the final response, plus set-cookie values from every redirect hop."""
    final = _headers_of(responses[-1])
    cookies: List[str] = []
    for resp in responses[:-1]:
        cookies.extend(_headers_of(resp).get("set-cookie", []))
    cookies.extend(final.get("set-cookie", []))
    if cookies:
        final["set-cookie"] = cookies
    return final


def _redact(text: str) -> str:
    return _CRUMB_RE.sub("crumb=***", text)


class RequestsTransport(Transport):
    """
    Transport backed by `requests`.

    No cookie jar is kept between calls; providers attach the Cookie header
    themselves.
    """

    def __init__(self, timeout: int = 10, max_header_bytes: int = MIN_HEADER_BYTES,
                 user_agent: str = BROWSER_UA):
        self.timeout = timeout
        self.user_agent = user_agent
        self.large_headers = raise_header_limits(max_header_bytes)

    def request(self, method, url, headers=None, params=None) -> HttpResponse:
        req_headers = {"User-Agent": self.user_agent}
        req_headers.update(headers or {})
        try:
            resp = requests.request(
                method,
                url,
                headers=req_headers,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {_redact(str(e))}")
            raise ProviderError(f"HTTP request failed: {_redact(str(e))}", details={"url": url})
        except http.client.HTTPException as e:
            # LineTooLong and friends can escape urllib3 unwrapped
            logger.error(f"{method} {url} failed while reading headers: {_redact(str(e))}")
            raise ProviderError(f"HTTP header parsing failed: {_redact(str(e))}", details={"url": url})

        return HttpResponse(
            status=resp.status_code,
            headers=_collect_headers(list(resp.history) + [resp]),
            body=resp.text,
        )
