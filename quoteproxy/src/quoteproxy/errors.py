import json
import traceback
from typing import Optional

# Never echoed back to callers, even if a caller stuffs them into details.
_SECRET_KEYS = {"cookie", "crumb"}


class QuoteProxyError(Exception):
    """Base exception for quoteproxy"""
    code = "error"

    def __init__(self, message: str, details: dict = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status = status


class ValidationError(QuoteProxyError):
    """Input or configuration validation errors"""
    code = "invalid_request"


class ProviderError(QuoteProxyError):
    """External provider errors"""
    code = "provider_error"


class AcquisitionFailure(ProviderError):
    """
    The cookie/crumb handshake did not produce a session.
    `reason` is one of NO_COOKIE, CRUMB_REJECTED, CRUMB_MALFORMED.
    """
    code = "acquisition_failed"

    NO_COOKIE = "no-cookie"
    CRUMB_REJECTED = "crumb-rejected"
    CRUMB_MALFORMED = "crumb-malformed"

    def __init__(self, reason: str, details: dict = None, status: Optional[int] = None):
        details = dict(details or {})
        details["reason"] = reason
        super().__init__(f"Yahoo session acquisition failed: {reason}", details, status)
        self.reason = reason


class AuthExpired(ProviderError):
    """Fundamentals endpoint kept answering 401 after a fresh session."""
    code = "auth_expired"

    def __init__(self, message: str = "Yahoo auth expired", details: dict = None):
        super().__init__(message, details, status=401)


class UpstreamError(ProviderError):
    """Upstream answered with a status we do not retry."""
    code = "upstream_error"

    def __init__(self, message: str, status: int, details: dict = None):
        super().__init__(message, details, status=status)


class MalformedResponse(ProviderError):
    """Upstream answered, but not with the structure we parse."""
    code = "malformed_response"


class UnknownError(QuoteProxyError):
    """Unexpected errors"""
    code = "unknown_error"


def _scrub(details: dict) -> dict:
    return {k: v for k, v in details.items() if k.lower() not in _SECRET_KEYS}


def format_error(e: Exception) -> str:
    """Format exception as the JSON error envelope."""

    if isinstance(e, QuoteProxyError):
        error_type = e.__class__.__name__
        code = e.code
        message = e.message
        status = e.status
        details = _scrub(e.details)
    else:
        error_type = "UnknownError"
        code = UnknownError.code
        message = str(e)
        status = None
        details = {
            "traceback": traceback.format_exc().splitlines()
        }

    payload = {
        "ok": False,
        "error": {
            "type": error_type,
            "code": code,
            "message": message,
            "status": status,
            "details": details
        },
        "meta": {
            "version": 1
        }
    }

    return json.dumps(payload, indent=2, default=str)
