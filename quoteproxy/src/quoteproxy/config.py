import os
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)

MIN_HEADER_BYTES = 65536


class CookieStrategy(str, Enum):
    """Where the session cookie is obtained from."""
    FULL_PAGE = "full-page"
    LIGHTWEIGHT = "lightweight"


class AcquisitionPolicy(str, Enum):
    """What get_fundamentals does when no session can be obtained."""
    FAIL = "fail"
    DEGRADE = "degrade"


def load_env_file(path: str = ".env"):
    """
    Load environment variables from a .env file into os.environ.
    Does not override existing strings.
    """
    p = Path(path)
    if not p.exists():
        return

    try:
        with open(p) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                if '=' in line:
                    key, val = line.split('=', 1)
                    key = key.strip()
                    val = val.strip().strip('"').strip("'")
                    if key not in os.environ:
                        os.environ[key] = val
    except OSError as e:
        logger.warning(f"Failed to load .env: {e}")

# Load on import
load_env_file()


def _get_choice(name: str, enum_cls, default):
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{name} must be one of: {allowed}", details={"value": raw})


def _get_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", details={"value": raw})
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}", details={"value": value})
    return value


def get_cookie_strategy() -> CookieStrategy:
    return _get_choice("QUOTEPROXY_COOKIE_STRATEGY", CookieStrategy, CookieStrategy.LIGHTWEIGHT)


def get_acquisition_policy() -> AcquisitionPolicy:
    return _get_choice("QUOTEPROXY_ON_ACQUISITION_FAILURE", AcquisitionPolicy, AcquisitionPolicy.FAIL)


def get_single_flight() -> bool:
    raw = os.environ.get("QUOTEPROXY_SINGLE_FLIGHT", "1").strip().lower()
    return raw not in ("0", "false", "no", "off")


def get_default_currency() -> str:
    code = os.environ.get("QUOTEPROXY_DEFAULT_CURRENCY", "NOK").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError("QUOTEPROXY_DEFAULT_CURRENCY must be a three-letter code", details={"value": code})
    return code


def get_max_header_bytes() -> int:
    return _get_int("QUOTEPROXY_MAX_HEADER_BYTES", MIN_HEADER_BYTES, minimum=MIN_HEADER_BYTES)


def get_http_timeout() -> int:
    return _get_int("QUOTEPROXY_HTTP_TIMEOUT", 10)


def get_result_ttl() -> int:
    """Freshness window (seconds) of the CLI result cache."""
    return _get_int("QUOTEPROXY_RESULT_TTL", 300, minimum=0)


def get_cache_db_path() -> str:
    return os.environ.get("QUOTEPROXY_CACHE_DB", "quoteproxy_cache.db")


def get_fmp_key() -> Optional[str]:
    """Get the FinancialModelingPrep API key, or None if missing."""
    key = os.environ.get("FMP_API_KEY")
    # Handle the template default left by user
    if not key or key == "your_key_here":
        return None
    return key
