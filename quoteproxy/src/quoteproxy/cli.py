import sys
import json
import click
import logging
from typing import Optional
from . import config
from .errors import format_error
from .logging import configure_logging
from .cache.results import ResultCache
from .providers import fmp
from .providers.yahoo import QuoteFetcher
from .providers.yahoo_chart import INTERVALS, RANGES

__version__ = "0.2.0"

# Configure logging at module level
configure_logging()
logger = logging.getLogger(__name__)

_fetcher: Optional[QuoteFetcher] = None
_cache: Optional[ResultCache] = None


def _get_fetcher() -> QuoteFetcher:
    # One fetcher per process so the Yahoo session is shared across commands
    global _fetcher
    if _fetcher is None:
        _fetcher = QuoteFetcher.from_env()
    return _fetcher


def _get_cache() -> ResultCache:
    global _cache
    if _cache is None:
        _cache = ResultCache(db_path=config.get_cache_db_path(), ttl=config.get_result_ttl())
    return _cache


def _split_tickers(tickers: str):
    ticker_list = []
    for t in tickers.split(','):
        t = t.strip().upper()
        if t and t not in ticker_list:
            ticker_list.append(t)
    return ticker_list


@click.group()
def cli():
    """quoteproxy: Yahoo Finance fundamentals behind a crumb-authenticated session."""
    pass


@cli.command()
def version():
    """Print version information."""
    _print_json({"version": __version__})


@cli.group()
def fetch():
    """Fetch data from providers."""
    pass


@fetch.command()
@click.option("--ticker", required=True, help="Ticker symbol (e.g. EQNR.OL)")
@click.option("--provider", default="yahoo", type=click.Choice(["yahoo", "fmp"]), help="Data provider")
@click.option("--force", is_flag=True, help="Bypass result cache")
def fundamentals(ticker, provider, force):
    """Fetch company fundamentals."""
    ticker = (ticker or "").strip().upper()
    if not ticker:
        raise click.BadParameter("ticker must be a non-empty symbol.")

    key = f"{provider}:fundamentals:{ticker}"
    cache = _get_cache()

    if not force:
        cached = cache.get(key)
        if cached:
            logger.info(f"Cache hit: fundamentals ({provider}) for {ticker}")
            _print_json(cached, cached=True)
            return

    fetcher = _get_fetcher()
    if provider == "fmp":
        result = fmp.fetch_fundamentals(fetcher.transport, ticker, default_currency=fetcher.default_currency)
    else:
        result = fetcher.get_fundamentals(ticker)

    as_dict = result.model_dump(mode="json", by_alias=True)
    # price-only results are a stopgap; do not let them shadow real data
    if not result.degraded:
        cache.put(key, as_dict)
    _print_json(as_dict, cached=False)


@fetch.command()
@click.option("--ticker", required=True, help="Ticker symbol")
def price(ticker):
    """Fetch price-only data (no Yahoo session needed)."""
    result = _get_fetcher().get_price_only(ticker)
    _print_json(result.model_dump(mode="json", by_alias=True))


@fetch.command()
@click.option("--ticker", required=True, help="Ticker symbol")
@click.option("--range", "range_", default="1mo", type=click.Choice(RANGES), help="Chart range")
@click.option("--interval", default="1d", type=click.Choice(INTERVALS), help="Chart interval")
def chart(ticker, range_, interval):
    """Fetch closing prices."""
    points = _get_fetcher().get_chart(ticker, range_, interval)
    _print_json([p.model_dump(mode="json") for p in points])


@fetch.command()
@click.option("--tickers", required=True, help="Comma-separated tickers (e.g. EQNR.OL,DNB.OL)")
def quotes(tickers):
    """Fetch latest quotes for several tickers."""
    ticker_list = _split_tickers(tickers)
    if not ticker_list:
        raise click.BadParameter("tickers must include at least one symbol.")

    logger.info(f"Fetching quotes for {len(ticker_list)} tickers")
    items = _get_fetcher().get_quotes(ticker_list)
    _print_json([q.model_dump(mode="json", by_alias=True) for q in items])


@cli.command()
@click.option("--query", required=True, help="Name or symbol fragment")
def search(query):
    """Search Yahoo for ticker symbols."""
    _print_json(_get_fetcher().search(query))


def _print_json(data, cached=False):
    """Helper to print standard JSON envelope."""
    payload = {
        "ok": True,
        "data": data,
        "meta": {
            "version": 1,
            "cached": cached
        }
    }
    click.echo(json.dumps(payload, indent=2))


def main():
    """Entry point for the CLI."""
    try:
        cli(standalone_mode=False)
    except Exception as e:
        if isinstance(e, click.exceptions.Exit):
            sys.exit(e.exit_code)
        if isinstance(e, click.exceptions.Abort):
            sys.exit(130)

        # Usage errors (missing args) get the same JSON envelope
        print(format_error(e))
        sys.exit(1)

if __name__ == "__main__":
    main()
