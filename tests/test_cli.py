import json
import tempfile
import unittest
from pathlib import Path
import sys
from unittest import mock

sys.path.insert(0, str(Path(__file__).resolve().parent))

from click.testing import CliRunner

from fakes import (
    CHART_URL,
    COOKIE_URL,
    SUMMARY_URL,
    FakeTransport,
    json_response,
    yahoo_session_routes,
)
from quoteproxy import cli
from quoteproxy.cache.results import ResultCache
from quoteproxy.cache.session import SessionCache
from quoteproxy.config import AcquisitionPolicy
from quoteproxy.providers.yahoo import QuoteFetcher

EQNR_BODY = {
    "quoteSummary": {
        "result": [{
            "price": {"marketCap": {"raw": 900000000000}, "shortName": "EQUINOR", "currency": "NOK"},
            "summaryDetail": {},
            "defaultKeyStatistics": {"trailingPE": {"raw": 7.2}},
            "financialData": {},
        }],
        "error": None,
    }
}


def chart_meta(symbol, price, prev):
    return json_response({"chart": {"result": [{"meta": {
        "symbol": symbol, "currency": "NOK",
        "regularMarketPrice": price, "chartPreviousClose": prev,
    }}]}})


class CliTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.transport = FakeTransport()
        self.fetcher = QuoteFetcher(self.transport, SessionCache())
        self.cache = ResultCache(db_path=str(Path(self.tmpdir.name) / "cache.db"), ttl=300)

        for target, value in (("_get_fetcher", self.fetcher), ("_get_cache", self.cache)):
            patcher = mock.patch.object(cli, target, return_value=value)
            patcher.start()
            self.addCleanup(patcher.stop)

        self.runner = CliRunner()

    def invoke(self, *args):
        result = self.runner.invoke(cli.cli, list(args))
        self.assertEqual(result.exit_code, 0, result.output)
        return json.loads(result.output)


class TestFundamentalsCommand(CliTestCase):
    def test_fetch_then_cached(self):
        yahoo_session_routes(self.transport)
        self.transport.add(SUMMARY_URL.format(ticker="EQNR.OL"), json_response(EQNR_BODY))

        first = self.invoke("fetch", "fundamentals", "--ticker", "eqnr.ol")
        self.assertTrue(first["ok"])
        self.assertFalse(first["meta"]["cached"])
        self.assertEqual(first["data"]["marketCap"], 900000000000)
        self.assertEqual(first["data"]["pe"], 7.2)
        self.assertIsNone(first["data"]["pb"])
        self.assertEqual(first["data"]["shortName"], "EQUINOR")

        second = self.invoke("fetch", "fundamentals", "--ticker", "EQNR.OL")
        self.assertTrue(second["meta"]["cached"])
        self.assertEqual(second["data"], first["data"])
        self.assertEqual(len(self.transport.calls_to(SUMMARY_URL.format(ticker="EQNR.OL"))), 1)

        third = self.invoke("fetch", "fundamentals", "--ticker", "EQNR.OL", "--force")
        self.assertFalse(third["meta"]["cached"])
        self.assertEqual(len(self.transport.calls_to(COOKIE_URL)), 1)

    def test_degraded_result_is_not_cached(self):
        self.fetcher.policy = AcquisitionPolicy.DEGRADE
        self.transport.add(COOKIE_URL, json_response({}, status=404))
        self.transport.add(CHART_URL.format(ticker="EQNR.OL"), chart_meta("EQNR.OL", 281.4, 279.0))

        out = self.invoke("fetch", "fundamentals", "--ticker", "EQNR.OL")
        self.assertTrue(out["data"]["degraded"])
        self.assertIsNone(out["data"]["marketCap"])
        self.assertIsNone(self.cache.get("yahoo:fundamentals:EQNR.OL"))

    def test_price_command(self):
        self.transport.add(CHART_URL.format(ticker="EQNR.OL"), chart_meta("EQNR.OL", 281.4, 279.0))
        out = self.invoke("fetch", "price", "--ticker", "EQNR.OL")
        self.assertEqual(out["data"]["price"], 281.4)
        self.assertIsNone(out["data"]["pe"])


class TestQuotesCommand(CliTestCase):
    def test_tickers(self):
        self.transport.add(CHART_URL.format(ticker="EQNR.OL"), chart_meta("EQNR.OL", 110.0, 100.0))
        self.transport.add(CHART_URL.format(ticker="DNB.OL"), chart_meta("DNB.OL", 200.0, 200.0))
        out = self.invoke("fetch", "quotes", "--tickers", "eqnr.ol, DNB.OL,,eqnr.ol")
        self.assertEqual([q["symbol"] for q in out["data"]], ["EQNR.OL", "DNB.OL"])
        self.assertAlmostEqual(out["data"][0]["regularMarketChangePercent"], 10.0)

    def test_blank_tickers_rejected(self):
        result = self.runner.invoke(cli.cli, ["fetch", "quotes", "--tickers", " , ,"])
        self.assertNotEqual(result.exit_code, 0)
        self.assertEqual(self.transport.calls, [])

    def test_requires_tickers(self):
        result = self.runner.invoke(cli.cli, ["fetch", "quotes"])
        self.assertNotEqual(result.exit_code, 0)


class TestMainErrorEnvelope(CliTestCase):
    def test_upstream_error_is_json(self):
        yahoo_session_routes(self.transport)
        self.transport.add(SUMMARY_URL.format(ticker="EQNR.OL"), json_response({}, status=500))

        with mock.patch.object(sys, "argv", ["quoteproxy", "fetch", "fundamentals", "--ticker", "EQNR.OL"]):
            with mock.patch("builtins.print") as printed:
                with self.assertRaises(SystemExit) as ctx:
                    cli.main()

        self.assertEqual(ctx.exception.code, 1)
        payload = json.loads(printed.call_args[0][0])
        self.assertEqual(payload["error"]["code"], "upstream_error")
        self.assertEqual(payload["error"]["status"], 500)
        text = printed.call_args[0][0]
        self.assertNotIn("abc123", text)
        self.assertNotIn("xY9.crumb", text)


if __name__ == "__main__":
    unittest.main()
