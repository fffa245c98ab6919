import http.client
import http.server
import os
import threading
import unittest
from pathlib import Path
import sys
from types import SimpleNamespace
from unittest import mock

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "quoteproxy" / "src"
sys.path.insert(0, str(SRC))

import requests
from urllib3._collections import HTTPHeaderDict

from quoteproxy.errors import ProviderError
from quoteproxy.transport import RequestsTransport, raise_header_limits


def fake_response(status, headers, text="", history=()):
    raw_headers = HTTPHeaderDict()
    for name, value in headers:
        raw_headers.add(name, value)
    return SimpleNamespace(
        status_code=status,
        raw=SimpleNamespace(headers=raw_headers),
        headers=dict(raw_headers),
        text=text,
        history=list(history),
    )


class TestHeaderLimits(unittest.TestCase):
    def test_raises_limits(self):
        self.assertTrue(raise_header_limits(65536))
        self.assertGreaterEqual(http.client._MAXLINE, 65536)
        self.assertGreaterEqual(http.client._MAXHEADERS, 1024)


class TestRequestsTransport(unittest.TestCase):
    def test_multi_value_set_cookie_across_redirects(self):
        hop = fake_response(302, [("Location", "https://guce.yahoo.com"), ("Set-Cookie", "A1=one; Path=/")])
        final = fake_response(
            200,
            [("Content-Type", "text/html"), ("Set-Cookie", "A3=three; Path=/"), ("Set-Cookie", "A1S=s; Path=/")],
            text="<html></html>",
            history=[hop],
        )
        with mock.patch("quoteproxy.transport.requests.request", return_value=final) as req:
            resp = RequestsTransport().request("GET", "https://finance.yahoo.com", headers={"Cookie": "x=y"})

        self.assertEqual(resp.status, 200)
        self.assertEqual(resp.header_values("Set-Cookie"), ["A1=one; Path=/", "A3=three; Path=/", "A1S=s; Path=/"])
        self.assertEqual(resp.header_values("content-type"), ["text/html"])
        self.assertNotIn("location", resp.headers)
        sent = req.call_args.kwargs["headers"]
        self.assertEqual(sent["Cookie"], "x=y")
        self.assertIn("Mozilla/5.0", sent["User-Agent"])

    def test_request_errors_are_provider_errors_without_crumb(self):
        boom = requests.ConnectionError(
            "Max retries exceeded with url: /v10/finance/quoteSummary/EQNR.OL?modules=price&crumb=xY9.crumb (Caused by timeout)"
        )
        with mock.patch("quoteproxy.transport.requests.request", side_effect=boom):
            with self.assertRaises(ProviderError) as ctx:
                RequestsTransport().request("GET", "https://query2.finance.yahoo.com/v10/finance/quoteSummary/EQNR.OL")
        self.assertNotIn("xY9.crumb", ctx.exception.message)
        self.assertIn("crumb=***", ctx.exception.message)

    def test_header_overflow_is_provider_error(self):
        with mock.patch(
            "quoteproxy.transport.requests.request",
            side_effect=http.client.HTTPException("got more than 100 headers"),
        ):
            with self.assertRaises(ProviderError):
                RequestsTransport().request("GET", "https://finance.yahoo.com")



class OversizedHeaderHandler(http.server.BaseHTTPRequestHandler):
    """Answers like finance.yahoo.com: hundreds of cookies and one very long line."""

    cookie_count = 400
    long_line = "x" * 20_000

    def do_GET(self):
        body = b"<html></html>"
        self.send_response(200)
        for i in range(self.cookie_count):
            self.send_header("Set-Cookie", f"c{i}=v{i}; Domain=.yahoo.com; Path=/; Secure")
        self.send_header("X-Consent-Blob", self.long_line)
        self.send_header("Content-Type", "text/html")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


class TestOversizedHeaderBlock(unittest.TestCase):
    def setUp(self):
        self.server = http.server.HTTPServer(("127.0.0.1", 0), OversizedHeaderHandler)
        thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        thread.start()
        self.addCleanup(self.server.server_close)
        self.addCleanup(self.server.shutdown)
        host, port = self.server.server_address
        self.url = f"http://{host}:{port}/"

    def test_every_set_cookie_survives(self):
        transport = RequestsTransport(timeout=5)
        self.assertTrue(transport.large_headers)

        with mock.patch.dict(os.environ, {"NO_PROXY": "127.0.0.1", "no_proxy": "127.0.0.1"}):
            resp = transport.request("GET", self.url)

        self.assertEqual(resp.status, 200)
        cookies = resp.header_values("Set-Cookie")
        self.assertEqual(len(cookies), OversizedHeaderHandler.cookie_count)
        self.assertEqual(cookies[0], "c0=v0; Domain=.yahoo.com; Path=/; Secure")
        self.assertEqual(cookies[-1], "c399=v399; Domain=.yahoo.com; Path=/; Secure")
        self.assertEqual(resp.header_values("X-Consent-Blob"), [OversizedHeaderHandler.long_line])
        self.assertEqual(resp.body, "<html></html>")


if __name__ == "__main__":
    unittest.main()
