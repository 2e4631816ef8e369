import asyncio
import json
import unittest

import httpx

from services.rankings.failures import FailureKind, FailureRecorder, FailureSource
from services.rankings.price_source import BinancePriceSource, format_change

PRICES_URL = "https://api.test/api/v3/ticker/price"
CHANGES_URL = "https://api.test/api/v3/ticker/24hr"


def _source(handler, recorder):
    return BinancePriceSource(
        PRICES_URL,
        CHANGES_URL,
        recorder=recorder,
        transport=httpx.MockTransport(handler),
    )


class TestFormatChange(unittest.TestCase):
    def test_positive_gets_plus_sign(self):
        self.assertEqual(format_change("3.5"), "+3.50%")

    def test_negative_keeps_sign(self):
        self.assertEqual(format_change("-2"), "-2.00%")

    def test_zero_has_no_sign(self):
        self.assertEqual(format_change("0"), "0.00%")

    def test_rounding(self):
        self.assertEqual(format_change("1.239"), "+1.24%")

    def test_unparsable_passes_through_and_is_recorded(self):
        recorder = FailureRecorder()
        self.assertEqual(format_change("abc", recorder), "abc")

        failures = recorder.recent(kind=FailureKind.PARSE)
        self.assertEqual(len(failures), 1)
        self.assertEqual(failures[0].source, FailureSource.CHANGES)

    def test_unparsable_without_recorder_logs(self):
        with self.assertLogs("services.rankings.price_source", level="WARNING"):
            self.assertEqual(format_change("n/a"), "n/a")


class TestBinancePriceSource(unittest.TestCase):
    def test_builds_both_maps(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/price"):
                return httpx.Response(200, json=[
                    {"symbol": "BTCUSDT", "price": "65000.00"},
                    {"symbol": "ETHUSDT", "price": "3400.10"},
                ])
            return httpx.Response(200, json=[
                {"symbol": "BTCUSDT", "priceChangePercent": "3.5"},
                {"symbol": "ETHUSDT", "priceChangePercent": "-2"},
            ])

        recorder = FailureRecorder()
        prices, changes = asyncio.run(_source(handler, recorder).fetch())

        self.assertEqual(prices, {"BTCUSDT": "65000.00", "ETHUSDT": "3400.10"})
        self.assertEqual(changes, {"BTCUSDT": "+3.50%", "ETHUSDT": "-2.00%"})
        self.assertEqual(recorder.recent(), [])

    def test_changes_endpoint_down_keeps_prices(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/price"):
                return httpx.Response(200, json=[{"symbol": "BTCUSDT", "price": "1"}])
            return httpx.Response(503, text="unavailable")

        recorder = FailureRecorder()
        prices, changes = asyncio.run(_source(handler, recorder).fetch())

        self.assertEqual(prices, {"BTCUSDT": "1"})
        self.assertEqual(changes, {})
        failures = recorder.recent(source=FailureSource.CHANGES)
        self.assertEqual([f.kind for f in failures], [FailureKind.TRANSPORT])

    def test_prices_decode_error_keeps_changes(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/price"):
                return httpx.Response(200, content=b"<html>not json</html>")
            return httpx.Response(200, content=json.dumps([{"symbol": "BTCUSDT", "priceChangePercent": "0.5"}]).encode())

        recorder = FailureRecorder()
        prices, changes = asyncio.run(_source(handler, recorder).fetch())

        self.assertEqual(prices, {})
        self.assertEqual(changes, {"BTCUSDT": "+0.50%"})
        self.assertEqual(recorder.recent(source=FailureSource.PRICES)[0].kind, FailureKind.DECODE)

    def test_object_instead_of_array_is_decode_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"code": -1121, "msg": "Invalid symbol."})

        recorder = FailureRecorder()
        prices, changes = asyncio.run(_source(handler, recorder).fetch())

        self.assertEqual((prices, changes), ({}, {}))
        self.assertEqual(len(recorder.recent(kind=FailureKind.DECODE)), 2)

    def test_connection_error_is_transport(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("boom", request=request)

        recorder = FailureRecorder()
        prices, changes = asyncio.run(_source(handler, recorder).fetch())

        self.assertEqual((prices, changes), ({}, {}))
        self.assertEqual(len(recorder.recent(kind=FailureKind.TRANSPORT)), 2)

    def test_malformed_rows_skipped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[
                "junk",
                {"price": "1"},
                {"symbol": "SOLUSDT", "price": "150", "priceChangePercent": "1"},
            ])

        prices, changes = asyncio.run(_source(handler, FailureRecorder()).fetch())

        self.assertEqual(prices, {"SOLUSDT": "150"})
        self.assertEqual(changes, {"SOLUSDT": "+1.00%"})


if __name__ == "__main__":
    unittest.main()
