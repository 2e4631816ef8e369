import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from config.settings import Settings
from main import create_app
from services.rankings.failures import FailureKind, FailureRecorder, FailureSource
from services.rankings.models import RawEntry
from services.rankings.pipeline import RefreshPipeline
from services.rankings.snapshot_store import SnapshotStore


class _StubExtractor:
    def __init__(self, entries):
        self.entries = entries

    async def extract(self):
        return list(self.entries)


class _StubPrices:
    async def fetch(self):
        return {"BTCUSDT": "65000.00"}, {"BTCUSDT": "+3.50%"}


class TestRankingsRoutes(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.images = Path(self._tmp.name) / "images"
        self.settings = Settings(images_dir=str(self.images), refresh_on_startup=False)
        self.recorder = FailureRecorder()
        self.extractor = _StubExtractor(
            [RawEntry(index="1", image_url="", display_name="Btc")]
            + [RawEntry(index=str(i), image_url="", display_name=f"Coin{i}") for i in range(2, 13)]
        )
        self.pipeline = RefreshPipeline(
            settings=self.settings,
            store=SnapshotStore(),
            extractor=self.extractor,
            price_source=_StubPrices(),
            image_cache=None,
            recorder=self.recorder,
        )
        self.client = TestClient(create_app(self.settings, pipeline=self.pipeline))

    def tearDown(self):
        self._tmp.cleanup()

    def test_rankings_empty_before_first_refresh(self):
        r = self.client.get("/")

        self.assertEqual(r.status_code, 200)
        self.assertEqual(
            r.json(),
            {"Populares": [], "Ganadores": [], "Perdedores": [], "MayorVolumen": []},
        )

    def test_refresh_then_read(self):
        r = self.client.post("/refresh")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"ok": True, "cycle": 1, "entry_count": 12})

        body = self.client.get("/").json()
        self.assertEqual(len(body["Populares"]), 10)
        self.assertEqual(len(body["Ganadores"]), 2)
        self.assertEqual(body["Perdedores"], [])
        self.assertEqual(
            body["Populares"][0],
            {"index": "1", "image": "", "name": "Btc", "price": "65000.00", "change_24h": "+3.50%"},
        )

    def test_refresh_without_entries_reports_not_ok(self):
        self.extractor.entries = []

        r = self.client.post("/refresh")

        self.assertEqual(r.json(), {"ok": False, "cycle": 0, "entry_count": 0})

    def test_status_reports_state_and_failures(self):
        before = self.client.get("/status").json()
        self.assertEqual(before["state"], "empty")
        self.assertFalse(before["scheduler_running"])

        self.recorder.record(FailureKind.TRANSPORT, FailureSource.PAGE, "blocked")
        self.client.post("/refresh")
        after = self.client.get("/status").json()

        self.assertEqual(after["state"], "populated")
        self.assertEqual(after["cycle"], 1)
        self.assertEqual(after["entry_count"], 12)
        self.assertTrue(after["refreshed_at"].endswith("Z"))
        self.assertEqual(after["recent_failures"][0]["source"], "page")

    def test_serves_cached_images(self):
        (self.images / "Btc.jpg").write_bytes(b"jpeg-bytes")

        r = self.client.get("/images/Btc.jpg")

        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.content, b"jpeg-bytes")
        self.assertEqual(self.client.get("/images/missing.jpg").status_code, 404)

    def test_cors_allows_any_origin(self):
        r = self.client.get("/", headers={"Origin": "https://example.com"})
        self.assertEqual(r.headers.get("access-control-allow-origin"), "*")


if __name__ == "__main__":
    unittest.main()
