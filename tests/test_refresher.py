import os
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from tickertape.errors import RefreshFetchError
from tickertape.ingestion.article_types import RawListing, build_candidate
from tickertape.ingestion.extractors import parse_rfc3339
from tickertape.refresh.refresher import Refresher
from tickertape.storage.models import Entity
from tickertape.storage.sqlite_store import SQLiteArticleStore

NOW = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeFetcher:
    def __init__(self, bodies):
        self.bodies = bodies
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        body = self.bodies.get(url)
        if body is None:
            raise RefreshFetchError(f"http_500 for {url}")
        return body


class TestRefresher(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.store = SQLiteArticleStore(os.path.join(self.tmpdir, "articles.db"))

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _insert(self, n, body=None):
        c = build_candidate(
            RawListing(
                source="kabutan",
                date="2025-04-29T18:13:00+09:00",
                category="決算",
                title=f"article {n}",
                url=f"https://kabutan.jp/news/?b=n{n}",
                body=body,
            ),
            parse_rfc3339,
        )
        return self.store.insert_candidate(Entity.ARTICLE, c)

    def _refresher(self, fetcher, **kw):
        return Refresher(self.store, fetcher=fetcher, clock=lambda: NOW, **kw)

    def test_changed_body_is_written(self):
        a = self._insert(1, body="old")
        report = self._refresher(FakeFetcher({a.url: "new"})).run_once()
        self.assertEqual((report.selected, report.changed), (1, 1))
        b = self.store.get_article(a.id)
        self.assertEqual(b.body, "new")
        self.assertEqual(b.last_scraped_at, NOW)
        self.assertEqual(b.retry_count, 1)

    def test_unchanged_body_is_left_untouched_by_default(self):
        a = self._insert(1, body="same")
        fetcher = FakeFetcher({a.url: "same"})
        refresher = self._refresher(fetcher)
        report = refresher.run_once()
        self.assertEqual(report.unchanged, 1)
        b = self.store.get_article(a.id)
        self.assertEqual(b.retry_count, 0)
        self.assertIsNone(b.last_scraped_at)
        # still stale, so it is picked up again next cycle
        self.assertEqual(refresher.run_once().selected, 1)
        self.assertEqual(len(fetcher.calls), 2)

    def test_unchanged_body_can_count_toward_bound(self):
        a = self._insert(1, body="same")
        self._refresher(FakeFetcher({a.url: "same"}), count_unchanged=True).run_once()
        b = self.store.get_article(a.id)
        self.assertEqual(b.retry_count, 1)
        self.assertEqual(b.last_scraped_at, NOW)

    def test_failure_counts_and_keeps_body(self):
        a = self._insert(1, body="kept")
        report = self._refresher(FakeFetcher({})).run_once()
        self.assertEqual(report.failed, 1)
        b = self.store.get_article(a.id)
        self.assertEqual(b.body, "kept")
        self.assertEqual(b.retry_count, 1)
        self.assertIsNone(b.last_scraped_at)

    def test_article_at_bound_is_never_selected_again(self):
        a = self._insert(1)
        fetcher = FakeFetcher({})
        refresher = self._refresher(fetcher, max_retries=3)
        for _ in range(5):
            refresher.run_once()
        self.assertEqual(len(fetcher.calls), 3)
        self.assertEqual(self.store.get_article(a.id).retry_count, 3)
        self.assertEqual(refresher.run_once().selected, 0)

    def test_recently_scraped_article_is_not_stale(self):
        a = self._insert(1, body="old")
        fetcher = FakeFetcher({a.url: "new"})
        refresher = self._refresher(fetcher, stale_after=timedelta(hours=24))
        refresher.run_once()
        self.assertEqual(refresher.run_once().selected, 0)
        self.assertEqual(len(fetcher.calls), 1)

    def test_batch_size_limits_selection(self):
        for n in range(5):
            self._insert(n)
        report = self._refresher(FakeFetcher({}), batch_size=2).run_once()
        self.assertEqual(report.selected, 2)


if __name__ == "__main__":
    unittest.main()
