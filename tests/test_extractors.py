import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import requests

from tickertape.errors import ExtractionError
from tickertape.ingestion.article_types import build_candidate
from tickertape.ingestion.extractors import (
    KabutanDisclosureExtractor,
    KabutanNewsExtractor,
    RSSExtractor,
    TradersNewsExtractor,
    parse_feed_date,
)

MARKET_NEWS_HTML = """
<table class="s_news_list mgbt0">
  <tr><th>time</th><th>ctg</th><th>title</th></tr>
  <tr>
    <td class="news_time"><time datetime="2025-04-29T18:13:00+09:00">25/04/29 18:13</time></td>
    <td><div class="newslist_ctg">決算</div></td>
    <td><a href="/news/marketnews/?b=n202504290001">ABC社、今期経常を上方修正</a></td>
  </tr>
  <tr>
    <td class="news_time"><time datetime="2025-04-29T18:00:00+09:00">25/04/29 18:00</time></td>
    <td><div class="newslist_ctg">市場速報</div></td>
    <td><a href="/news/marketnews/%3Fb=n202504290002">日経平均は続伸</a></td>
  </tr>
</table>
"""

DISCLOSURE_HTML = """
<div id="news_contents">
<table class="s_news_list">
  <tr>
    <td class="news_time"><time datetime="2025-04-29T15:30:00+09:00">15:30</time></td>
    <td><div class="newslist_ctg kk_b">開示</div></td>
    <td data-code="7203">トヨタ</td>
    <td><a href="/disclosures/pdf/20250429/140120250429512345/">業績予想の修正に関するお知らせ</a></td>
  </tr>
  <tr>
    <td class="news_time"><time datetime="2025-04-29T15:00:00+09:00">15:00</time></td>
    <td><div class="newslist_ctg">開示</div></td>
    <td data-code="6758">ソニーG</td>
    <td><a href="/disclosures/pdf/20250429/140120250429500000/">自己株式の取得状況</a></td>
  </tr>
</table>
</div>
"""

TRADERS_HTML = """
<div class="news_container">
  <span class="timestamp">2025/04/29(火) 18:13</span>
  <div class="news_headline"><a class="news_link" href="/news/view/123">米国株式市場見通し</a></div>
</div>
<div class="news_container">
  <span class="timestamp"></span>
  <div class="news_headline"><a class="news_link" href="/news/view/124">時刻なし</a></div>
</div>
"""

RSS_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>feed</title>
<item><title>First</title><link>https://example.com/a</link>
<pubDate>Tue, 29 Apr 2025 09:13:00 GMT</pubDate><description>lead text</description></item>
<item><title>Second</title><link>https://example.com/b</link>
<pubDate>Tue, 29 Apr 2025 08:00:00 GMT</pubDate></item>
</channel></rss>"""


def _session(text=None, status_error=None):
    resp = MagicMock()
    resp.text = text
    if status_error:
        resp.raise_for_status.side_effect = status_error
    session = MagicMock()
    session.get.return_value = resp
    return session


class TestKabutanExtractors(unittest.TestCase):
    def test_market_news_rows(self):
        ex = KabutanNewsExtractor(session=_session(MARKET_NEWS_HTML))
        rows = ex.fetch()
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0].category, "決算")
        self.assertEqual(rows[0].date, "2025-04-29T18:13:00+09:00")
        self.assertEqual(rows[0].url, "https://kabutan.jp/news/marketnews/?b=n202504290001")
        c = build_candidate(rows[1], ex.parse_date)
        self.assertEqual(c.canonical_url, "https://kabutan.jp/news/marketnews/?b=n202504290002")

    def test_filter_param_is_appended(self):
        session = _session(MARKET_NEWS_HTML)
        KabutanNewsExtractor(filter_param="category=3", session=session).fetch()
        self.assertEqual(session.get.call_args[0][0], "https://kabutan.jp/news/marketnews/?category=3")

    def test_disclosures_carry_code_and_urgency(self):
        rows = KabutanDisclosureExtractor(session=_session(DISCLOSURE_HTML)).fetch()
        self.assertEqual([r.stock_code for r in rows], ["7203", "6758"])
        self.assertEqual([r.is_urgent for r in rows], [True, False])
        self.assertTrue(rows[0].url.startswith("https://kabutan.jp/disclosures/pdf/"))

    def test_http_failure_is_extraction_error(self):
        session = _session(status_error=requests.HTTPError("503"))
        with self.assertRaises(ExtractionError):
            KabutanNewsExtractor(session=session).fetch()

    def test_empty_page_yields_nothing(self):
        self.assertEqual(KabutanNewsExtractor(session=_session("<html></html>")).fetch(), [])


class TestTradersExtractor(unittest.TestCase):
    def test_rows_and_jst_dates(self):
        ex = TradersNewsExtractor(session=_session(TRADERS_HTML))
        rows = ex.fetch()
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0].url, "https://www.traders.co.jp/news/view/123")
        self.assertEqual(rows[0].category, "トレーダーズ")
        c = build_candidate(rows[0], ex.parse_date)
        self.assertEqual(c.published_at, datetime(2025, 4, 29, 9, 13, tzinfo=timezone.utc))
        self.assertIsNone(rows[1].date)


class TestRSSExtractor(unittest.TestCase):
    FEEDS = (("example", "https://example.com/feed.xml", "海外"),)

    def _response(self, content):
        resp = MagicMock()
        resp.content = content
        return resp

    @patch("tickertape.ingestion.extractors.requests.get")
    def test_feed_entries(self, get):
        get.return_value = self._response(RSS_XML)
        ex = RSSExtractor(feeds=self.FEEDS)
        rows = ex.fetch()
        self.assertEqual([r.title for r in rows], ["First", "Second"])
        self.assertEqual(rows[0].source, "rss:example")
        self.assertEqual(rows[0].category, "海外")
        self.assertEqual(rows[0].body, "lead text")
        c = build_candidate(rows[0], ex.parse_date)
        self.assertEqual(c.published_at, datetime(2025, 4, 29, 9, 13, tzinfo=timezone.utc))

    @patch("tickertape.ingestion.extractors.requests.get")
    def test_limit_per_feed(self, get):
        get.return_value = self._response(RSS_XML)
        self.assertEqual(len(RSSExtractor(feeds=self.FEEDS, limit_per_feed=1).fetch()), 1)

    @patch("tickertape.ingestion.extractors.requests.get")
    def test_one_broken_feed_does_not_hide_others(self, get):
        feeds = self.FEEDS + (("down", "https://down.example.com/rss", "海外"),)
        get.side_effect = [self._response(RSS_XML), requests.ConnectionError("refused")]
        self.assertEqual(len(RSSExtractor(feeds=feeds).fetch()), 2)

    @patch("tickertape.ingestion.extractors.requests.get")
    def test_all_feeds_failing_raises(self, get):
        get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(ExtractionError):
            RSSExtractor(feeds=self.FEEDS).fetch()


class TestFeedDates(unittest.TestCase):
    def test_rfc2822_and_iso(self):
        expected = datetime(2025, 4, 29, 9, 13, tzinfo=timezone.utc)
        self.assertEqual(parse_feed_date("Tue, 29 Apr 2025 09:13:00 GMT"), expected)
        self.assertEqual(parse_feed_date("2025-04-29T18:13:00+09:00"), expected)
        self.assertEqual(parse_feed_date("2025-04-29T18:13:00+09:00").utcoffset(), timedelta(hours=9))


if __name__ == "__main__":
    unittest.main()
