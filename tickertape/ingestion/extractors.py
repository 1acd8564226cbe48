"""Listing extractors.

Each extractor fetches one listing page (or feed) and yields RawListing rows in
listing order. Validation happens later in build_candidate; an extractor only
raises ExtractionError when the page itself cannot be fetched or parsed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urljoin

import feedparser
import requests
from bs4 import BeautifulSoup

from tickertape.errors import ExtractionError
from tickertape.ingestion.article_types import RawListing

logger = logging.getLogger(__name__)

JST = timezone(timedelta(hours=9), "JST")
USER_AGENT = "Mozilla/5.0 (compatible; tickertape/1.0)"

TRADERS_CATEGORY = "トレーダーズ"
_WEEKDAY_RE = re.compile(r"\(.+?\)")


def parse_rfc3339(value: str) -> datetime:
    s = (value or "").strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    parsed = datetime.fromisoformat(s)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without offset: {value!r}")
    return parsed


def parse_traders_timestamp(value: str) -> datetime:
    """'2025/04/29(火) 18:13' (JST) -> aware datetime."""
    s = _WEEKDAY_RE.sub("", value or "").strip()
    s = re.sub(r"\s+", " ", s)
    return datetime.strptime(s, "%Y/%m/%d %H:%M").replace(tzinfo=JST)


def parse_feed_date(value: str) -> datetime:
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return parse_rfc3339(value)
    if parsed is None:
        raise ValueError(f"unparseable feed date {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _with_filter(url: str, filter_param: Optional[str]) -> str:
    f = (filter_param or "").strip().lstrip("?")
    return f"{url}?{f}" if f else url


def _text(node) -> Optional[str]:
    if node is None:
        return None
    txt = node.get_text(" ", strip=True)
    return txt or None


def _attr(node, name: str) -> Optional[str]:
    if node is None:
        return None
    val = node.get(name)
    if isinstance(val, list):
        val = " ".join(val)
    return (val or "").strip() or None


class BaseExtractor:
    name: str = "base"

    def fetch(self) -> List[RawListing]:
        raise NotImplementedError

    def parse_date(self, value: str) -> datetime:
        return parse_rfc3339(value)


@dataclass
class HTMLListingExtractor(BaseExtractor):
    """Shared fetch/parse plumbing for HTML listing pages."""

    filter_param: Optional[str] = None
    timeout: float = 15.0
    session: Optional[requests.Session] = field(default=None, repr=False)

    base_url: str = ""
    row_selector: str = ""

    def listing_url(self) -> str:
        return _with_filter(self.base_url, self.filter_param)

    def _get(self, url: str) -> str:
        http = self.session or requests
        try:
            resp = http.get(url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ExtractionError(f"{self.name}: fetch {url} failed: {e}") from e
        return resp.text

    def fetch(self) -> List[RawListing]:
        url = self.listing_url()
        logger.debug(f"{self.name}: visiting {url}")
        html = self._get(url)
        try:
            soup = BeautifulSoup(html, "html.parser")
            rows = soup.select(self.row_selector)
        except Exception as e:
            raise ExtractionError(f"{self.name}: could not parse listing: {e}") from e
        out = []
        for row in rows:
            listing = self.parse_row(row, url)
            if listing is not None:
                out.append(listing)
        logger.debug(f"{self.name}: {len(out)} rows from {len(rows)} elements")
        return out

    def parse_row(self, row, page_url: str) -> Optional[RawListing]:
        raise NotImplementedError


@dataclass
class KabutanNewsExtractor(HTMLListingExtractor):
    """Market news listing."""

    name: str = "kabutan"
    base_url: str = "https://kabutan.jp/news/marketnews/"
    row_selector: str = ".s_news_list.mgbt0 tr"

    def parse_row(self, row, page_url: str) -> Optional[RawListing]:
        link = row.select_one("td:nth-child(3) a")
        if row.select_one("td") is None:
            # header row
            return None
        href = _attr(link, "href")
        return RawListing(
            source=self.name,
            date=_attr(row.select_one("td.news_time time"), "datetime"),
            category=_text(row.select_one("td:nth-child(2) div.newslist_ctg")),
            title=_text(link),
            url=urljoin(self.base_url, href) if href else None,
        )


@dataclass
class KabutanDisclosureExtractor(HTMLListingExtractor):
    """Timely-disclosure listing; carries stock code and an urgency marker."""

    name: str = "kabutan_ir"
    base_url: str = "https://kabutan.jp/news/"
    row_selector: str = "#news_contents .s_news_list tr"

    def parse_row(self, row, page_url: str) -> Optional[RawListing]:
        if row.select_one("td") is None:
            return None
        ctg = row.select_one("td:nth-child(2) div.newslist_ctg")
        link = row.select_one("td:nth-child(4) a")
        href = _attr(link, "href")
        return RawListing(
            source=self.name,
            date=_attr(row.select_one("td.news_time time"), "datetime"),
            category=_text(ctg),
            title=_text(link),
            url=urljoin(page_url, href) if href else None,
            stock_code=_attr(row.select_one("td:nth-child(3)"), "data-code"),
            is_urgent="kk_b" in (_attr(ctg, "class") or "").split(),
        )


@dataclass
class TradersNewsExtractor(HTMLListingExtractor):
    name: str = "traders"
    base_url: str = "https://www.traders.co.jp/news/list/ALL/1"
    row_selector: str = ".news_container"
    site_root: str = "https://www.traders.co.jp"

    def parse_date(self, value: str) -> datetime:
        return parse_traders_timestamp(value)

    def parse_row(self, row, page_url: str) -> Optional[RawListing]:
        link = row.select_one(".news_headline a.news_link")
        href = _attr(link, "href")
        return RawListing(
            source=self.name,
            date=_text(row.select_one(".timestamp")),
            category=TRADERS_CATEGORY,
            title=_text(link),
            url=urljoin(self.site_root, href) if href else None,
        )


@dataclass
class RSSExtractor(BaseExtractor):
    """Generic RSS/Atom source with a fixed category per feed."""

    feeds: Sequence[Tuple[str, str, str]] = ()  # (feed_name, feed_url, category)
    timeout: float = 15.0
    limit_per_feed: int = 50
    name: str = "rss"

    def parse_date(self, value: str) -> datetime:
        return parse_feed_date(value)

    def _feed_bytes(self, feed_url: str) -> bytes:
        try:
            resp = requests.get(feed_url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ExtractionError(f"rss: fetch {feed_url} failed: {e}") from e
        return resp.content

    def fetch(self) -> List[RawListing]:
        out: List[RawListing] = []
        failures = 0
        for feed_name, feed_url, category in self.feeds:
            try:
                content = self._feed_bytes(feed_url)
            except ExtractionError as e:
                # One broken feed must not hide the others.
                failures += 1
                logger.warning(str(e))
                continue
            parsed = feedparser.parse(content)
            if parsed.bozo and not parsed.entries:
                failures += 1
                logger.warning(f"rss: {feed_name} is not a usable feed: {parsed.get('bozo_exception')}")
                continue
            for entry in (parsed.entries or [])[: max(0, self.limit_per_feed)]:
                published = entry.get("published") or entry.get("updated")
                summary = entry.get("summary")
                out.append(
                    RawListing(
                        source=f"rss:{feed_name}",
                        date=published,
                        category=category,
                        title=entry.get("title"),
                        url=entry.get("link"),
                        body=str(summary).strip() if isinstance(summary, str) else None,
                    )
                )
        if self.feeds and failures == len(self.feeds):
            raise ExtractionError("rss: every configured feed failed")
        return out
