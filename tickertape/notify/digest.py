"""Rolling digest of recently published articles, paged 8 at a time.

Pages are recomputed from the store on every request (initial post and every
navigation click). Nothing is cached, so the same page number may show
different articles if the window's contents changed in between.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from tickertape.notify.render import (
    KABUTAN_ICON,
    VERSION,
    RenderedMessage,
    action_row,
    nav_button,
    truncate,
)
from tickertape.storage.base import ArticleStore
from tickertape.storage.models import Article

logger = logging.getLogger(__name__)

PAGE_SIZE = 8
DIGEST_COLOR = 0x00BFFF
TITLE_LIMIT = 50
JST = timezone(timedelta(hours=9), "JST")

PREV_PREFIX = "hourly_prev"
NEXT_PREFIX = "hourly_next"
_NAV_RE = re.compile(rf"^(?:{PREV_PREFIX}|{NEXT_PREFIX}):(-?\d+)$")


def total_pages(count: int, page_size: int = PAGE_SIZE) -> int:
    if count <= 0:
        return 0
    return math.ceil(count / page_size)


def clamp_page(page: int, total: int) -> int:
    if total <= 0:
        return 1
    return max(1, min(int(page), total))


def paginate(items: Sequence, page: int, page_size: int = PAGE_SIZE) -> Tuple[int, int, list]:
    """Return (clamped_page, total_pages, slice) for a 1-based page request."""
    total = total_pages(len(items), page_size)
    page = clamp_page(page, total)
    start = (page - 1) * page_size
    return page, total, list(items[start:start + page_size])


def nav_token(prefix: str, page: int) -> str:
    return f"{prefix}:{page}"


def parse_nav_token(custom_id: Optional[str]) -> Optional[int]:
    """Target page carried by a navigation button, or None if not a digest token."""
    m = _NAV_RE.match((custom_id or "").strip())
    return int(m.group(1)) if m else None


def build_digest_message(
    articles: List[Article],
    page: int,
    *,
    window_start: datetime,
    window_end: datetime,
    page_size: int = PAGE_SIZE,
) -> Optional[RenderedMessage]:
    """Render one page of `articles` (already ordered newest first)."""
    if not articles:
        return None
    page, total, items = paginate(articles, page, page_size)

    fields = []
    for a in items:
        stamp = a.published_at.astimezone(JST).strftime("%H:%M")
        fields.append({
            "name": stamp,
            "value": f"[{truncate(a.title, TITLE_LIMIT, '…')}]({a.url})",
            "inline": False,
        })

    embed = {
        "author": {"name": "🕒 Last hour of news", "icon_url": KABUTAN_ICON},
        "description": (
            f"Articles from {window_start.astimezone(JST).strftime('%H:%M')} "
            f"to {window_end.astimezone(JST).strftime('%H:%M')} (Page {page}/{total})"
        ),
        "color": DIGEST_COLOR,
        "fields": fields,
        "timestamp": window_end.isoformat(),
        "footer": {"text": f"Powered by Kabutan Scraper v{VERSION}"},
    }

    buttons = []
    if page > 1:
        buttons.append(nav_button("◀️ Prev", nav_token(PREV_PREFIX, page - 1)))
    if page < total:
        buttons.append(nav_button("Next ▶️", nav_token(NEXT_PREFIX, page + 1)))
    return RenderedMessage(embed, action_row(*buttons))


@dataclass
class DigestPager:
    store: ArticleStore
    window: timedelta = timedelta(hours=1)
    page_size: int = PAGE_SIZE
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)

    def render(self, page: int = 1) -> Optional[RenderedMessage]:
        now = self.clock()
        since = now - self.window
        articles = self.store.articles_published_since(since)
        if not articles:
            logger.info("Digest window is empty, nothing to render")
            return None
        return build_digest_message(
            articles,
            page,
            window_start=since,
            window_end=now,
            page_size=self.page_size,
        )
