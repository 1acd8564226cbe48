"""Pure rendering of outbound messages.

Nothing here performs I/O: each function takes stored/candidate data and
returns a RenderedMessage whose payload is the Discord message JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

VERSION = "1.2.2"

KABUTAN_ICON = "https://kabutan.jp/favicon.ico"
TRADERS_ICON = "https://www.traders.co.jp/static/favicon.ico?m=1642666535"
CHART_URL = "https://funit.api.kabutan.jp/jp/chart?c={code}&a=1&s=1&m=1&v={ts}"

CATEGORY_COLORS: Dict[str, int] = {
    "決算": 0xFF4500,
    "決算修正": 0xFF6347,
    "市場速報": 0x00BFFF,
    "トレーダーズ": 0x0099FF,
}
DEFAULT_COLOR = 0x00FF00
URGENT_DEFAULT_COLOR = 0xFF0000

URGENT_BODY_LIMIT = 512

# Discord component types / button styles
ACTION_ROW = 1
BUTTON = 2
STYLE_PRIMARY = 1
STYLE_LINK = 5


@dataclass(frozen=True)
class RenderedMessage:
    embed: Dict[str, Any]
    components: List[Dict[str, Any]] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"embeds": [self.embed]}
        if self.components:
            payload["components"] = self.components
        return payload


def category_color(category: Optional[str], default: int = DEFAULT_COLOR) -> int:
    return CATEGORY_COLORS.get((category or "").strip(), default)


def truncate(text: Optional[str], limit: int, marker: str = "...") -> str:
    s = text or ""
    if len(s) <= limit:
        return s
    return s[:limit] + marker


def link_button(label: str, url: str) -> Dict[str, Any]:
    return {"type": BUTTON, "style": STYLE_LINK, "label": label, "url": url, "emoji": {"name": "🔗"}}


def nav_button(label: str, custom_id: str) -> Dict[str, Any]:
    return {"type": BUTTON, "style": STYLE_PRIMARY, "label": label, "custom_id": custom_id}


def action_row(*buttons: Dict[str, Any]) -> List[Dict[str, Any]]:
    if not buttons:
        return []
    return [{"type": ACTION_ROW, "components": list(buttons)}]


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _footer(label: str, icon: str) -> Dict[str, str]:
    return {"text": f"Powered by {label} v{VERSION}", "icon_url": icon}


def render_market_news(*, title: str, url: str, category: str, published_at: datetime) -> RenderedMessage:
    embed = {
        "author": {"name": f"📢 Market news - {category}", "icon_url": KABUTAN_ICON},
        "title": title,
        "url": url,
        "description": f"**Category**: {category}",
        "fields": [{"name": "Published", "value": _iso(published_at), "inline": True}],
        "color": category_color(category),
        "timestamp": _iso(published_at),
        "footer": _footer("Kabutan Scraper", KABUTAN_ICON),
        "thumbnail": {"url": KABUTAN_ICON},
    }
    return RenderedMessage(embed, action_row(link_button("Read more", url)))


def chart_url(stock_code: str, now: datetime) -> str:
    return CHART_URL.format(code=stock_code, ts=int(now.timestamp()))


def render_urgent(
    *,
    title: str,
    url: str,
    category: str,
    published_at: datetime,
    stock_code: Optional[str],
    body: Optional[str],
    now: Optional[datetime] = None,
) -> RenderedMessage:
    now = now or datetime.now(timezone.utc)
    embed: Dict[str, Any] = {
        "author": {"name": f"🚨 Breaking - {category}", "icon_url": KABUTAN_ICON},
        "title": title,
        "url": url,
        "description": truncate(body, URGENT_BODY_LIMIT),
        "fields": [
            {"name": "Stock code", "value": stock_code or "-", "inline": True},
            {"name": "Announced", "value": _iso(published_at), "inline": True},
        ],
        "color": category_color(category, URGENT_DEFAULT_COLOR),
        "timestamp": _iso(published_at),
        "footer": {"text": f"v{VERSION}", "icon_url": KABUTAN_ICON},
        "thumbnail": {"url": KABUTAN_ICON},
    }
    if stock_code:
        embed["image"] = {"url": chart_url(stock_code, now)}
    return RenderedMessage(embed, action_row(link_button("Read article", url)))


def render_traders(*, title: str, url: str, category: str, published_at: datetime) -> RenderedMessage:
    embed = {
        "author": {"name": "📰 Traders news", "icon_url": TRADERS_ICON},
        "title": title,
        "url": url,
        "description": "Latest from Traders Web",
        "fields": [{"name": "Published", "value": _iso(published_at), "inline": True}],
        "color": CATEGORY_COLORS["トレーダーズ"],
        "timestamp": _iso(published_at),
        "footer": _footer("Traders Scraper", TRADERS_ICON),
        "thumbnail": {"url": TRADERS_ICON},
    }
    return RenderedMessage(embed, action_row(link_button("Open article", url)))
