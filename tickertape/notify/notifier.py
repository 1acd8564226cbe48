"""Routes newly stored items to Discord channels.

Delivery is best-effort: a failed send is logged and the item stays stored
without a notification. Nothing here touches persistence.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple

from tickertape.errors import NotificationDeliveryError
from tickertape.ingestion.article_types import CandidateRecord
from tickertape.notify.digest import DigestPager
from tickertape.notify.discord import DiscordClient
from tickertape.notify.render import RenderedMessage, render_market_news, render_traders, render_urgent
from tickertape.storage.base import StoredRecord

logger = logging.getLogger(__name__)

StoredItem = Tuple[CandidateRecord, StoredRecord]


class Notifier:
    def __init__(
        self,
        client: DiscordClient,
        alert_channel: str,
        urgent_channel: Optional[str] = None,
        pager: Optional[DigestPager] = None,
    ):
        self.client = client
        self.alert_channel = alert_channel
        self.urgent_channel = urgent_channel or alert_channel
        self.pager = pager

    def _deliver(self, channel_id: str, message: RenderedMessage, what: str) -> bool:
        try:
            self.client.send_message(channel_id, message)
            return True
        except NotificationDeliveryError as e:
            logger.error(f"Notification failed for {what}: {e}")
            return False

    def notify_new(self, items: Iterable[StoredItem]) -> int:
        sent = 0
        for candidate, record in items:
            message = render_market_news(
                title=record.title,
                url=record.url,
                category=candidate.category,
                published_at=candidate.published_at,
            )
            sent += self._deliver(self.alert_channel, message, record.url)
        return sent

    def notify_urgent(self, items: Iterable[StoredItem]) -> int:
        """Only items the source flagged urgent are sent; the rest are ignored."""
        sent = 0
        for candidate, record in items:
            if not candidate.is_urgent:
                continue
            message = render_urgent(
                title=record.title,
                url=record.url,
                category=candidate.category,
                published_at=candidate.published_at,
                stock_code=candidate.stock_code,
                body=candidate.body,
            )
            sent += self._deliver(self.urgent_channel, message, record.url)
        return sent

    def notify_traders(self, items: Iterable[StoredItem]) -> int:
        sent = 0
        for candidate, record in items:
            message = render_traders(
                title=record.title,
                url=record.url,
                category=record.category,
                published_at=record.published_at,
            )
            sent += self._deliver(self.alert_channel, message, record.url)
        return sent

    def send_digest(self, page: int = 1) -> bool:
        if self.pager is None:
            logger.warning("Digest requested but no pager configured")
            return False
        message = self.pager.render(page)
        if message is None:
            return False
        return self._deliver(self.alert_channel, message, f"digest page {page}")
