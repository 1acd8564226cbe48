"""Background re-fetch of stale article bodies with a bounded retry budget.

An article is eligible while it is stale (never scraped, or last scraped
before the staleness threshold) and its retry_count is below the bound.
Every attempt that is counted moves retry_count one step toward the bound;
at the bound the article is never selected again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from tickertape.errors import PersistenceWriteError, RefreshFetchError
from tickertape.extraction.fulltext import fetch_body
from tickertape.storage.base import ArticleStore

logger = logging.getLogger(__name__)

BodyFetcher = Callable[[str], str]


@dataclass
class RefreshReport:
    selected: int = 0
    changed: int = 0
    unchanged: int = 0
    failed: int = 0

    def summary(self) -> str:
        return (
            f"refresh: selected={self.selected} changed={self.changed} "
            f"unchanged={self.unchanged} failed={self.failed}"
        )


class Refresher:
    def __init__(
        self,
        store: ArticleStore,
        *,
        fetcher: Optional[BodyFetcher] = None,
        stale_after: timedelta = timedelta(hours=24),
        max_retries: int = 3,
        batch_size: int = 50,
        count_unchanged: bool = False,
        timeout: float = 15.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.fetcher = fetcher or (lambda url: fetch_body(url, timeout=timeout))
        self.stale_after = stale_after
        self.max_retries = max_retries
        self.batch_size = batch_size
        self.count_unchanged = count_unchanged
        self.clock = clock

    def run_once(self) -> RefreshReport:
        now = self.clock()
        report = RefreshReport()
        candidates = self.store.refresh_candidates(now - self.stale_after, self.max_retries, self.batch_size)
        report.selected = len(candidates)

        for article in candidates:
            try:
                body = self.fetcher(article.url)
            except RefreshFetchError as e:
                report.failed += 1
                logger.warning(f"refresh id={article.id} failed ({article.retry_count + 1}/{self.max_retries}): {e}")
                self._record(article.id)
                continue

            if body != article.body:
                report.changed += 1
                logger.info(f"refresh id={article.id}: body updated ({len(body)} chars)")
                self._record(article.id, body=body, scraped_at=now)
            else:
                report.unchanged += 1
                if self.count_unchanged:
                    logger.debug(f"refresh id={article.id}: unchanged, counted")
                    self._record(article.id, scraped_at=now)
                else:
                    logger.debug(f"refresh id={article.id}: unchanged, left untouched")

        logger.info(report.summary())
        return report

    def _record(self, article_id: int, *, body: Optional[str] = None, scraped_at: Optional[datetime] = None) -> None:
        try:
            self.store.record_refresh(article_id, max_retries=self.max_retries, body=body, scraped_at=scraped_at)
        except PersistenceWriteError as e:
            logger.error(f"refresh id={article_id}: could not record attempt: {e}")
