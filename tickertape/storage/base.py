"""Query surface every article store provides (SQLite and Postgres)."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Union

from tickertape.ingestion.article_types import CandidateRecord
from tickertape.storage.models import Article, Entity, TradersArticle

StoredRecord = Union[Article, TradersArticle]


class ArticleStore(Protocol):
    def find_existing(self, entity: Entity, url: str, hash_: str) -> Optional[StoredRecord]:
        """Row whose url OR hash matches, if any."""

    def insert_candidate(self, entity: Entity, candidate: CandidateRecord) -> StoredRecord:
        """Insert; raises DuplicateError on a unique violation, PersistenceWriteError otherwise."""

    def get_article(self, article_id: int) -> Optional[Article]:
        ...

    def articles_published_since(self, since: datetime) -> List[Article]:
        """published_at >= since, newest first."""

    def refresh_candidates(self, stale_before: datetime, max_retries: int, limit: int = 50) -> List[Article]:
        """Never-scraped or last_scraped_at < stale_before, with retry_count < max_retries."""

    def record_refresh(
        self,
        article_id: int,
        *,
        max_retries: int,
        body: Optional[str] = None,
        scraped_at: Optional[datetime] = None,
    ) -> None:
        """Count one refresh attempt (capped); optionally replace body / bump last_scraped_at."""

    def articles_missing_summary(self, limit: int = 20) -> List[Article]:
        ...

    def set_summary(self, article_id: int, summary: str) -> bool:
        """Assign the summary once; False when one was already present."""

    def latest_published_at(self) -> Optional[datetime]:
        ...

    def count(self, entity: Entity) -> int:
        ...
