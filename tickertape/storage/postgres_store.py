"""Postgres-backed article store.

Same query surface as the SQLite store; selected when PG_DSN is configured.
Schema creation is idempotent (CREATE IF NOT EXISTS).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row

from tickertape.errors import DatabaseError, DuplicateError, PersistenceWriteError
from tickertape.ingestion.article_types import CandidateRecord
from tickertape.storage.base import StoredRecord
from tickertape.storage.models import Article, Entity, TradersArticle

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS articles (
      id BIGSERIAL PRIMARY KEY,
      site TEXT NOT NULL DEFAULT '',
      title TEXT NOT NULL,
      url TEXT NOT NULL UNIQUE,
      hash TEXT NOT NULL UNIQUE,
      content TEXT NOT NULL DEFAULT '',
      body TEXT NOT NULL DEFAULT '',
      summary TEXT,
      category TEXT NOT NULL DEFAULT '',
      published_at TIMESTAMPTZ NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      last_scraped_at TIMESTAMPTZ,
      retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS traders_articles (
      id BIGSERIAL PRIMARY KEY,
      title TEXT NOT NULL,
      url TEXT NOT NULL UNIQUE,
      hash TEXT NOT NULL UNIQUE,
      category TEXT NOT NULL DEFAULT '',
      published_at TIMESTAMPTZ NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_articles_site ON articles(site);",
    "CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_articles_scraped ON articles(last_scraped_at, retry_count);",
    "CREATE INDEX IF NOT EXISTS idx_traders_published ON traders_articles(published_at DESC);",
]


def ensure_postgres_schema(pg_dsn: str, *, statements: Optional[Iterable[str]] = None) -> None:
    """Ensure Postgres schema exists."""
    stmts = list(statements) if statements is not None else SCHEMA_STATEMENTS
    with psycopg.connect(pg_dsn, autocommit=True) as conn:
        with conn.cursor() as cur:
            for s in stmts:
                cur.execute(s)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class PostgresArticleStore:
    pg_dsn: str

    def __post_init__(self) -> None:
        try:
            ensure_postgres_schema(self.pg_dsn)
        except psycopg.Error as e:
            raise DatabaseError(f"Postgres schema setup failed: {e}") from e
        logger.info("Postgres article store ready")

    def _connect(self):
        try:
            return psycopg.connect(self.pg_dsn, row_factory=dict_row)
        except psycopg.OperationalError as e:
            raise DatabaseError(f"Postgres connection failed: {e}") from e

    @staticmethod
    def _row_to_article(row: Dict[str, Any]) -> Article:
        return Article(
            id=int(row["id"]),
            site=row["site"],
            title=row["title"],
            url=row["url"],
            hash=row["hash"],
            content=row["content"],
            body=row["body"],
            summary=row["summary"],
            category=row["category"],
            published_at=_aware(row["published_at"]),
            created_at=_aware(row["created_at"]),
            updated_at=_aware(row["updated_at"]),
            last_scraped_at=_aware(row["last_scraped_at"]),
            retry_count=int(row["retry_count"]),
        )

    @staticmethod
    def _row_to_traders(row: Dict[str, Any]) -> TradersArticle:
        return TradersArticle(
            id=int(row["id"]),
            title=row["title"],
            url=row["url"],
            hash=row["hash"],
            category=row["category"],
            published_at=_aware(row["published_at"]),
            created_at=_aware(row["created_at"]),
        )

    def _to_record(self, entity: Entity, row: Dict[str, Any]) -> StoredRecord:
        if entity is Entity.TRADERS:
            return self._row_to_traders(row)
        return self._row_to_article(row)

    def _read(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    return cur.fetchall()
        except psycopg.Error as e:
            raise DatabaseError(f"Query failed: {e}") from e

    def _fetch_articles(self, sql: str, params: tuple) -> List[Article]:
        return [self._row_to_article(r) for r in self._read(sql, params)]

    def find_existing(self, entity: Entity, url: str, hash_: str) -> Optional[StoredRecord]:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"SELECT * FROM {entity.value} WHERE url = %s OR hash = %s LIMIT 1",
                        (url, hash_),
                    )
                    row = cur.fetchone()
        except psycopg.Error as e:
            raise DatabaseError(f"Lookup failed: {e}") from e
        return self._to_record(entity, row) if row else None

    def insert_candidate(self, entity: Entity, candidate: CandidateRecord) -> StoredRecord:
        if entity is Entity.TRADERS:
            sql = """
                INSERT INTO traders_articles (title, url, hash, category, published_at)
                VALUES (%(title)s, %(url)s, %(hash)s, %(category)s, %(published_at)s)
                RETURNING *
            """
        else:
            sql = """
                INSERT INTO articles (site, title, url, hash, content, body, category, published_at)
                VALUES (%(site)s, %(title)s, %(url)s, %(hash)s, %(content)s, %(body)s, %(category)s, %(published_at)s)
                RETURNING *
            """
        params = {
            "site": candidate.source,
            "title": candidate.title,
            "url": candidate.canonical_url,
            "hash": candidate.identity_hash,
            "content": f"Category: {candidate.category}",
            "body": candidate.body or "",
            "category": candidate.category,
            "published_at": _aware(candidate.published_at),
        }
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    row = cur.fetchone()
        except pg_errors.UniqueViolation as e:
            raise DuplicateError(f"{candidate.canonical_url} already stored") from e
        except psycopg.Error as e:
            raise PersistenceWriteError(f"Insert failed: {e}") from e
        return self._to_record(entity, row)

    def get_article(self, article_id: int) -> Optional[Article]:
        rows = self._fetch_articles("SELECT * FROM articles WHERE id = %s", (article_id,))
        return rows[0] if rows else None

    def articles_published_since(self, since: datetime) -> List[Article]:
        return self._fetch_articles(
            "SELECT * FROM articles WHERE published_at >= %s ORDER BY published_at DESC, id DESC",
            (_aware(since),),
        )

    def refresh_candidates(self, stale_before: datetime, max_retries: int, limit: int = 50) -> List[Article]:
        return self._fetch_articles(
            """
            SELECT * FROM articles
            WHERE (last_scraped_at IS NULL OR last_scraped_at < %s)
              AND retry_count < %s
            ORDER BY last_scraped_at ASC NULLS FIRST, id ASC
            LIMIT %s
            """,
            (_aware(stale_before), int(max_retries), int(limit)),
        )

    def record_refresh(
        self,
        article_id: int,
        *,
        max_retries: int,
        body: Optional[str] = None,
        scraped_at: Optional[datetime] = None,
    ) -> None:
        sets = ["retry_count = LEAST(retry_count + 1, %s)", "updated_at = now()"]
        params: List[Any] = [int(max_retries)]
        if body is not None:
            sets.append("body = %s")
            params.append(body)
        if scraped_at is not None:
            sets.append("last_scraped_at = %s")
            params.append(_aware(scraped_at))
        params.append(article_id)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(f"UPDATE articles SET {', '.join(sets)} WHERE id = %s", params)
        except psycopg.Error as e:
            raise PersistenceWriteError(f"Refresh update failed for article {article_id}: {e}") from e

    def articles_missing_summary(self, limit: int = 20) -> List[Article]:
        return self._fetch_articles(
            """
            SELECT * FROM articles
            WHERE (summary IS NULL OR summary = '') AND body <> ''
            ORDER BY published_at DESC
            LIMIT %s
            """,
            (int(limit),),
        )

    def set_summary(self, article_id: int, summary: str) -> bool:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE articles SET summary = %s, updated_at = now()
                        WHERE id = %s AND (summary IS NULL OR summary = '')
                        """,
                        (summary, article_id),
                    )
                    return cur.rowcount > 0
        except psycopg.Error as e:
            raise PersistenceWriteError(f"Summary update failed for article {article_id}: {e}") from e

    def latest_published_at(self) -> Optional[datetime]:
        rows = self._read("SELECT MAX(published_at) AS latest FROM articles")
        return _aware(rows[0]["latest"]) if rows else None

    def count(self, entity: Entity) -> int:
        rows = self._read(f"SELECT COUNT(*) AS n FROM {entity.value}")
        return int(rows[0]["n"] or 0)
