#!/usr/bin/env python3
"""
SQLite article store.
Holds the article archive used for dedup, the hourly digest and body refresh.
"""

import sqlite3
import time
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from tickertape.errors import DatabaseError, DuplicateError, PersistenceWriteError
from tickertape.ingestion.article_types import CandidateRecord
from tickertape.storage.base import StoredRecord
from tickertape.storage.models import Article, Entity, TradersArticle

logger = logging.getLogger(__name__)

# Fixed-width UTC timestamps keep lexicographic order == chronological order.
TS_FORMAT = '%Y-%m-%dT%H:%M:%S.%f'

SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS articles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        site TEXT NOT NULL DEFAULT '',
        title TEXT NOT NULL,
        url TEXT NOT NULL UNIQUE,
        hash TEXT NOT NULL UNIQUE,
        content TEXT NOT NULL DEFAULT '',
        body TEXT NOT NULL DEFAULT '',
        summary TEXT,
        category TEXT NOT NULL DEFAULT '',
        published_at TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        last_scraped_at TEXT,
        retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS traders_articles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        url TEXT NOT NULL UNIQUE,
        hash TEXT NOT NULL UNIQUE,
        category TEXT NOT NULL DEFAULT '',
        published_at TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_articles_site ON articles(site)',
    'CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at)',
    'CREATE INDEX IF NOT EXISTS idx_articles_scraped ON articles(last_scraped_at, retry_count)',
    'CREATE INDEX IF NOT EXISTS idx_traders_published ON traders_articles(published_at)',
]


def _ts(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(TS_FORMAT)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, TS_FORMAT).replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteArticleStore:
    """Article archive backed by a single SQLite file"""

    def __init__(self, db_path: str = "articles.db"):
        self.db_path = db_path
        self.max_retries = 3
        self.retry_delay = 1.0
        self._ensure_db_directory()
        self.init_database()

    def _ensure_db_directory(self):
        """Ensure database directory exists"""
        db_dir = Path(self.db_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

    def init_database(self):
        """Create tables and indexes (idempotent)"""
        try:
            with self.get_connection() as conn:
                for statement in SCHEMA:
                    conn.execute(statement)
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(f"Schema setup failed for {self.db_path}: {e}") from e
        logger.info(f"Article store ready at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        for attempt in range(self.max_retries):
            try:
                conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute('PRAGMA journal_mode=WAL;')
                conn.execute('PRAGMA synchronous=NORMAL;')
                return conn
            except sqlite3.OperationalError as e:
                if "database is locked" in str(e) and attempt < self.max_retries - 1:
                    logger.warning(f"Database locked, retrying in {self.retry_delay}s (attempt {attempt + 1})")
                    time.sleep(self.retry_delay)
                    continue
                raise DatabaseError(f"Database connection failed: {e}") from e
        raise DatabaseError("Database connection failed")

    @contextmanager
    def get_connection(self):
        """Connection scoped to one unit of work"""
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    # -- rows ---------------------------------------------------------------

    def _row_to_article(self, row: sqlite3.Row) -> Article:
        return Article(
            id=int(row['id']),
            site=row['site'],
            title=row['title'],
            url=row['url'],
            hash=row['hash'],
            content=row['content'],
            body=row['body'],
            summary=row['summary'],
            category=row['category'],
            published_at=_parse_ts(row['published_at']),
            created_at=_parse_ts(row['created_at']),
            updated_at=_parse_ts(row['updated_at']),
            last_scraped_at=_parse_ts(row['last_scraped_at']),
            retry_count=int(row['retry_count']),
        )

    def _row_to_traders(self, row: sqlite3.Row) -> TradersArticle:
        return TradersArticle(
            id=int(row['id']),
            title=row['title'],
            url=row['url'],
            hash=row['hash'],
            category=row['category'],
            published_at=_parse_ts(row['published_at']),
            created_at=_parse_ts(row['created_at']),
        )

    def _to_record(self, entity: Entity, row: sqlite3.Row) -> StoredRecord:
        if entity is Entity.TRADERS:
            return self._row_to_traders(row)
        return self._row_to_article(row)

    # -- dedup + insert -----------------------------------------------------

    def find_existing(self, entity: Entity, url: str, hash_: str) -> Optional[StoredRecord]:
        """Return the row matching url OR hash, if any"""
        try:
            with self.get_connection() as conn:
                row = conn.execute(
                    f'SELECT * FROM {entity.value} WHERE url = ? OR hash = ? LIMIT 1',
                    (url, hash_),
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Lookup failed: {e}") from e
        return self._to_record(entity, row) if row else None

    def insert_candidate(self, entity: Entity, candidate: CandidateRecord) -> StoredRecord:
        """Insert a validated candidate; unique violations surface as DuplicateError"""
        now = _ts(_utcnow())
        if entity is Entity.TRADERS:
            sql = '''
                INSERT INTO traders_articles (title, url, hash, category, published_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            '''
            params = (
                candidate.title,
                candidate.canonical_url,
                candidate.identity_hash,
                candidate.category,
                _ts(candidate.published_at),
                now,
            )
        else:
            sql = '''
                INSERT INTO articles
                (site, title, url, hash, content, body, category, published_at,
                 created_at, updated_at, retry_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
            '''
            params = (
                candidate.source,
                candidate.title,
                candidate.canonical_url,
                candidate.identity_hash,
                f"Category: {candidate.category}",
                candidate.body or '',
                candidate.category,
                _ts(candidate.published_at),
                now,
                now,
            )

        try:
            with self.get_connection() as conn:
                cursor = conn.execute(sql, params)
                row_id = cursor.lastrowid
                conn.commit()
                row = conn.execute(f'SELECT * FROM {entity.value} WHERE id = ?', (row_id,)).fetchone()
        except sqlite3.IntegrityError as e:
            if 'UNIQUE' in str(e).upper():
                raise DuplicateError(f"{candidate.canonical_url} already stored") from e
            raise PersistenceWriteError(f"Insert failed: {e}") from e
        except sqlite3.Error as e:
            raise PersistenceWriteError(f"Insert failed: {e}") from e
        return self._to_record(entity, row)

    # -- queries ------------------------------------------------------------

    def _read(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            with self.get_connection() as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}") from e

    def get_article(self, article_id: int) -> Optional[Article]:
        rows = self._read('SELECT * FROM articles WHERE id = ?', (article_id,))
        return self._row_to_article(rows[0]) if rows else None

    def articles_published_since(self, since: datetime) -> List[Article]:
        """Articles with published_at >= since, newest first"""
        rows = self._read(
            'SELECT * FROM articles WHERE published_at >= ? ORDER BY published_at DESC, id DESC',
            (_ts(since),),
        )
        return [self._row_to_article(r) for r in rows]

    def refresh_candidates(self, stale_before: datetime, max_retries: int, limit: int = 50) -> List[Article]:
        """Stale (or never scraped) articles that still have refresh attempts left"""
        rows = self._read(
            '''
            SELECT * FROM articles
            WHERE (last_scraped_at IS NULL OR last_scraped_at < ?)
              AND retry_count < ?
            ORDER BY COALESCE(last_scraped_at, '') ASC, id ASC
            LIMIT ?
            ''',
            (_ts(stale_before), int(max_retries), int(limit)),
        )
        return [self._row_to_article(r) for r in rows]

    def record_refresh(
        self,
        article_id: int,
        *,
        max_retries: int,
        body: Optional[str] = None,
        scraped_at: Optional[datetime] = None,
    ) -> None:
        """Count one refresh attempt; retry_count never passes max_retries"""
        sets = ['retry_count = MIN(retry_count + 1, ?)', 'updated_at = ?']
        params: list = [int(max_retries), _ts(_utcnow())]
        if body is not None:
            sets.append('body = ?')
            params.append(body)
        if scraped_at is not None:
            sets.append('last_scraped_at = ?')
            params.append(_ts(scraped_at))
        params.append(article_id)
        try:
            with self.get_connection() as conn:
                conn.execute(f'UPDATE articles SET {", ".join(sets)} WHERE id = ?', params)
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceWriteError(f"Refresh update failed for article {article_id}: {e}") from e

    def articles_missing_summary(self, limit: int = 20) -> List[Article]:
        rows = self._read(
            '''
            SELECT * FROM articles
            WHERE (summary IS NULL OR summary = '') AND body != ''
            ORDER BY published_at DESC
            LIMIT ?
            ''',
            (int(limit),),
        )
        return [self._row_to_article(r) for r in rows]

    def set_summary(self, article_id: int, summary: str) -> bool:
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(
                    '''
                    UPDATE articles SET summary = ?, updated_at = ?
                    WHERE id = ? AND (summary IS NULL OR summary = '')
                    ''',
                    (summary, _ts(_utcnow()), article_id),
                )
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise PersistenceWriteError(f"Summary update failed for article {article_id}: {e}") from e

    def latest_published_at(self) -> Optional[datetime]:
        rows = self._read('SELECT MAX(published_at) AS latest FROM articles')
        return _parse_ts(rows[0]['latest']) if rows else None

    def count(self, entity: Entity) -> int:
        rows = self._read(f'SELECT COUNT(*) AS n FROM {entity.value}')
        return int(rows[0]['n'] or 0)
