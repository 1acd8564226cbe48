"""Persisted entity types.

Both entities share the same identity discipline: canonical URL and identity
hash are each unique across their table.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Entity(Enum):
    """Article-like tables; the value is the table name."""

    ARTICLE = "articles"
    TRADERS = "traders_articles"


@dataclass(frozen=True)
class Article:
    id: int
    site: str
    title: str
    url: str
    hash: str
    content: str
    body: str
    summary: Optional[str]
    category: str
    published_at: datetime
    created_at: datetime
    updated_at: datetime
    last_scraped_at: Optional[datetime]
    retry_count: int = 0


@dataclass(frozen=True)
class TradersArticle:
    """Narrower secondary entity: no body, no summary, no refresh bookkeeping."""

    id: int
    title: str
    url: str
    hash: str
    category: str
    published_at: datetime
    created_at: datetime
