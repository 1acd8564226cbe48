"""Shared ingestion data types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from tickertape.errors import ValidationError
from tickertape.ingestion.url_utils import identity_hash, normalize_url


@dataclass(frozen=True)
class RawListing:
    """One row as scraped from a listing page, before any validation.

    Every field a source may fail to provide is optional here; build_candidate
    decides whether the row is usable.
    """

    source: str
    date: Optional[str] = None
    category: Optional[str] = None
    title: Optional[str] = None
    url: Optional[str] = None
    stock_code: Optional[str] = None
    is_urgent: bool = False
    body: Optional[str] = None


@dataclass(frozen=True)
class CandidateRecord:
    """Validated, normalized candidate. Lives for one extraction pass only."""

    source: str
    raw_date: str
    published_at: datetime
    category: str
    title: str
    raw_url: str
    canonical_url: str
    identity_hash: str
    stock_code: Optional[str] = None
    is_urgent: bool = False
    body: Optional[str] = None


DateParser = Callable[[str], datetime]

REQUIRED_FIELDS = ("date", "category", "title", "url")


def build_candidate(listing: RawListing, parse_date: DateParser) -> CandidateRecord:
    """Validate a RawListing into a CandidateRecord.

    Raises ValidationError for missing/unparseable fields and FormatError
    (from normalize_url) when the link is not a usable URL.
    """
    missing = [f for f in REQUIRED_FIELDS if not (getattr(listing, f) or "").strip()]
    if missing:
        raise ValidationError(f"missing required fields: {', '.join(missing)}")

    raw_date = listing.date.strip()
    try:
        published_at = parse_date(raw_date)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"unparseable date {raw_date!r}: {e}") from e

    title = listing.title.strip()
    raw_url = listing.url.strip()
    canonical = normalize_url(raw_url)

    return CandidateRecord(
        source=listing.source,
        raw_date=raw_date,
        published_at=published_at,
        category=listing.category.strip(),
        title=title,
        raw_url=raw_url,
        canonical_url=canonical,
        identity_hash=identity_hash(title, raw_url, canonical),
        stock_code=(listing.stock_code or "").strip() or None,
        is_urgent=bool(listing.is_urgent),
        body=listing.body,
    )
