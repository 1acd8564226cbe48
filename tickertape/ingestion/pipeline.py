"""One extraction pass: listings -> candidates -> dedup gate.

Candidates are handled strictly in listing order. Only items the gate actually
stored are returned for notification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from tickertape.errors import DatabaseError, ExtractionError, FormatError, ValidationError
from tickertape.ingestion.article_types import CandidateRecord, build_candidate
from tickertape.ingestion.dedup import AdmitOutcome, DedupGate
from tickertape.ingestion.extractors import BaseExtractor
from tickertape.storage.base import StoredRecord

logger = logging.getLogger(__name__)


@dataclass
class IngestReport:
    source: str
    seen: int = 0
    invalid: int = 0
    duplicates: int = 0
    failed: int = 0
    aborted: bool = False
    stored: List[Tuple[CandidateRecord, StoredRecord]] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{self.source}: seen={self.seen} new={len(self.stored)} dup={self.duplicates} "
            f"invalid={self.invalid} failed={self.failed}{' (aborted)' if self.aborted else ''}"
        )


def run_ingest(extractor: BaseExtractor, gate: DedupGate, *, max_new: Optional[int] = None) -> IngestReport:
    """Run one pass of `extractor` through `gate`.

    `max_new` caps how many items may be stored in this pass; once reached the
    remaining listings are left for a later pass.
    """
    report = IngestReport(source=extractor.name)
    try:
        listings = extractor.fetch()
    except ExtractionError as e:
        logger.error(f"{extractor.name}: extraction failed: {e}")
        report.aborted = True
        return report

    for listing in listings:
        if max_new is not None and len(report.stored) >= max_new:
            logger.info(f"{extractor.name}: reached per-pass cap of {max_new} new items")
            break
        report.seen += 1
        try:
            candidate = build_candidate(listing, extractor.parse_date)
        except ValidationError as e:
            report.invalid += 1
            logger.debug(f"{extractor.name}: dropped listing: {e}")
            continue
        except FormatError as e:
            report.invalid += 1
            logger.warning(f"{extractor.name}: dropped listing with bad URL {listing.url!r}: {e}")
            continue

        try:
            result = gate.admit(candidate)
        except DatabaseError as e:
            # Lookup itself failed; the store is unavailable for this pass.
            logger.error(f"{extractor.name}: dedup lookup failed, aborting pass: {e}")
            report.failed += 1
            report.aborted = True
            break

        if result.outcome is AdmitOutcome.STORED:
            report.stored.append((candidate, result.record))
        elif result.outcome is AdmitOutcome.DUPLICATE:
            report.duplicates += 1
        else:
            report.failed += 1

    logger.info(report.summary())
    return report
