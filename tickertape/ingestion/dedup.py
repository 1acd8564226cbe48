"""New-vs-duplicate decision for validated candidates.

The shared lock serializes check-then-insert inside one process. The store's
unique constraints on url and hash remain the authoritative guard: a
constrained insert that loses a race is reported as a duplicate, never raised.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tickertape.errors import DuplicateError, PersistenceWriteError
from tickertape.ingestion.article_types import CandidateRecord
from tickertape.storage.base import ArticleStore, StoredRecord
from tickertape.storage.models import Entity

logger = logging.getLogger(__name__)


class AdmitOutcome(Enum):
    STORED = "stored"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True)
class AdmitResult:
    outcome: AdmitOutcome
    record: Optional[StoredRecord] = None

    @property
    def stored(self) -> bool:
        return self.outcome is AdmitOutcome.STORED


class DedupGate:
    def __init__(self, store: ArticleStore, entity: Entity = Entity.ARTICLE, lock: Optional[threading.Lock] = None):
        self.store = store
        self.entity = entity
        self.lock = lock or threading.Lock()

    def admit(self, candidate: CandidateRecord) -> AdmitResult:
        with self.lock:
            existing = self.store.find_existing(self.entity, candidate.canonical_url, candidate.identity_hash)
            if existing is not None:
                logger.debug(f"skip duplicate {candidate.canonical_url} (matches id={existing.id})")
                return AdmitResult(AdmitOutcome.DUPLICATE, existing)
            try:
                record = self.store.insert_candidate(self.entity, candidate)
            except DuplicateError:
                logger.debug(f"skip duplicate {candidate.canonical_url} (lost insert race)")
                return AdmitResult(AdmitOutcome.DUPLICATE)
            except PersistenceWriteError as e:
                logger.error(f"Failed to store {candidate.canonical_url}: {e}")
                return AdmitResult(AdmitOutcome.FAILED)
        logger.info(f"Stored {self.entity.value} id={record.id}: {candidate.title[:60]}")
        return AdmitResult(AdmitOutcome.STORED, record)
