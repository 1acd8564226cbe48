"""Job table: every scheduled job with the dependencies it runs against.

All ingest jobs share one store and one dedup lock, so check-then-insert is
serialized across sources within the process.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from tickertape.config import Config
from tickertape.ingestion.dedup import DedupGate
from tickertape.ingestion.extractors import (
    KabutanDisclosureExtractor,
    KabutanNewsExtractor,
    RSSExtractor,
    TradersNewsExtractor,
)
from tickertape.ingestion.pipeline import IngestReport, run_ingest
from tickertape.notify.notifier import Notifier
from tickertape.refresh.refresher import Refresher
from tickertape.scheduling.scheduler import JobSpec
from tickertape.storage.base import ArticleStore
from tickertape.storage.models import Entity
from tickertape.summary.summarizer import SummaryJob

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: ArticleStore
    notifier: Notifier
    refresher: Refresher
    market_news: KabutanNewsExtractor
    disclosures: KabutanDisclosureExtractor
    traders: TradersNewsExtractor
    rss: Optional[RSSExtractor] = None
    summary_job: Optional[SummaryJob] = None
    max_disclosure_articles: int = 20
    max_traders_articles: int = 10
    dedup_lock: threading.Lock = field(default_factory=threading.Lock)

    def __post_init__(self):
        self.article_gate = DedupGate(self.store, Entity.ARTICLE, self.dedup_lock)
        self.traders_gate = DedupGate(self.store, Entity.TRADERS, self.dedup_lock)

    # -- handlers -----------------------------------------------------------

    def scrape_market_news(self) -> IngestReport:
        report = run_ingest(self.market_news, self.article_gate)
        self.notifier.notify_new(report.stored)
        return report

    def scrape_disclosures(self) -> IngestReport:
        report = run_ingest(self.disclosures, self.article_gate, max_new=self.max_disclosure_articles)
        self.notifier.notify_urgent(report.stored)
        return report

    def scrape_traders(self) -> IngestReport:
        report = run_ingest(self.traders, self.traders_gate, max_new=self.max_traders_articles)
        self.notifier.notify_traders(report.stored)
        return report

    def scrape_rss(self) -> Optional[IngestReport]:
        if self.rss is None:
            return None
        report = run_ingest(self.rss, self.article_gate)
        self.notifier.notify_new(report.stored)
        return report

    def post_digest(self) -> bool:
        return self.notifier.send_digest(page=1)

    def refresh_bodies(self):
        return self.refresher.run_once()

    def summarize(self) -> int:
        if self.summary_job is None:
            return 0
        return self.summary_job.run_once()


def build_job_specs(services: Services, config: Config) -> List[JobSpec]:
    overlap = config.allow_overlapping_jobs
    specs = [
        JobSpec("market_news", config.scrape_schedule, services.scrape_market_news, overlap),
        JobSpec("disclosures", config.disclosure_schedule, services.scrape_disclosures, overlap),
        JobSpec("traders", config.traders_schedule, services.scrape_traders, overlap),
        JobSpec("hourly_digest", config.digest_schedule, services.post_digest, overlap),
        JobSpec("refresh", config.refresh_schedule, services.refresh_bodies, overlap),
    ]
    if services.rss is not None:
        specs.append(JobSpec("rss", config.rss_schedule, services.scrape_rss, overlap))
    if services.summary_job is not None and config.summary_schedule:
        specs.append(JobSpec("summary", config.summary_schedule, services.summarize, overlap))
    return specs
