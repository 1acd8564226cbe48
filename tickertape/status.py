"""Host stats for the heartbeat log line."""

import logging
import socket
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import psutil

from tickertape.errors import DatabaseError
from tickertape.storage.base import ArticleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SystemStats:
    hostname: str
    memory_percent: float
    cpu_percent: float
    latest_news_time: Optional[datetime] = None

    def status_text(self) -> str:
        latest = self.latest_news_time.isoformat() if self.latest_news_time else "unknown"
        return (
            f"Mem:{self.memory_percent:.1f}% | CPU:{self.cpu_percent:.1f}% | "
            f"{self.hostname} | latest article: {latest}"
        )


def fetch_system_stats(store: Optional[ArticleStore] = None) -> SystemStats:
    latest = None
    if store is not None:
        try:
            latest = store.latest_published_at()
        except DatabaseError as e:
            logger.warning(f"Could not read latest article time: {e}")
    return SystemStats(
        hostname=socket.gethostname(),
        memory_percent=psutil.virtual_memory().percent,
        # Non-blocking CPU check (interval=0)
        cpu_percent=psutil.cpu_percent(interval=0),
        latest_news_time=latest,
    )


def log_heartbeat(store: Optional[ArticleStore] = None) -> SystemStats:
    stats = fetch_system_stats(store)
    logger.info(f"Heartbeat: alive | {stats.status_text()}")
    return stats


def run_heartbeat(store: Optional[ArticleStore] = None) -> Optional[SystemStats]:
    """Heartbeat entry point for the keep-alive loop; never raises."""
    try:
        return log_heartbeat(store)
    except Exception:
        logger.exception("Heartbeat failed")
        return None
