#!/usr/bin/env python3
"""One-shot body refresh.

Runs a single refresh pass against the configured store and exits, for cron
or manual backfills outside the daemon.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import timedelta

from dotenv import load_dotenv

from tickertape.config import env_bool
from tickertape.refresh.refresher import Refresher
from tickertape.storage.postgres_store import PostgresArticleStore
from tickertape.storage.sqlite_store import SQLiteArticleStore


def main() -> int:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    pg_dsn = os.environ.get("PG_DSN", "")
    store = PostgresArticleStore(pg_dsn) if pg_dsn else SQLiteArticleStore(os.environ.get("DB_PATH", "articles.db"))

    refresher = Refresher(
        store,
        stale_after=timedelta(hours=int(os.environ.get("REFRESH_STALE_HOURS", "24"))),
        max_retries=int(os.environ.get("REFRESH_MAX_RETRIES", "3")),
        batch_size=int(os.environ.get("REFRESH_BATCH", "50")),
        count_unchanged=env_bool("REFRESH_COUNT_UNCHANGED"),
        timeout=float(os.environ.get("REQUEST_TIMEOUT", "15")),
    )
    report = refresher.run_once()
    print(f"[refresh] {report.summary()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
