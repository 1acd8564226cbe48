#!/usr/bin/env python3
"""
tickertape: market news → Discord
Scrapes listing pages on their own cadences, stores new articles once, and
posts them (plus an hourly digest) to Discord channels.
"""

import errno
import fcntl
import logging
import os
import signal
import sys
import threading
from datetime import timedelta

import schedule
from dotenv import load_dotenv

from tickertape.config import Config
from tickertape.errors import DatabaseError, NotificationDeliveryError
from tickertape.ingestion.extractors import (
    KabutanDisclosureExtractor,
    KabutanNewsExtractor,
    RSSExtractor,
    TradersNewsExtractor,
)
from tickertape.jobs import Services, build_job_specs
from tickertape.notify.digest import DigestPager
from tickertape.notify.discord import DiscordClient
from tickertape.notify.interactions import InteractionServer, create_app
from tickertape.notify.notifier import Notifier
from tickertape.refresh.refresher import Refresher
from tickertape.scheduling.scheduler import JobScheduler
from tickertape.status import run_heartbeat
from tickertape.storage.postgres_store import PostgresArticleStore
from tickertape.storage.sqlite_store import SQLiteArticleStore
from tickertape.summary.summarizer import Summarizer, SummaryJob

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    level=getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.getenv('LOG_FILE', 'tickertape.log')),
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


class ProcessLock:
    """Process lock to prevent two daemons from sharing one database"""

    def __init__(self, lock_file):
        self.lock_file = lock_file
        self.lock_file_handle = None

    def acquire(self):
        """Acquire a lock, return True if successful, False otherwise"""
        try:
            self.lock_file_handle = open(self.lock_file, 'a+')
            fcntl.flock(self.lock_file_handle, fcntl.LOCK_EX | fcntl.LOCK_NB)

            self.lock_file_handle.seek(0)
            self.lock_file_handle.truncate()
            self.lock_file_handle.write(str(os.getpid()))
            self.lock_file_handle.flush()

            logger.info(f"Process lock acquired (PID: {os.getpid()})")
            return True
        except OSError as e:
            if e.errno in (errno.EAGAIN, errno.EACCES):
                try:
                    with open(self.lock_file, 'r') as f:
                        pid = f.read().strip() or 'unknown PID'
                except OSError:
                    pid = 'unknown PID'
                logger.warning(f"Another process is already running ({pid})")
            else:
                logger.error(f"Failed to acquire process lock: {e}")

            if self.lock_file_handle:
                self.lock_file_handle.close()
                self.lock_file_handle = None
            return False

    def release(self):
        """Release the lock"""
        if self.lock_file_handle:
            try:
                fcntl.flock(self.lock_file_handle, fcntl.LOCK_UN)
                self.lock_file_handle.close()
                logger.info("Process lock released")
            except OSError as e:
                logger.error(f"Error releasing process lock: {e}")
            finally:
                self.lock_file_handle = None


def open_store(config: Config):
    if config.pg_dsn:
        return PostgresArticleStore(config.pg_dsn)
    return SQLiteArticleStore(config.db_path)


def build_services(config: Config, store, client: DiscordClient) -> Services:
    pager = DigestPager(store)
    notifier = Notifier(client, config.discord_alert_channel, config.urgent_channel, pager)
    refresher = Refresher(
        store,
        stale_after=timedelta(hours=config.refresh_stale_hours),
        max_retries=config.refresh_max_retries,
        batch_size=config.refresh_batch,
        count_unchanged=config.refresh_count_unchanged,
        timeout=config.request_timeout,
    )
    summary_job = None
    if config.summary_enabled:
        summarizer = Summarizer(
            config.ai_api_key,
            config.ai_model,
            endpoint=config.ai_endpoint,
            timeout_ms=config.ai_timeout_ms,
            temperature=config.ai_temperature,
            max_tokens=config.ai_max_tokens,
        )
        summary_job = SummaryJob(store, summarizer)

    timeout = config.request_timeout
    return Services(
        store=store,
        notifier=notifier,
        refresher=refresher,
        market_news=KabutanNewsExtractor(filter_param=config.kabutan_filter, timeout=timeout),
        disclosures=KabutanDisclosureExtractor(filter_param=config.kabutan_ir_filter, timeout=timeout),
        traders=TradersNewsExtractor(filter_param=config.traders_filter, timeout=timeout),
        rss=RSSExtractor(feeds=config.rss_feeds, timeout=timeout) if config.rss_feeds else None,
        summary_job=summary_job,
        max_disclosure_articles=config.max_disclosure_articles,
        max_traders_articles=config.max_traders_articles,
    )


def main():
    """Start the scheduler and keep the process alive until a shutdown signal"""
    try:
        config = Config.from_env()
    except ValueError as e:
        logger.error(f"Configuration error:\n{e}")
        sys.exit(1)

    logger.info("📈 Starting tickertape...")
    process_lock = ProcessLock(config.lock_file)
    if not process_lock.acquire():
        logger.error("Another instance is already running. Exiting.")
        sys.exit(1)

    stop = threading.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        stop.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler = None
    interactions = None
    try:
        try:
            store = open_store(config)
        except DatabaseError as e:
            logger.error(f"Cannot open article store: {e}")
            sys.exit(1)

        client = DiscordClient(config.discord_bot_token, config.discord_api_base, timeout=config.request_timeout)
        try:
            client.verify_session()
        except NotificationDeliveryError as e:
            logger.error(f"Cannot establish Discord session: {e}")
            sys.exit(1)

        services = build_services(config, store, client)

        scheduler = JobScheduler(max_workers=config.scheduler_workers, timezone=config.schedule_timezone)
        scheduler.register_all(build_job_specs(services, config))
        scheduler.start()

        if config.interactions_enabled:
            app = create_app(services.notifier.pager, config.discord_public_key)
            interactions = InteractionServer(app, config.interactions_host, config.interactions_port)
            interactions.start()

        schedule.every(config.heartbeat_minutes).minutes.do(run_heartbeat, store)
        run_heartbeat(store)

        logger.info("✅ tickertape started; press Ctrl+C to stop")
        while not stop.is_set():
            schedule.run_pending()
            stop.wait(1)

        logger.info("👋 Graceful shutdown completed")
    finally:
        if interactions is not None:
            interactions.stop()
        if scheduler is not None:
            scheduler.shutdown(drain=config.shutdown_drain)
        schedule.clear()
        process_lock.release()


if __name__ == "__main__":
    main()
