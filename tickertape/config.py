"""Runtime configuration loaded from environment variables (and .env)."""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from tickertape.errors import ScheduleError
from tickertape.scheduling.scheduler import parse_schedule

logger = logging.getLogger(__name__)


def env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_feeds(raw: str) -> List[Tuple[str, str, str]]:
    """`name|url|category;name|url|category` -> [(name, url, category)]"""
    feeds = []
    for chunk in (raw or '').split(';'):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = [p.strip() for p in chunk.split('|')]
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"RSS_FEEDS entry {chunk!r} must look like name|url|category")
        feeds.append((parts[0], parts[1], parts[2]))
    return feeds


@dataclass
class Config:
    """Configuration with validation"""
    discord_bot_token: str
    discord_alert_channel: str

    discord_urgent_channel: str = ""
    discord_public_key: str = ""
    discord_api_base: str = "https://discord.com/api/v10"

    # Interaction endpoint (digest page navigation)
    interactions_enabled: bool = False
    interactions_host: str = "0.0.0.0"
    interactions_port: int = 8080

    # Storage
    db_path: str = "articles.db"
    pg_dsn: str = ""

    # Schedules
    scrape_schedule: str = "*/5 * * * *"
    disclosure_schedule: str = "*/1 * * * *"
    traders_schedule: str = "*/2 * * * *"
    digest_schedule: str = "0 * * * *"
    refresh_schedule: str = "*/30 * * * *"
    summary_schedule: str = ""
    rss_schedule: str = "*/15 * * * *"
    schedule_timezone: str = "Asia/Tokyo"

    # Sources
    kabutan_filter: str = ""
    kabutan_ir_filter: str = ""
    traders_filter: str = ""
    max_disclosure_articles: int = 20
    max_traders_articles: int = 10
    rss_feeds: List[Tuple[str, str, str]] = field(default_factory=list)

    request_timeout: int = 15

    # Refresher
    refresh_stale_hours: int = 24
    refresh_max_retries: int = 3
    refresh_batch: int = 50
    refresh_count_unchanged: bool = False

    # AI summarization
    ai_api_key: str = ""
    ai_endpoint: str = ""
    ai_model: str = ""
    ai_timeout_ms: int = 30000
    ai_temperature: float = 0.7
    ai_max_tokens: int = 500

    # Runtime
    allow_overlapping_jobs: bool = True
    shutdown_drain: bool = False
    heartbeat_minutes: int = 5
    scheduler_workers: int = 8
    lock_file: str = "tickertape.lock"

    @property
    def urgent_channel(self) -> str:
        return self.discord_urgent_channel or self.discord_alert_channel

    @property
    def summary_enabled(self) -> bool:
        return bool(self.summary_schedule and self.ai_api_key and self.ai_model)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> 'Config':
        """Load and validate configuration from environment variables"""
        load_dotenv(dotenv_path)
        config = cls(
            discord_bot_token=os.getenv('DISCORD_BOT_TOKEN', ''),
            discord_alert_channel=os.getenv('DISCORD_ALERT_CHANNEL', ''),
            discord_urgent_channel=os.getenv('DISCORD_URGENT_CHANNEL', ''),
            discord_public_key=os.getenv('DISCORD_PUBLIC_KEY', ''),
            discord_api_base=os.getenv('DISCORD_API_BASE', 'https://discord.com/api/v10').rstrip('/'),

            interactions_enabled=env_bool('INTERACTIONS_ENABLED'),
            interactions_host=os.getenv('INTERACTIONS_HOST', '0.0.0.0'),
            interactions_port=int(os.getenv('INTERACTIONS_PORT', '8080')),

            db_path=os.getenv('DB_PATH', 'articles.db'),
            pg_dsn=os.getenv('PG_DSN', ''),

            scrape_schedule=os.getenv('SCRAPE_SCHEDULE', '*/5 * * * *'),
            disclosure_schedule=os.getenv('DISCLOSURE_SCHEDULE', '*/1 * * * *'),
            traders_schedule=os.getenv('TRADERS_SCHEDULE', '*/2 * * * *'),
            digest_schedule=os.getenv('DIGEST_SCHEDULE', '0 * * * *'),
            refresh_schedule=os.getenv('REFRESH_SCHEDULE', '*/30 * * * *'),
            summary_schedule=os.getenv('SUMMARY_SCHEDULE', ''),
            rss_schedule=os.getenv('RSS_SCHEDULE', '*/15 * * * *'),
            schedule_timezone=os.getenv('SCHEDULE_TIMEZONE', 'Asia/Tokyo'),

            kabutan_filter=os.getenv('KABUTAN_FILTER', ''),
            kabutan_ir_filter=os.getenv('KABUTAN_IR_FILTER', ''),
            traders_filter=os.getenv('TRADERS_FILTER', ''),
            max_disclosure_articles=int(os.getenv('MAX_DISCLOSURE_ARTICLES', '20')),
            max_traders_articles=int(os.getenv('MAX_TRADERS_ARTICLES', '10')),
            rss_feeds=parse_feeds(os.getenv('RSS_FEEDS', '')),

            request_timeout=int(os.getenv('REQUEST_TIMEOUT', '15')),

            refresh_stale_hours=int(os.getenv('REFRESH_STALE_HOURS', '24')),
            refresh_max_retries=int(os.getenv('REFRESH_MAX_RETRIES', '3')),
            refresh_batch=int(os.getenv('REFRESH_BATCH', '50')),
            refresh_count_unchanged=env_bool('REFRESH_COUNT_UNCHANGED'),

            ai_api_key=os.getenv('AI_API_KEY', ''),
            ai_endpoint=os.getenv('AI_ENDPOINT', ''),
            ai_model=os.getenv('AI_MODEL', ''),
            ai_timeout_ms=int(os.getenv('AI_TIMEOUT_MS', '30000')),
            ai_temperature=float(os.getenv('AI_TEMPERATURE', '0.7')),
            ai_max_tokens=int(os.getenv('AI_MAX_TOKENS', '500')),

            allow_overlapping_jobs=env_bool('ALLOW_OVERLAPPING_JOBS', 'true'),
            shutdown_drain=env_bool('SHUTDOWN_DRAIN'),
            heartbeat_minutes=int(os.getenv('HEARTBEAT_MINUTES', '5')),
            scheduler_workers=int(os.getenv('SCHEDULER_WORKERS', '8')),
            lock_file=os.getenv('LOCK_FILE', 'tickertape.lock'),
        )

        config._validate()
        return config

    def _validate(self):
        """Validate configuration values"""
        errors = []

        if not self.discord_bot_token:
            errors.append("DISCORD_BOT_TOKEN is required")

        if not self.discord_alert_channel:
            errors.append("DISCORD_ALERT_CHANNEL is required")
        elif not self.discord_alert_channel.isdigit():
            errors.append("DISCORD_ALERT_CHANNEL must be a numeric channel id")

        if self.discord_urgent_channel and not self.discord_urgent_channel.isdigit():
            errors.append("DISCORD_URGENT_CHANNEL must be a numeric channel id")

        if self.interactions_enabled and not self.discord_public_key:
            errors.append("INTERACTIONS_ENABLED requires DISCORD_PUBLIC_KEY")

        schedules = {
            'SCRAPE_SCHEDULE': self.scrape_schedule,
            'DISCLOSURE_SCHEDULE': self.disclosure_schedule,
            'TRADERS_SCHEDULE': self.traders_schedule,
            'DIGEST_SCHEDULE': self.digest_schedule,
            'REFRESH_SCHEDULE': self.refresh_schedule,
            'RSS_SCHEDULE': self.rss_schedule,
        }
        if self.summary_schedule:
            schedules['SUMMARY_SCHEDULE'] = self.summary_schedule
        for name, expr in schedules.items():
            try:
                parse_schedule(expr, self.schedule_timezone)
            except ScheduleError as e:
                errors.append(f"{name}: {e}")

        if self.summary_schedule and not (self.ai_api_key and self.ai_model):
            errors.append("SUMMARY_SCHEDULE requires AI_API_KEY and AI_MODEL")

        if self.request_timeout < 1 or self.request_timeout > 300:
            errors.append("REQUEST_TIMEOUT should be between 1 and 300 seconds")

        if self.refresh_max_retries < 1:
            errors.append("REFRESH_MAX_RETRIES must be at least 1")

        if self.refresh_stale_hours < 1:
            errors.append("REFRESH_STALE_HOURS must be at least 1")

        if self.max_disclosure_articles < 1 or self.max_traders_articles < 1:
            errors.append("MAX_DISCLOSURE_ARTICLES and MAX_TRADERS_ARTICLES must be positive")

        if self.heartbeat_minutes < 1:
            errors.append("HEARTBEAT_MINUTES must be at least 1")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ValueError(error_msg)

        logger.info(f"Configuration validated successfully. Storage: {'postgres' if self.pg_dsn else self.db_path}")
