"""
Environment configuration for the crawl engine.

Reads settings from the process environment (and a local .env file) once at
startup. Sources, selectors and schedules live in the YAML file pointed to by
SOURCES_CONFIG_PATH.
"""
import os
from dataclasses import dataclass
from typing import List, Optional

import pytz
from dotenv import load_dotenv
from loguru import logger

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_SOURCES_CONFIG = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'config', 'sources.yaml'
)


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class CrawlerSettings:
    """Process-wide crawler configuration."""
    pool_max_sessions: int = 5
    session_reset_timeout_seconds: float = 10.0
    session_max_usage: int = 50
    browser_headless: bool = True
    browser_javascript_enabled: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    scheduler_tick_seconds: float = 60.0
    scheduler_timezone: str = "UTC"
    sources_config_path: str = DEFAULT_SOURCES_CONFIG
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    metrics_dir: Optional[str] = None

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> 'CrawlerSettings':
        """Build settings from environment variables, loading .env first."""
        if load_env_file:
            load_dotenv()

        settings = cls(
            pool_max_sessions=int(os.getenv("POOL_MAX_SESSIONS", "5")),
            session_reset_timeout_seconds=float(os.getenv("SESSION_RESET_TIMEOUT_SECONDS", "10")),
            session_max_usage=int(os.getenv("SESSION_MAX_USAGE", "50")),
            browser_headless=_env_bool("BROWSER_HEADLESS", True),
            browser_javascript_enabled=_env_bool("BROWSER_JAVASCRIPT_ENABLED", True),
            user_agent=os.getenv("CRAWLER_USER_AGENT", DEFAULT_USER_AGENT),
            scheduler_tick_seconds=float(os.getenv("SCHEDULER_TICK_SECONDS", "60")),
            scheduler_timezone=os.getenv("SCHEDULER_TIMEZONE", "UTC"),
            sources_config_path=os.getenv("SOURCES_CONFIG_PATH", DEFAULT_SOURCES_CONFIG),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_dir=os.getenv("LOG_DIR") or None,
            metrics_dir=os.getenv("METRICS_DIR") or None,
        )

        errors = settings.validate()
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return settings

    def validate(self) -> List[str]:
        """Validate configuration and return errors."""
        errors = []

        if self.pool_max_sessions <= 0:
            errors.append("POOL_MAX_SESSIONS must be positive")

        if self.session_reset_timeout_seconds <= 0:
            errors.append("SESSION_RESET_TIMEOUT_SECONDS must be positive")

        if self.session_max_usage <= 0:
            errors.append("SESSION_MAX_USAGE must be positive")

        if self.scheduler_tick_seconds <= 0:
            errors.append("SCHEDULER_TICK_SECONDS must be positive")

        if self.scheduler_timezone not in pytz.all_timezones_set:
            errors.append(f"Unknown SCHEDULER_TIMEZONE: {self.scheduler_timezone}")

        return errors

    @property
    def timezone(self):
        try:
            return pytz.timezone(self.scheduler_timezone)
        except pytz.UnknownTimeZoneError:
            return pytz.utc
