#!/usr/bin/env python3
"""
newsharvest: a self-refreshing personal news aggregator.
Harvests title + link pairs from configured pages on a schedule, keeps them in
SQLite and serves substring search over them at /news.
"""

import json
import logging
import os
import signal
import sys
import threading
import webbrowser
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from database import DatabaseError, NewsDatabase
from newsharvest.extraction.page_extract import PageFetcher
from newsharvest.ingestion.rules import ConfigError, SourceRule, load_rules
from newsharvest.query.news_search import NewsQueryService
from newsharvest.scheduling.updaters import UpdaterGroup
from web_app import create_app

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Config:
    """Process configuration with validation"""
    rules_path: str = "rules.json"
    db_path: str = "news.db"
    host: str = "0.0.0.0"
    port: int = 8383

    # Fetch settings
    fetch_timeout: float = 30.0
    fetch_max_bytes: int = 5_000_000
    fetch_retries: int = 3

    # Scheduler settings
    poll_seconds: float = 5.0

    # Web settings
    public_dir: str = "public"
    cors_origins: List[str] = field(default_factory=list)
    open_browser: bool = False

    # Logging
    log_file: str = "newsharvest.log"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> 'Config':
        """Load and validate configuration from environment variables"""
        errors = []

        def number(name: str, default: str, cast):
            raw = os.getenv(name, default)
            try:
                return cast(raw)
            except ValueError:
                errors.append(f"{name} must be a number, got {raw!r}")
                return cast(default)

        config = cls(
            rules_path=os.getenv('RULES_PATH', 'rules.json'),
            db_path=os.getenv('DB_PATH', 'news.db'),
            host=os.getenv('HOST', '0.0.0.0'),
            port=number('PORT', '8383', int),
            fetch_timeout=number('FETCH_TIMEOUT', '30', float),
            fetch_max_bytes=number('FETCH_MAX_BYTES', '5000000', int),
            fetch_retries=number('FETCH_RETRIES', '3', int),
            poll_seconds=number('POLL_SECONDS', '5', float),
            public_dir=os.getenv('PUBLIC_DIR', 'public'),
            cors_origins=[o.strip() for o in os.getenv('CORS_ORIGINS', '').split(',') if o.strip()],
            open_browser=_env_bool('OPEN_BROWSER'),
            log_file=os.getenv('LOG_FILE', 'newsharvest.log'),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )
        config._validate(errors)
        return config

    def _validate(self, errors: Optional[List[str]] = None):
        """Validate configuration values"""
        errors = list(errors or [])

        if not self.rules_path:
            errors.append("RULES_PATH is required")
        if not self.db_path:
            errors.append("DB_PATH is required")
        if not 0 < self.port < 65536:
            errors.append("PORT should be between 1 and 65535")
        if self.fetch_timeout <= 0 or self.fetch_timeout > 300:
            errors.append("FETCH_TIMEOUT should be between 0 and 300 seconds")
        if self.fetch_max_bytes <= 0:
            errors.append("FETCH_MAX_BYTES must be positive")
        if self.fetch_retries < 1:
            errors.append("FETCH_RETRIES must be at least 1")
        if self.poll_seconds <= 0:
            errors.append("POLL_SECONDS must be positive")
        if self.log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            errors.append(f"LOG_LEVEL {self.log_level!r} is not a logging level")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ConfigError(error_msg)


def configure_logging(config: Config) -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT, handlers=handlers, force=True)


class NewsApp:
    """Everything the process owns, built once and handed to each component"""

    def __init__(self, config: Config, rules: List[SourceRule]):
        self.config = config
        self.rules = rules
        self.store = NewsDatabase(config.db_path)
        self.fetcher = PageFetcher(
            timeout=config.fetch_timeout,
            max_bytes=config.fetch_max_bytes,
            attempts=config.fetch_retries,
        )
        self.query_service = NewsQueryService(self.store)
        self.updaters = UpdaterGroup(
            rules,
            fetcher=self.fetcher,
            store=self.store,
            poll_seconds=config.poll_seconds,
        )
        self.web = create_app(
            self.query_service,
            public_dir=config.public_dir,
            cors_origins=config.cors_origins,
            rule_count=len(rules),
        )

    @classmethod
    def from_config(cls, config: Config) -> 'NewsApp':
        rules = load_rules(config.rules_path)
        logger.info(f"parsing rules: {json.dumps([r.to_dict() for r in rules], indent=2)}")
        return cls(config, rules)

    def start_updaters(self) -> None:
        self.updaters.start()

    def shutdown(self, timeout: float = 10.0) -> None:
        self.updaters.stop(timeout)

    def run_browser(self) -> None:
        url = f"http://localhost:{self.config.port}"
        try:
            if not webbrowser.open(url):
                logger.warning(f"Unable to run browser for {url}")
        except webbrowser.Error as e:
            logger.warning(f"Unable to run browser: {e}")

    def serve(self) -> None:
        self.web.run(host=self.config.host, port=self.config.port, threaded=True)


def main():
    load_dotenv()
    try:
        config = Config.from_env()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error(f"Configuration error:\n{e}")
        sys.exit(1)

    configure_logging(config)
    logger.info("🌍 Starting newsharvest...")

    try:
        app = NewsApp.from_config(config)
    except ConfigError as e:
        logger.error(f"Rule configuration error: {e}")
        sys.exit(1)
    except DatabaseError as e:
        logger.error(f"Failed to open news store {config.db_path}: {e}")
        sys.exit(1)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        app.shutdown(timeout=2.0)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    app.start_updaters()
    if config.open_browser:
        threading.Timer(2.0, app.run_browser).start()

    logger.info(f"🌐 Search endpoint: http://localhost:{config.port}/news?q=")
    try:
        app.serve()
    finally:
        app.shutdown(timeout=2.0)
        logger.info("👋 Graceful shutdown completed")


if __name__ == "__main__":
    main()
