#!/usr/bin/env python3
"""
Configuration management for Feed Ingest.

This module centralizes configuration loading, validation, and logging setup.
Values come from the process environment, an optional .env file, an optional
YAML secrets file and the feeds.yaml warm-up list.
"""

from os import environ, path, access, R_OK
from typing import Dict, Any, List, Optional
from logging import getLogger, basicConfig, StreamHandler, INFO, DEBUG, WARNING, ERROR
from urllib.parse import urlparse
import sys
import yaml
from dotenv import load_dotenv

def _setup_global_logger():
    """Setup a single global logger for the entire application.

    Environment Variables:
        LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR) - defaults to INFO
        LOG_TIMESTAMPS: Enable/disable timestamps in logs (true/false) - defaults to true

    All modules should use get_logger() to create module-specific loggers that inherit this configuration.
    """
    level_str = environ.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": DEBUG,
        "INFO": INFO,
        "WARNING": WARNING,
        "ERROR": ERROR
    }
    level = level_map.get(level_str, INFO)

    show_timestamps = environ.get("LOG_TIMESTAMPS", "true").lower() != "false"
    if show_timestamps:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        log_format = '%(name)s - %(levelname)s - %(message)s'

    basicConfig(
        level=level,
        format=log_format,
        handlers=[StreamHandler(sys.stdout)],
        force=True
    )

    # aiohttp access chatter is not useful at INFO
    getLogger("aiohttp").setLevel(max(level, WARNING))

    return getLogger("FeedIngest")

def get_logger(name: str):
    """Get a module-specific logger with the unified configuration.

    Args:
        name: The logger name (e.g., "fetcher", "parser", "service")

    Returns:
        A logger named "FeedIngest.{name}"
    """
    return getLogger(f"FeedIngest.{name}")

logger = _setup_global_logger()

class Config:
    """Configuration manager for Feed Ingest.

    Loading order:
    1. Environment variables
    2. .env file (if present)
    3. YAML secrets file (if SECRETS_FILE environment variable is set)
    4. feeds.yaml (warm-up URLs and proxy section)

    Example feeds.yaml:
    ```yaml
    proxy:
      url: "http://proxy.internal:3128"
    warmup:
      urls:
        - "https://hnrss.org/frontpage"
        - "feeds.bbci.co.uk/news/rss.xml"
    ```
    """

    def __init__(self):
        """Initialize configuration with environment variables and validation."""
        self._load_environment()
        self._validate_and_set_config()
        self._load_feed_sources()

    def _load_environment(self):
        """Load environment variables from .env file and secrets file if present."""
        dotenv_path = path.join(path.dirname(path.abspath(__file__)), '.env')
        if path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            logger.info(f"Loaded environment variables from {dotenv_path}")

        self._load_secrets_file()

    def _validate_positive_int(self, env_var: str, default: int, min_val: int = 1) -> int:
        """Validate and parse a positive integer environment variable."""
        try:
            value = int(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_positive_float(self, env_var: str, default: float, min_val: float = 0.1) -> float:
        """Validate and parse a positive float environment variable."""
        try:
            value = float(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_and_set_config(self):
        """Validate and set all configuration values."""
        # Cache
        self.CACHE_TTL_HOURS = self._validate_positive_float("CACHE_TTL_HOURS", 6.0, 0.01)

        # HTTP request configuration (applies to each attempt separately)
        self.HTTP_TIMEOUT = self._validate_positive_float("HTTP_TIMEOUT", 10.0, 1.0)

        # Warm-up job
        self.WARMUP_INTERVAL_MINUTES = self._validate_positive_int("WARMUP_INTERVAL_MINUTES", 60, 1)
        self.WARMUP_CONCURRENCY = self._validate_positive_int("WARMUP_CONCURRENCY", 1, 1)
        self.WARMUP_RUN_IMMEDIATELY = environ.get("WARMUP_RUN_IMMEDIATELY", "true").lower() != "false"

        # Proxy from the environment wins over feeds.yaml
        env_proxy = (environ.get("PROXY_URL") or "").strip()
        self._env_proxy_url = env_proxy or None

        base_dir = path.dirname(path.abspath(__file__))
        self.FEEDS_CONFIG_PATH = environ.get("FEEDS_CONFIG_PATH", path.join(base_dir, "feeds.yaml"))

    @property
    def CACHE_TTL_SECONDS(self) -> float:
        return self.CACHE_TTL_HOURS * 3600

    def _load_secrets_file(self):
        """Load environment variable overrides from a YAML secrets file.

        If SECRETS_FILE is set, the file is read and each top-level key (or each
        key under an `environment` mapping) is exported as an environment variable.
        """
        secrets_file_path = environ.get("SECRETS_FILE")
        if not secrets_file_path:
            return

        secrets_config = self._safe_read_yaml(secrets_file_path, 2 * 1024 * 1024, 'secrets')
        if not secrets_config:
            return
        if not isinstance(secrets_config, dict):
            logger.warning(f"Secrets file {secrets_file_path} must be a YAML mapping at the top level")
            return

        env_vars = secrets_config.get('environment') if isinstance(secrets_config.get('environment'), dict) else secrets_config

        secrets_loaded = 0
        for key, value in env_vars.items():
            if isinstance(key, str) and value is not None:
                environ[key] = str(value)
                secrets_loaded += 1
            else:
                logger.warning(f"Skipping invalid environment variable in secrets file: {key}")
        logger.info(f"Loaded {secrets_loaded} environment variables from secrets file {secrets_file_path}")

    def _safe_read_yaml(self, file_path: str, max_size: int, kind: str) -> Any | None:
        """Safely read a YAML file with consistent validation.

        Returns:
            Parsed YAML (mapping/list/primitive) or None on failure.
        """
        try:
            if not path.isfile(file_path):
                logger.warning(f"{kind.capitalize()} file not found at {file_path}")
                return None
            if not access(file_path, R_OK):
                logger.error(f"No read permission for {kind} file at {file_path}")
                return None
            size = path.getsize(file_path)
            if size > max_size:
                logger.error(f"{kind.capitalize()} file too large: {size} bytes (limit: {max_size} bytes)")
                return None
            with open(file_path, 'r') as f:
                data = yaml.safe_load(f)
            if not data:
                logger.warning(f"Empty or invalid YAML in {kind} file {file_path}")
                return None
            return data
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML in {kind} file {file_path}: {e}")
        except OSError as e:
            logger.error(f"Error loading {kind} file {file_path}: {e}")
        return None

    def _load_feed_sources(self) -> None:
        """Populate WARMUP_URLS and the feeds.yaml proxy from the feeds file.

        Accepts either a `warmup.urls` list or a `feeds` mapping of slug -> {url: ...}.
        Any failure results in an empty warm-up list.
        """
        feeds_path = self.FEEDS_CONFIG_PATH
        self._file_proxy_url = None
        self.WARMUP_URLS = []
        config_data = self._safe_read_yaml(feeds_path, 5 * 1024 * 1024, 'feeds')
        if not isinstance(config_data, dict):
            return

        proxy_section = config_data.get('proxy')
        if isinstance(proxy_section, dict):
            proxy_url_value = proxy_section.get('url')
            if isinstance(proxy_url_value, str) and proxy_url_value.strip():
                self._file_proxy_url = proxy_url_value.strip()
                logger.info("Configured HTTP proxy for feed fetching via feeds.yaml")
            elif proxy_url_value is not None:
                logger.warning(f"Invalid proxy.url entry in {feeds_path}; ignoring proxy configuration")
        elif proxy_section not in (None, False):
            logger.warning(f"Proxy configuration in {feeds_path} must be a mapping with a url field")

        urls: List[str] = []
        warmup_section = config_data.get('warmup')
        if isinstance(warmup_section, dict) and isinstance(warmup_section.get('urls'), list):
            for value in warmup_section['urls']:
                if isinstance(value, str) and value.strip():
                    urls.append(value.strip())
                else:
                    logger.warning(f"Skipping invalid warm-up URL entry: {value!r}")

        feeds_section = config_data.get('feeds')
        if isinstance(feeds_section, dict):
            for feed_slug, feed_cfg in feeds_section.items():
                if isinstance(feed_cfg, dict) and isinstance(feed_cfg.get('url'), str):
                    urls.append(feed_cfg['url'].strip())
                else:
                    logger.warning(f"Skipping invalid feed configuration for '{feed_slug}': {feed_cfg}")

        # Preserve order, drop duplicates
        self.WARMUP_URLS = list(dict.fromkeys(u for u in urls if u))
        logger.info(f"Loaded {len(self.WARMUP_URLS)} warm-up URLs from {feeds_path}")

    def get_proxy_url(self) -> Optional[str]:
        """Return the proxy URL for the fallback attempt, or None when unavailable.

        A malformed proxy URL is logged and treated as "no proxy".
        """
        candidate = self._env_proxy_url or self._file_proxy_url
        if not candidate:
            return None
        try:
            parsed = urlparse(candidate)
        except ValueError:
            parsed = None
        if not parsed or not parsed.scheme or not parsed.hostname:
            logger.warning("Ignoring invalid proxy URL configuration")
            return None
        return candidate

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging."""
        return {
            "cache_ttl_hours": self.CACHE_TTL_HOURS,
            "http_timeout": self.HTTP_TIMEOUT,
            "warmup_interval_minutes": self.WARMUP_INTERVAL_MINUTES,
            "warmup_concurrency": self.WARMUP_CONCURRENCY,
            "warmup_url_count": len(self.WARMUP_URLS),
            "proxy_configured": self.get_proxy_url() is not None,
            "secrets_file_configured": bool(environ.get("SECRETS_FILE")),
        }

# Global configuration instance
config = Config()
