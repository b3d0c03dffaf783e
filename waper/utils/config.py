"""
Configuration management for the waper crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional, get_origin
from dataclasses import dataclass, field, fields
from urllib.parse import urlparse


class ConfigError(Exception):
    """Raised when the crawl configuration is invalid."""
    pass


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_urls: List[str] = field(default_factory=list)
    max_concurrent_requests: int = 5
    request_timeout: float = 30
    user_agent: str = "waper/1.0"
    whitelist: List[str] = field(default_factory=lambda: [".*"])
    blacklist: List[str] = field(default_factory=list)
    include_db_links: bool = False


@dataclass
class DatabaseConfig:
    """Configuration for database storage."""
    type: str = "sqlite"
    sqlite: Dict[str, Any] = field(default_factory=lambda: {"path": "waper_out.sqlite"})
    file: Dict[str, Any] = field(default_factory=lambda: {"data_directory": "waper_data"})


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/waper.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000
    stats_interval: float = 30.0


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _has_type(value: Any, expected) -> bool:
    """Check a YAML value against a config field annotation."""
    if expected is bool:
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if expected is float:
        return isinstance(value, (int, float))
    if get_origin(expected) is list:
        return isinstance(value, list) and all(isinstance(item, str) for item in value)
    if get_origin(expected) is dict:
        return isinstance(value, dict)
    return isinstance(value, expected)


def _build_section(cls, data: Optional[Dict[str, Any]], name: str):
    """Build a config dataclass from a (possibly missing) YAML mapping."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {', '.join(sorted(unknown))}")

    for f in fields(cls):
        if f.name in data and not _has_type(data[f.name], f.type):
            raise ConfigError(f"Invalid value for '{name}.{f.name}': {data[f.name]!r}")
    return cls(**data)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file, or defaults when no file is given."""
        if self.config_path is None:
            self._config = Config()
            return self._config

        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as file:
                config_data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")

        if not isinstance(config_data, dict):
            raise ConfigError(f"Top level of {self.config_path} must be a mapping")

        self._config = Config(
            crawler=_build_section(CrawlerConfig, config_data.get('crawler'), 'crawler'),
            database=_build_section(DatabaseConfig, config_data.get('database'), 'database'),
            logging=_build_section(LoggingConfig, config_data.get('logging'), 'logging'),
            monitoring=_build_section(MonitoringConfig, config_data.get('monitoring'), 'monitoring'),
        )
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def validate_config(config: Config):
    """Validate configuration values."""
    crawler = config.crawler

    if not crawler.seed_urls and not crawler.include_db_links:
        raise ConfigError("At least one seed URL must be provided")

    for url in crawler.seed_urls:
        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigError(f"Seed URL must be an absolute http(s) URL: {url!r}")

    if crawler.max_concurrent_requests < 1:
        raise ConfigError("max_concurrent_requests must be at least 1")

    if crawler.request_timeout <= 0:
        raise ConfigError("request_timeout must be positive")

    if config.database.type not in ('sqlite', 'file'):
        raise ConfigError("Database type must be 'sqlite' or 'file'")

    if config.monitoring.stats_interval <= 0:
        raise ConfigError("stats_interval must be positive")

    logging.getLogger(__name__).debug("Configuration validation passed")


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
