"""
Configuration management for the crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, field, fields

from ..errors import ConfigError
from .urls import is_valid_url


@dataclass(frozen=True)
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_urls: Tuple[str, ...] = ()
    max_depth: int = 2
    n_agents: int = 4
    request_timeout: float = 30.0
    user_agent: str = "AgentCrawler/1.0"
    proxy: Optional[str] = None
    respect_robots_txt: bool = True
    robots_cache_ttl: float = 0.0  # 0 keeps policies for the process lifetime
    dedup_fail_open: bool = False
    priority_keywords: Tuple[str, ...] = ()
    max_content_size: int = 10 * 1024 * 1024
    stats_interval: float = 30.0


@dataclass(frozen=True)
class RedisConfig:
    """Configuration for Redis."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    visited_key: str = "crawler:visited_urls"


@dataclass(frozen=True)
class StoreConfig:
    """Configuration for the visited-URL store."""
    type: str = "redis"


@dataclass(frozen=True)
class ChannelConfig:
    """Configuration for the distribution channel."""
    type: str = "redis"
    queue_name: str = "pages"


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass(frozen=True)
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass(frozen=True)
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    channel: ChannelConfig = field(default_factory=ChannelConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def default(cls) -> 'Config':
        """Build a configuration with every section at its defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Build a configuration from a parsed YAML mapping."""
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping")

        return cls(
            crawler=_build_section(CrawlerConfig, data.get('crawler')),
            redis=_build_section(RedisConfig, data.get('redis')),
            store=_build_section(StoreConfig, data.get('store')),
            channel=_build_section(ChannelConfig, data.get('channel')),
            logging=_build_section(LoggingConfig, data.get('logging')),
            monitoring=_build_section(MonitoringConfig, data.get('monitoring')),
        )


def _build_section(section_cls, values: Optional[Dict[str, Any]]):
    """Instantiate a config section, rejecting unknown keys."""
    values = dict(values or {})
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown keys in {section_cls.__name__}: {sorted(unknown)}")

    # YAML lists become tuples so the frozen config stays hashable and immutable
    for key, value in values.items():
        if isinstance(value, list):
            values[key] = tuple(value)

    try:
        return section_cls(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid {section_cls.__name__}: {e}")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            try:
                config_data = yaml.safe_load(file)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")

        config = Config.from_dict(config_data)
        validate_config(config)
        return config


def validate_config(config: Config):
    """Validate configuration values."""
    crawler = config.crawler

    if crawler.max_depth < 0:
        raise ConfigError("max_depth must be non-negative")

    if crawler.n_agents < 1:
        raise ConfigError("n_agents must be at least 1")

    if crawler.request_timeout <= 0:
        raise ConfigError("request_timeout must be positive")

    if crawler.robots_cache_ttl < 0:
        raise ConfigError("robots_cache_ttl must be non-negative")

    if crawler.max_content_size < 1:
        raise ConfigError("max_content_size must be positive")

    invalid_seeds = [url for url in crawler.seed_urls if not is_valid_url(url)]
    if invalid_seeds:
        raise ConfigError(f"Invalid seed URLs: {invalid_seeds}")

    if config.store.type not in ('redis', 'memory'):
        raise ConfigError("Store type must be 'redis' or 'memory'")

    if config.channel.type not in ('redis', 'memory'):
        raise ConfigError("Channel type must be 'redis' or 'memory'")

    if not config.channel.queue_name:
        raise ConfigError("channel.queue_name must not be empty")

    logging.getLogger(__name__).debug("Configuration validation passed")


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
