"""
Configuration management for the crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field, asdict

from ..crawler.errors import ConfigurationError


STORAGE_TYPES = ('file', 'redis', 'none')


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_urls: List[str] = field(default_factory=list)
    max_depth: int = 3
    max_workers: int = 4
    per_domain_limit: int = 2
    domain_limits: Dict[str, int] = field(default_factory=dict)
    request_timeout: float = 30.0
    fetch_timeout: Optional[float] = None
    retry_attempts: int = 2
    user_agent: str = "crawlcore/1.0"
    respect_robots_txt: bool = True
    allowed_domains: List[str] = field(default_factory=list)
    blocked_domains: List[str] = field(default_factory=list)
    stats_interval: float = 30.0
    max_pages: Optional[int] = None
    max_duration: Optional[float] = None

    @property
    def effective_fetch_timeout(self) -> float:
        """Deadline for one task's fetch, covering all retry attempts."""
        if self.fetch_timeout is not None:
            return self.fetch_timeout
        return self.request_timeout * (self.retry_attempts + 1)


@dataclass
class StorageConfig:
    """Configuration for the result sink."""
    type: str = 'file'
    file: Dict[str, Any] = field(default_factory=lambda: {'data_directory': 'data'})
    redis: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: Optional[str] = 'logs/crawler.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Config':
        """Build a Config from parsed YAML, filling defaults for missing keys."""
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")

        sections = {
            'crawler': CrawlerConfig,
            'storage': StorageConfig,
            'logging': LoggingConfig,
            'monitoring': MonitoringConfig,
        }
        parsed = {}
        for name, section_cls in sections.items():
            section = data.get(name) or {}
            try:
                parsed[name] = section_cls(**section)
            except TypeError as e:
                raise ConfigurationError(f"Invalid '{name}' section: {e}") from e

        return cls(**parsed)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def validate_crawler_config(crawler: CrawlerConfig, require_seeds: bool = True):
    """Raise ConfigurationError if crawler settings cannot drive a run."""
    if require_seeds and not crawler.seed_urls:
        raise ConfigurationError("At least one seed URL must be provided")

    if crawler.max_depth < 0:
        raise ConfigurationError("max_depth must be non-negative")

    if crawler.max_workers < 1:
        raise ConfigurationError("max_workers must be at least 1")

    if crawler.per_domain_limit < 1:
        raise ConfigurationError("per_domain_limit must be at least 1")

    if any(limit < 1 for limit in crawler.domain_limits.values()):
        raise ConfigurationError("domain_limits values must be at least 1")

    if crawler.request_timeout <= 0:
        raise ConfigurationError("request_timeout must be positive")

    if crawler.fetch_timeout is not None and crawler.fetch_timeout <= 0:
        raise ConfigurationError("fetch_timeout must be positive")

    if crawler.retry_attempts < 0:
        raise ConfigurationError("retry_attempts must be non-negative")

    if crawler.max_pages is not None and crawler.max_pages < 1:
        raise ConfigurationError("max_pages must be at least 1")

    if crawler.max_duration is not None and crawler.max_duration <= 0:
        raise ConfigurationError("max_duration must be positive")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            try:
                config_data = yaml.safe_load(file)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        self._config = Config.from_dict(config_data)
        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigurationError("Configuration not loaded")

        validate_crawler_config(self._config.crawler)

        if self._config.storage.type not in STORAGE_TYPES:
            raise ConfigurationError(f"Storage type must be one of {', '.join(STORAGE_TYPES)}")

        logging.getLogger(__name__).debug("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
