import pytest

from crawlcore.crawler.errors import ConfigurationError
from crawlcore.utils.config import (
    Config, ConfigManager, CrawlerConfig, get_config, load_config, validate_crawler_config
)


CONFIG_YAML = """
crawler:
  seed_urls:
    - https://example.com/
  max_depth: 2
  max_workers: 8
  per_domain_limit: 3
  domain_limits:
    slow.example.com: 1
  request_timeout: 5
  retry_attempts: 1
  allowed_domains: [example.com]

storage:
  type: none

logging:
  level: DEBUG
  file: null
"""


def write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


def test_load_config(tmp_path):
    config = load_config(str(write(tmp_path, CONFIG_YAML)))

    assert config.crawler.seed_urls == ["https://example.com/"]
    assert config.crawler.max_workers == 8
    assert config.crawler.domain_limits == {"slow.example.com": 1}
    assert config.crawler.effective_fetch_timeout == 10
    assert config.storage.type == "none"
    assert config.logging.file is None
    assert config.monitoring.metrics_enabled is False
    assert get_config() is config


def test_missing_sections_use_defaults():
    config = Config.from_dict({'crawler': {'seed_urls': ['http://a.test/']}})

    assert config.crawler.max_depth == 3
    assert config.storage.type == 'file'
    assert config.logging.level == 'INFO'
    assert config.to_dict()['crawler']['seed_urls'] == ['http://a.test/']


def test_explicit_fetch_timeout_wins():
    assert CrawlerConfig(request_timeout=5, retry_attempts=3).effective_fetch_timeout == 20
    assert CrawlerConfig(fetch_timeout=1.5).effective_fetch_timeout == 1.5


def test_unknown_key_is_rejected():
    with pytest.raises(ConfigurationError, match="crawler"):
        Config.from_dict({'crawler': {'max_deepness': 3}})


def test_non_mapping_root_is_rejected():
    with pytest.raises(ConfigurationError):
        Config.from_dict(["not", "a", "mapping"])


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        ConfigManager(str(tmp_path / "nope.yaml")).load_config()


def test_invalid_yaml(tmp_path):
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        ConfigManager(str(write(tmp_path, "crawler: [unclosed"))).load_config()


def test_seeds_required(tmp_path):
    with pytest.raises(ConfigurationError, match="seed"):
        ConfigManager(str(write(tmp_path, "crawler:\n  max_depth: 1\n"))).load_config()


def test_unknown_storage_type(tmp_path):
    text = "crawler:\n  seed_urls: [http://a.test/]\nstorage:\n  type: mongo\n"
    with pytest.raises(ConfigurationError, match="Storage type"):
        ConfigManager(str(write(tmp_path, text))).load_config()


def test_config_before_load():
    with pytest.raises(ConfigurationError):
        ConfigManager().config


@pytest.mark.parametrize("overrides", [
    {'max_depth': -1},
    {'max_workers': 0},
    {'per_domain_limit': 0},
    {'domain_limits': {'a.test': 0}},
    {'request_timeout': 0},
    {'fetch_timeout': -1},
    {'retry_attempts': -1},
    {'max_pages': 0},
    {'max_duration': 0},
])
def test_validation(overrides):
    with pytest.raises(ConfigurationError):
        validate_crawler_config(CrawlerConfig(seed_urls=['http://a.test/'], **overrides))


def test_seeds_optional_when_passed_at_run_time():
    validate_crawler_config(CrawlerConfig(), require_seeds=False)
