import dataclasses

import pytest

from agentcrawler.errors import ConfigError
from agentcrawler.utils.config import Config, ConfigManager, load_config, validate_config

CONFIG_YAML = """
crawler:
  seed_urls:
    - https://example.com/
  max_depth: 3
  n_agents: 8
  priority_keywords: [news, blog]
redis:
  host: redis.internal
store:
  type: memory
channel:
  type: memory
  queue_name: crawled
"""


def test_defaults_are_valid():
    config = Config.default()
    validate_config(config)

    assert config.crawler.max_depth == 2
    assert config.crawler.respect_robots_txt
    assert not config.crawler.dedup_fail_open
    assert config.redis.visited_key == "crawler:visited_urls"


def test_loads_yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)

    config = load_config(str(path))

    assert config.crawler.seed_urls == ("https://example.com/",)
    assert config.crawler.priority_keywords == ("news", "blog")
    assert config.crawler.n_agents == 8
    assert config.redis.host == "redis.internal"
    assert config.redis.port == 6379
    assert config.channel.queue_name == "crawled"


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert load_config(str(path)) == Config.default()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.yaml"))


def test_unknown_key_is_rejected():
    with pytest.raises(ConfigError, match="max_dept"):
        Config.from_dict({"crawler": {"max_dept": 3}})


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("crawler: [unclosed")

    with pytest.raises(ConfigError):
        ConfigManager(str(path)).load_config()


@pytest.mark.parametrize("overrides", [
    {"max_depth": -1},
    {"n_agents": 0},
    {"request_timeout": 0},
    {"robots_cache_ttl": -5},
    {"seed_urls": ("mailto:someone@example.com",)},
])
def test_out_of_range_values_are_rejected(overrides):
    config = Config.default()
    config = dataclasses.replace(config, crawler=dataclasses.replace(config.crawler, **overrides))

    with pytest.raises(ConfigError):
        validate_config(config)


def test_unknown_backend_is_rejected():
    with pytest.raises(ConfigError):
        validate_config(Config.from_dict({"store": {"type": "cassandra"}}))



def test_each_load_reads_the_file_again(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("crawler:\n  max_depth: 1\n")
    manager = ConfigManager(str(path))
    assert manager.load_config().crawler.max_depth == 1

    path.write_text("crawler:\n  max_depth: 4\n")
    assert manager.load_config().crawler.max_depth == 4
