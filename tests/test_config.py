"""Configuration defaults and environment loading."""

from fanout_crawl.config import (
    CrawlConfig,
    FanoutConfig,
    FetchConfig,
    get_config,
    load_config_from_env,
)

ENV_KEYS = (
    "FANOUT_WINDOW_SIZE",
    "FANOUT_PAGE_SIZE",
    "FANOUT_FIRST_PAGE",
    "FANOUT_MAX_BATCHES",
    "FANOUT_CRAWL_TIMEOUT",
    "FANOUT_STANDALONE_BATCH_SIZE",
    "FANOUT_STANDALONE_CONCURRENCY",
    "FANOUT_REQUEST_TIMEOUT",
    "FANOUT_MAX_RETRIES",
    "FANOUT_USER_AGENT",
    "FANOUT_ENABLE_PROFILING",
)


def clear_env(monkeypatch):
    # setenv + delenv registers the key so monkeypatch restores it afterwards,
    # including keys that load_dotenv sets during the test
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_defaults():
    config = get_config()
    assert config["crawl"] == CrawlConfig()
    assert config["crawl"].window_size == 4
    assert config["crawl"].first_page == 1
    assert config["fanout"].standalone_batch_size == 48
    assert config["fetch"].max_retries == 3


def test_env_overrides(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    monkeypatch.setenv("FANOUT_WINDOW_SIZE", "6")
    monkeypatch.setenv("FANOUT_CRAWL_TIMEOUT", "12.5")
    monkeypatch.setenv("FANOUT_STANDALONE_CONCURRENCY", "2")
    monkeypatch.setenv("FANOUT_ENABLE_PROFILING", "true")

    crawl, fanout, fetch = load_config_from_env(str(tmp_path / "missing.env"))

    assert crawl.window_size == 6
    assert crawl.crawl_timeout == 12.5
    assert crawl.page_size == CrawlConfig().page_size
    assert fanout == FanoutConfig(standalone_batch_size=48, standalone_concurrency=2)
    assert fetch.enable_profiling is True
    assert fetch.request_timeout == FetchConfig().request_timeout


def test_dotenv_file_is_read(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    env_file = tmp_path / ".env"
    env_file.write_text("FANOUT_PAGE_SIZE=48\nFANOUT_MAX_RETRIES=5\n", encoding="utf-8")

    crawl, _, fetch = load_config_from_env(str(env_file))

    assert crawl.page_size == 48
    assert fetch.max_retries == 5
