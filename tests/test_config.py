import copy
import json

import pytest
from pydantic import ValidationError

from nanosearch.config.loader import (
    CONFIG_ENV_VAR,
    _migrate_config,
    camel_to_snake,
    convert_keys,
    convert_to_camel,
    load_config,
    save_config,
    snake_to_camel,
)
from nanosearch.config.schema import DEFAULT_PROXY_URL, BrowserConfig, Config


def test_defaults() -> None:
    config = Config()

    assert config.search.default_engine == "duckduckgo"
    assert config.search.allowed_engines == []
    assert config.proxy_url is None
    assert config.browser.enabled is True
    assert config.browser.timeout_ms == 60000
    assert config.browser.max_attempts == 2
    assert config.scraper.page_delay_ms is None
    assert config.is_engine_allowed("sogou")


def test_invalid_default_engine_falls_back() -> None:
    config = Config(search={"default_engine": "AltaVista"})

    assert config.search.default_engine == "duckduckgo"


def test_allowed_engines_are_cleaned_and_default_moved_into_them() -> None:
    config = Config(search={"allowed_engines": ["BING", "nope", "bing", " baidu "]})

    assert config.search.allowed_engines == ["bing", "baidu"]
    assert config.search.default_engine == "bing"
    assert config.is_engine_allowed("baidu")
    assert not config.is_engine_allowed("duckduckgo")


def test_allowed_engines_accept_comma_string() -> None:
    config = Config(search={"allowed_engines": "sogou, browser_google", "default_engine": "browser_google"})

    assert config.search.allowed_engines == ["sogou", "browser_google"]
    assert config.search.default_engine == "browser_google"


def test_enabled_proxy_without_url_uses_default() -> None:
    config = Config(proxy={"enabled": True, "url": "  "})

    assert config.proxy_url == DEFAULT_PROXY_URL


def test_invalid_proxy_url_disables_proxy() -> None:
    config = Config(proxy={"enabled": True, "url": "ftp://proxy.local:21"})

    assert config.proxy.enabled is False
    assert config.proxy_url is None


def test_socks_proxy_is_accepted() -> None:
    config = Config(proxy={"enabled": True, "url": "socks5://user:pw@proxy.local:1080"})

    assert config.proxy_url == "socks5://user:pw@proxy.local:1080"


def test_browser_limits_are_validated() -> None:
    with pytest.raises(ValidationError):
        BrowserConfig(timeout_ms=10)
    with pytest.raises(ValidationError):
        BrowserConfig(max_attempts=0)


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("NANOSEARCH_SEARCH__DEFAULT_ENGINE", "sogou")
    monkeypatch.setenv("NANOSEARCH_BROWSER__ENABLED", "false")

    config = Config()

    assert config.search.default_engine == "sogou"
    assert config.browser.enabled is False


def test_load_config_reads_camel_case_file(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "search": {"defaultEngine": "baidu", "allowedEngines": ["baidu", "bing"]},
                "proxy": {"enabled": True, "url": "http://127.0.0.1:7897"},
                "browser": {"headless": False, "autoInstallBrowsers": True, "timeoutMs": 30000},
                "scraper": {"pageDelayMs": 0},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.search.default_engine == "baidu"
    assert config.search.allowed_engines == ["baidu", "bing"]
    assert config.proxy_url == "http://127.0.0.1:7897"
    assert config.browser.headless is False
    assert config.browser.auto_install_browsers is True
    assert config.browser.timeout_ms == 30000
    assert config.scraper.page_delay_ms == 0


def test_load_config_migrates_flat_layout(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"defaultEngine": "bing", "allowedEngines": "bing,baidu", "proxy": "http://127.0.0.1:1080"}),
        encoding="utf-8",
    )

    config = load_config(str(path))

    assert config.search.default_engine == "bing"
    assert config.search.allowed_engines == ["bing", "baidu"]
    assert config.proxy_url == "http://127.0.0.1:1080"


def test_migrate_does_not_override_nested_values() -> None:
    raw = {"defaultEngine": "bing", "search": {"defaultEngine": "baidu", "allowedEngines": "baidu, sogou"}}

    migrated = _migrate_config(copy.deepcopy(raw))

    assert migrated == {"search": {"defaultEngine": "baidu", "allowedEngines": ["baidu", "sogou"]}}


def test_migrate_empty_proxy_string_disables_proxy() -> None:
    assert _migrate_config({"proxy": ""}) == {"proxy": {"enabled": False, "url": ""}}


@pytest.mark.parametrize(
    "content",
    ["{not json", "[1, 2, 3]", json.dumps({"browser": {"timeoutMs": 5}})],
)
def test_bad_config_file_falls_back_to_defaults(tmp_path, content: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(content, encoding="utf-8")

    config = load_config(path)

    assert config.model_dump() == Config().model_dump()


def test_missing_explicit_file_gives_defaults(tmp_path) -> None:
    config = load_config(tmp_path / "absent.json")

    assert config.search.default_engine == "duckduckgo"


def test_config_file_from_environment(tmp_path, monkeypatch) -> None:
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"search": {"defaultEngine": "sogou"}}), encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    assert load_config().search.default_engine == "sogou"


def test_environment_overrides_file_values(tmp_path, monkeypatch) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "search": {"defaultEngine": "duckduckgo", "allowedEngines": ["duckduckgo", "bing"]},
                "browser": {"headless": False},
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("NANOSEARCH_SEARCH__DEFAULT_ENGINE", "bing")
    monkeypatch.setenv("NANOSEARCH_BROWSER__ENABLED", "false")

    config = load_config(path)

    assert config.search.default_engine == "bing"
    assert config.search.allowed_engines == ["duckduckgo", "bing"]
    assert config.browser.enabled is False
    assert config.browser.headless is False


def test_save_config_writes_camel_case_and_round_trips(tmp_path) -> None:
    config = Config(
        search={"default_engine": "bing", "allowed_engines": ["bing", "browser_bing"]},
        scraper={"page_delay_ms": 250},
    )
    path = tmp_path / "nested" / "config.json"

    save_config(config, path)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["search"]["defaultEngine"] == "bing"
    assert data["browser"]["autoInstallBrowsers"] is False
    assert data["scraper"]["pageDelayMs"] == 250
    assert load_config(path).model_dump() == config.model_dump()


def test_key_conversion_helpers() -> None:
    assert camel_to_snake("autoInstallBrowsers") == "auto_install_browsers"
    assert snake_to_camel("page_delay_ms") == "pageDelayMs"
    assert convert_keys({"browser": {"timeoutMs": 1}, "items": [{"maxAttempts": 2}]}) == {
        "browser": {"timeout_ms": 1},
        "items": [{"max_attempts": 2}],
    }
    assert convert_to_camel({"search": {"default_engine": "bing"}}) == {"search": {"defaultEngine": "bing"}}
