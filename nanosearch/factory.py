"""Build a ready-to-use coordinator from configuration."""

from __future__ import annotations

import httpx
from loguru import logger

from nanosearch.browser.manager import BrowserSessionManager, Launcher
from nanosearch.config.schema import Config
from nanosearch.coordinator import EngineRegistry, SearchCoordinator
from nanosearch.engines.baidu import BaiduEngine, BrowserBaiduEngine
from nanosearch.engines.bing import BingEngine, BrowserBingEngine
from nanosearch.engines.duckduckgo import DuckDuckGoEngine
from nanosearch.engines.google import BrowserGoogleEngine
from nanosearch.engines.http import HttpSearchEngine
from nanosearch.engines.sogou import SogouEngine
from nanosearch.utils.redaction import redact_url

HTTP_ENGINE_TYPES: tuple[type[HttpSearchEngine], ...] = (DuckDuckGoEngine, BingEngine, BaiduEngine, SogouEngine)
BROWSER_ENGINE_TYPES = (BrowserBingEngine, BrowserGoogleEngine, BrowserBaiduEngine)


def build_coordinator(
    config: Config | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    launcher: Launcher | None = None,
) -> SearchCoordinator:
    """
    Register every engine the configuration enables.

    HTTP engines are always registered; browser engines only when
    ``browser.enabled`` and then all share one ``BrowserSessionManager``.
    ``transport`` and ``launcher`` replace the network and browser backends.
    """
    config = config or Config()
    proxy_url = config.proxy_url
    if proxy_url:
        logger.info("Using proxy {}", redact_url(proxy_url))

    registry = EngineRegistry()
    delay_ms = config.scraper.page_delay_ms
    page_delay = None if delay_ms is None else delay_ms / 1000
    for engine_type in HTTP_ENGINE_TYPES:
        registry.register(
            engine_type(
                proxy_url,
                page_delay=page_delay,
                request_timeout=config.scraper.request_timeout,
                transport=transport,
            )
        )

    browser: BrowserSessionManager | None = None
    if config.browser.enabled:
        browser = BrowserSessionManager(
            launcher=launcher,
            executable_path=config.browser.executable_path,
            auto_install=config.browser.auto_install_browsers,
            default_timeout=config.browser.timeout_ms / 1000,
            max_attempts=config.browser.max_attempts,
        )
        for browser_engine_type in BROWSER_ENGINE_TYPES:
            registry.register(
                browser_engine_type(
                    browser,
                    proxy_url,
                    headless=config.browser.headless,
                    timeout=config.browser.timeout_ms / 1000,
                    max_attempts=config.browser.max_attempts,
                )
            )

    logger.debug("Registered search engines: {}", ", ".join(registry.names()))
    return SearchCoordinator(registry, config.search, browser=browser)
