"""Configuration schema using Pydantic."""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from nanosearch.utils.redaction import redact_url
from nanosearch.utils.urls import validate_proxy_url

HTTP_ENGINES = ("duckduckgo", "bing", "baidu", "sogou")
BROWSER_ENGINES = ("browser_bing", "browser_google", "browser_baidu")
VALID_ENGINES = HTTP_ENGINES + BROWSER_ENGINES

DEFAULT_ENGINE = "duckduckgo"
DEFAULT_PROXY_URL = "http://127.0.0.1:7890"


def _split_engines(value: Any) -> Any:
    if isinstance(value, str):
        return [part for part in (p.strip() for p in value.split(",")) if part]
    return value


class SearchConfig(BaseModel):
    """Engine selection."""

    default_engine: str = DEFAULT_ENGINE
    allowed_engines: list[str] = Field(default_factory=list)

    @field_validator("allowed_engines", mode="before")
    @classmethod
    def _coerce_allowed(cls, value: Any) -> Any:
        return _split_engines(value) or []

    def is_engine_allowed(self, name: str) -> bool:
        """Empty allow-list permits every engine."""
        if not self.allowed_engines:
            return True
        return name in self.allowed_engines


class ProxyConfig(BaseModel):
    """Upstream proxy applied to HTTP and browser traffic alike."""

    enabled: bool = False
    url: str = DEFAULT_PROXY_URL


class BrowserConfig(BaseModel):
    """Browser-driven engines."""

    enabled: bool = True
    headless: bool = True
    executable_path: str = ""
    auto_install_browsers: bool = False
    timeout_ms: int = Field(default=60000, ge=1000, le=300000)
    max_attempts: int = Field(default=2, ge=1, le=10)


class ScraperConfig(BaseModel):
    """HTTP scraping knobs."""

    request_timeout: float = Field(default=30.0, gt=0)
    # None keeps each engine's own pacing.
    page_delay_ms: int | None = Field(default=None, ge=0)


class Config(BaseSettings):
    """Root configuration for nanosearch."""

    search: SearchConfig = Field(default_factory=SearchConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    scraper: ScraperConfig = Field(default_factory=ScraperConfig)

    model_config = SettingsConfigDict(env_prefix="NANOSEARCH_", env_nested_delimiter="__")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment variables win over values loaded from the config file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @model_validator(mode="after")
    def _normalize(self) -> "Config":
        search = self.search
        search.default_engine = search.default_engine.strip().lower()
        if search.default_engine not in VALID_ENGINES:
            logger.warning("Invalid defaultEngine {!r}, falling back to {}", search.default_engine, DEFAULT_ENGINE)
            search.default_engine = DEFAULT_ENGINE

        allowed: list[str] = []
        for name in search.allowed_engines:
            key = name.strip().lower()
            if key not in VALID_ENGINES:
                logger.warning("Invalid search engine ignored: {!r}", name)
                continue
            if key not in allowed:
                allowed.append(key)
        search.allowed_engines = allowed

        if allowed and search.default_engine not in allowed:
            logger.warning("Default engine {} not in allowedEngines, using {}", search.default_engine, allowed[0])
            search.default_engine = allowed[0]

        if self.proxy.enabled:
            if not self.proxy.url.strip():
                logger.warning("Proxy enabled but url is empty, using {}", DEFAULT_PROXY_URL)
                self.proxy.url = DEFAULT_PROXY_URL
            ok, error = validate_proxy_url(self.proxy.url)
            if not ok:
                logger.warning("Proxy disabled, invalid url {}: {}", redact_url(self.proxy.url), error)
                self.proxy.enabled = False
        return self

    @property
    def proxy_url(self) -> str | None:
        """Proxy URL when the proxy is enabled, else None."""
        return self.proxy.url if self.proxy.enabled else None

    def is_engine_allowed(self, name: str) -> bool:
        return self.search.is_engine_allowed(name)
