"""Error types raised by engines and the coordinator."""

from __future__ import annotations


class SearchError(Exception):
    """Base class for search failures attributable to one engine."""

    def __init__(self, engine: str, message: str):
        self.engine = engine
        self.message = message
        super().__init__(f"{engine}: {message}" if engine else message)


class TransportError(SearchError):
    """Connection, timeout or unexpected HTTP status."""

    def __init__(self, engine: str, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(engine, message)


class ChallengeDetected(SearchError):
    """The provider served an anti-bot or captcha page instead of results."""

    def __init__(self, engine: str, marker: str = ""):
        self.marker = marker
        detail = f"challenge page detected ({marker})" if marker else "challenge page detected"
        super().__init__(engine, f"rate limited: {detail}")


class ParseError(SearchError):
    """The page body could not be parsed as markup at all."""


class ResourceUnavailable(SearchError):
    """A local resource the engine depends on is missing or failed to start."""


class BrowserNotFoundError(ResourceUnavailable):
    """No Chrome/Chromium executable could be located."""


class EngineNotAvailable(Exception):
    """Requested engine is not registered or not allowed by configuration."""

    def __init__(self, identifier: str, reason: str):
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"engine {identifier!r} {reason}")


class AllEnginesFailed(Exception):
    """Every queried engine failed and no results were produced."""

    def __init__(self, errors: dict[str, Exception]):
        self.errors = dict(errors)
        last = list(self.errors.values())[-1] if self.errors else None
        if last is not None:
            message = f"all searches failed, last error: {last}"
        else:
            message = "all searches failed"
        super().__init__(message)
