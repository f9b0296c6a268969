"""Shared automation browser used by browser-driven engines."""

from nanosearch.browser.manager import BrowserSessionManager, BrowserState, PlaywrightLauncher

__all__ = ["BrowserSessionManager", "BrowserState", "PlaywrightLauncher"]
