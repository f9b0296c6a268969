"""Shared automation-browser session for browser-driven engines."""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeVar
from urllib.parse import unquote, urlsplit

from loguru import logger

from nanosearch.engines.errors import BrowserNotFoundError, ResourceUnavailable, TransportError
from nanosearch.engines.http import DESKTOP_USER_AGENT
from nanosearch.utils.redaction import redact_text, redact_url

T = TypeVar("T")

BROWSER = "browser"
DEFAULT_TAB_TIMEOUT = 60.0
DEFAULT_MAX_ATTEMPTS = 2
WINDOW_SIZE = (1920, 1080)
LOCALE = "en-US"
INSTALL_TIMEOUT = 600.0
INSTALL_OUTPUT_CHARS = 2000

MISSING_BROWSER_MARKERS = (
    "executable doesn't exist",
    "please run the following command",
    "browser has not been found",
    "failed to launch",
)

EVASION_ARGS = (
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-infobars",
    f"--lang={LOCALE}",
    f"--window-size={WINDOW_SIZE[0]},{WINDOW_SIZE[1]}",
)


class BrowserState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


def browser_candidates(platform: str | None = None) -> list[str]:
    """Well-known Chrome/Chromium install locations for a platform."""
    platform = platform or sys.platform
    if platform == "darwin":
        return [
            "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
            "/Applications/Chromium.app/Contents/MacOS/Chromium",
            "/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary",
        ]
    if platform.startswith("win"):
        paths = [
            r"C:\Program Files\Google\Chrome\Application\chrome.exe",
            r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
        ]
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            paths.append(os.path.join(local_app_data, "Google", "Chrome", "Application", "chrome.exe"))
        return paths
    return [
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/snap/bin/chromium",
    ]


def find_browser_executable(
    explicit_path: str = "",
    candidates: Sequence[str] | None = None,
) -> str | None:
    """Locate a browser binary: the configured path first, then the platform list."""
    if explicit_path:
        expanded = os.path.expanduser(explicit_path)
        if os.path.isfile(expanded):
            return expanded
        logger.warning("browser: configured executablePath {} does not exist", explicit_path)

    for path in browser_candidates() if candidates is None else candidates:
        if os.path.isfile(path):
            logger.debug("browser: found executable at {}", path)
            return path
    return None


def is_missing_browser_error(exc: BaseException) -> bool:
    """True when a launch failed because no browser binary is installed."""
    message = str(exc).lower()
    return any(marker in message for marker in MISSING_BROWSER_MARKERS)


async def install_chromium(timeout: float = INSTALL_TIMEOUT) -> None:
    """
    Download the Playwright-managed Chromium with ``python -m playwright install chromium``.

    Raises ``ResourceUnavailable`` carrying the tail of the installer output
    when the command fails or runs longer than ``timeout`` seconds.
    """
    logger.info("browser: installing Playwright Chromium (this can take a while)")
    try:
        process = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        raise ResourceUnavailable(BROWSER, f"browser install could not start: {e}") from e

    try:
        async with asyncio.timeout(timeout):
            output, _ = await process.communicate()
    except TimeoutError:
        process.kill()
        await process.wait()
        raise ResourceUnavailable(BROWSER, f"browser install timed out after {timeout:g}s") from None

    tail = output.decode("utf-8", errors="replace").strip()[-INSTALL_OUTPUT_CHARS:]
    if process.returncode != 0:
        raise ResourceUnavailable(
            BROWSER,
            f"browser install exited with code {process.returncode}: {redact_text(tail) or 'no output'}",
        )
    logger.info("browser: Playwright Chromium installed")


@dataclass(slots=True)
class LaunchOptions:
    executable_path: str | None
    headless: bool = True
    proxy_url: str | None = None
    user_agent: str = DESKTOP_USER_AGENT
    args: tuple[str, ...] = EVASION_ARGS
    viewport: tuple[int, int] = WINDOW_SIZE
    locale: str = LOCALE


class BrowserHandle(Protocol):
    """A launched browser plus the shared top-level context tabs are opened in."""

    context: Any

    async def close(self) -> None: ...


Launcher = Callable[[LaunchOptions], Awaitable[BrowserHandle]]


@dataclass
class PlaywrightHandle:
    playwright: Any
    browser: Any
    context: Any
    closed: bool = field(default=False, init=False)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.context.close()
        finally:
            try:
                await self.browser.close()
            finally:
                await self.playwright.stop()


def playwright_proxy(proxy_url: str) -> dict[str, str]:
    """Split a proxy URL into Playwright's ``{server, username, password}`` form."""
    parts = urlsplit(proxy_url)
    server = f"{parts.scheme}://{parts.hostname}"
    if parts.port:
        server += f":{parts.port}"
    proxy = {"server": server}
    if parts.username:
        proxy["username"] = unquote(parts.username)
    if parts.password:
        proxy["password"] = unquote(parts.password)
    return proxy


class PlaywrightLauncher:
    """Launch Chromium through Playwright with the shared context pre-configured."""

    async def __call__(self, options: LaunchOptions) -> PlaywrightHandle:
        from playwright.async_api import async_playwright

        playwright = await async_playwright().start()
        try:
            launch_kwargs: dict[str, Any] = {
                "headless": options.headless,
                "args": list(options.args),
                "ignore_default_args": ["--enable-automation"],
            }
            if options.executable_path:
                launch_kwargs["executable_path"] = options.executable_path
            if options.proxy_url:
                launch_kwargs["proxy"] = playwright_proxy(options.proxy_url)

            browser = await playwright.chromium.launch(**launch_kwargs)
            try:
                width, height = options.viewport
                context = await browser.new_context(
                    user_agent=options.user_agent,
                    viewport={"width": width, "height": height},
                    locale=options.locale,
                )
            except BaseException:
                await browser.close()
                raise
        except BaseException:
            await playwright.stop()
            raise

        return PlaywrightHandle(playwright=playwright, browser=browser, context=context)


class BrowserSessionManager:
    """
    Lazily launched browser shared by every browser-driven engine.

    ``ensure_ready`` runs at most one initialization at a time: the first
    caller starts it, concurrent callers await the same attempt and observe
    the same outcome. A failed attempt leaves the manager ``UNINITIALIZED``
    with ``last_error`` set so a later call can retry. The lock only guards
    state transitions; tabs are opened without it.
    """

    def __init__(
        self,
        *,
        launcher: Launcher | None = None,
        executable_path: str = "",
        auto_install: bool = False,
        default_timeout: float = DEFAULT_TAB_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        locate: Callable[[str], str | None] = find_browser_executable,
        installer: Callable[[], Awaitable[None]] = install_chromium,
    ):
        self.launcher: Launcher = launcher or PlaywrightLauncher()
        self.executable_path = executable_path
        self.auto_install = auto_install
        self.default_timeout = default_timeout
        self.max_attempts = max(1, max_attempts)
        self.last_error: Exception | None = None
        self._locate = locate
        self._installer = installer
        self._sleep = asyncio.sleep
        self._state = BrowserState.UNINITIALIZED
        self._lock = asyncio.Lock()
        self._init_task: asyncio.Task[None] | None = None
        self._handle: BrowserHandle | None = None

    @property
    def state(self) -> BrowserState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is BrowserState.READY

    async def ensure_ready(self, proxy_url: str | None = None, headless: bool = True) -> None:
        """Launch the browser unless it is already running."""
        if self.is_ready:
            return

        async with self._lock:
            if self.is_ready:
                return
            if self._init_task is None:
                self._state = BrowserState.INITIALIZING
                self._init_task = asyncio.create_task(self._initialize(proxy_url, headless))
            task = self._init_task

        # Shielded so one cancelled waiter does not abort the launch for the others.
        await asyncio.shield(task)

    async def _initialize(self, proxy_url: str | None, headless: bool) -> None:
        try:
            handle = await self._launch(proxy_url, headless)
            try:
                page = await handle.context.new_page()
                await page.close()
            except BaseException as e:
                await _close_quietly(handle)
                if isinstance(e, Exception):
                    raise ResourceUnavailable(BROWSER, f"failed to start browser: {redact_text(str(e))}") from e
                raise
        except Exception as e:
            self.last_error = e
            self._state = BrowserState.UNINITIALIZED
            logger.error("browser: initialization failed: {}", redact_text(str(e)))
            raise
        except BaseException:
            self._state = BrowserState.UNINITIALIZED
            raise
        else:
            self._handle = handle
            self.last_error = None
            self._state = BrowserState.READY
            logger.info("browser: initialized (headless={}, proxy={})", headless, redact_url(proxy_url) or "none")
        finally:
            self._init_task = None

    async def _launch(self, proxy_url: str | None, headless: bool) -> BrowserHandle:
        executable = self._locate(self.executable_path)
        if not executable and not self.auto_install:
            raise BrowserNotFoundError(
                BROWSER,
                "Chrome/Chromium not found. Install Chrome, set browser.executablePath "
                "or enable browser.autoInstallBrowsers",
            )

        options = LaunchOptions(executable_path=executable, headless=headless, proxy_url=proxy_url or None)
        if proxy_url:
            logger.info("browser: using proxy {}", redact_url(proxy_url))

        try:
            return await self.launcher(options)
        except Exception as first_error:
            if not self.auto_install or not is_missing_browser_error(first_error):
                raise ResourceUnavailable(
                    BROWSER, f"failed to start browser: {redact_text(str(first_error))}"
                ) from first_error

            logger.warning("browser: no usable browser binary, installing Chromium")
            await self._installer()

            # Fall back to the Playwright-managed Chromium that was just installed.
            options.executable_path = None
            try:
                return await self.launcher(options)
            except Exception as second_error:
                raise ResourceUnavailable(
                    BROWSER, f"failed to start browser: {redact_text(str(second_error))}"
                ) from second_error

    @asynccontextmanager
    async def new_page(self, timeout: float | None = None) -> AsyncIterator[Any]:
        """
        Borrow a fresh tab for one page fetch.

        The tab belongs to the caller for the duration of the ``async with``
        block, which is bounded by ``timeout`` seconds, and is closed on every
        exit path.
        """
        if not self.is_ready or self._handle is None:
            raise ResourceUnavailable(BROWSER, f"browser is not ready (state={self._state.value})")

        deadline = self.default_timeout if timeout is None else timeout
        page = await self._handle.context.new_page()
        try:
            page.set_default_timeout(deadline * 1000)
            async with asyncio.timeout(deadline):
                yield page
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.debug("browser: closing tab failed: {}", e)

    async def run_with_retries(
        self,
        action: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        *,
        retry_on: tuple[type[BaseException], ...] = (TransportError, TimeoutError),
    ) -> T:
        """Run ``action`` up to ``max_attempts`` times, sleeping 1s, 2s, ... between tries."""
        attempts = max(1, max_attempts or self.max_attempts)
        last_error: BaseException | None = None
        for attempt in range(1, attempts + 1):
            try:
                return await action()
            except retry_on as e:
                last_error = e
                logger.warning("browser: action failed (attempt {}/{}): {}", attempt, attempts, e)
                if attempt < attempts:
                    await self._sleep(float(attempt))

        assert last_error is not None
        raise last_error

    async def shutdown(self) -> None:
        """Close the browser; a later ``ensure_ready`` launches a new one."""
        async with self._lock:
            task = self._init_task
            if task is not None:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

            handle, self._handle = self._handle, None
            self._state = BrowserState.CLOSED
            if handle is None:
                return
            await _close_quietly(handle)
            logger.info("browser: closed")


async def _close_quietly(handle: BrowserHandle) -> None:
    try:
        await handle.close()
    except Exception as e:
        logger.warning("browser: close failed: {}", e)
