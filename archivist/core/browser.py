"""
Rendered Page Sessions

The archiving workflow needs a real browser for the save-now page, which only
shows its confirmation after client-side rendering. The workflow depends on
the narrow PageSession protocol defined here; PlaywrightSessionFactory is the
production implementation (headless Chromium, one browser per batch and one
page per navigation sequence).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import ContextManager, Iterator, List, Optional, Protocol, Tuple

from bs4 import BeautifulSoup
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright


DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)

DEFAULT_BROWSER_ARGS: Tuple[str, ...] = (
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-blink-features=AutomationControlled',
    '--disable-features=VizDisplayCompositor',
    '--disable-background-timer-throttling',
    '--disable-renderer-backgrounding',
)

SUBMIT_SELECTOR = 'input[type="submit"], button[type="submit"]'


class NavigationStatus(str, Enum):
    OK = "ok"
    TIMEOUT = "timeout"


class PageSession(Protocol):
    """What the workflow may do with a rendered page."""

    def navigate(self, address: str, timeout_ms: int) -> NavigationStatus:
        ...

    def current_address(self) -> str:
        ...

    def rendered_text(self, timeout_ms: int = 5000) -> str:
        ...

    def link_targets(self) -> List[str]:
        ...

    def click_first_submit_control(self) -> bool:
        ...


class SessionFactory(Protocol):
    def open(self) -> ContextManager[PageSession]:
        ...

    def start(self) -> None:
        ...

    def close(self) -> None:
        ...


@dataclass
class BrowserConfig:
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: str = DEFAULT_USER_AGENT
    args: Tuple[str, ...] = field(default=DEFAULT_BROWSER_ARGS)
    default_timeout_ms: int = 45000
    referer: str = 'https://www.google.com/'


def extract_link_targets(html: str) -> List[str]:
    """Return the href of every anchor in an HTML document, in document order."""
    if not html:
        return []
    soup = BeautifulSoup(html, 'lxml')
    targets = []
    for anchor in soup.find_all('a', href=True):
        href = anchor.get('href', '').strip()
        if href:
            targets.append(href)
    return targets


class PlaywrightPageSession:
    """PageSession backed by a single Playwright page."""

    def __init__(self, page, referer: Optional[str] = None):
        self.page = page
        self.referer = referer
        self.logger = logging.getLogger(__name__)

    def navigate(self, address: str, timeout_ms: int) -> NavigationStatus:
        self.logger.info(f"Navigating: {address[:80]}")
        try:
            self.page.goto(address, wait_until='domcontentloaded', timeout=timeout_ms,
                           referer=self.referer)
        except PlaywrightTimeoutError:
            self.logger.warning(f"Navigation timed out after {timeout_ms}ms, continuing")
            return NavigationStatus.TIMEOUT
        return NavigationStatus.OK

    def current_address(self) -> str:
        return self.page.url

    def rendered_text(self, timeout_ms: int = 5000) -> str:
        try:
            return self.page.text_content('body', timeout=timeout_ms) or ''
        except PlaywrightTimeoutError:
            self.logger.warning("Could not read page content before timeout")
            return ''

    def link_targets(self) -> List[str]:
        return extract_link_targets(self.page.content())

    def click_first_submit_control(self) -> bool:
        button = self.page.query_selector(SUBMIT_SELECTOR)
        if button is None:
            return False
        self.logger.info("Submitting save form manually")
        button.click()
        return True


class PlaywrightSessionFactory:
    """
    Owns one Chromium instance for a batch and hands out scoped page sessions.

    The browser is launched lazily on the first ``open()`` and shut down by
    ``close()`` (or on leaving the ``with`` block).
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self.logger = logging.getLogger(__name__)
        self._playwright = None
        self._browser = None
        self._context = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.close()

    @property
    def started(self) -> bool:
        return self._context is not None

    def start(self):
        if self.started:
            return
        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(
                headless=self.config.headless,
                args=list(self.config.args),
            )
            self._context = self._browser.new_context(
                user_agent=self.config.user_agent,
                viewport={'width': self.config.viewport_width, 'height': self.config.viewport_height},
            )
        except Exception:
            self.close()
            raise
        self.logger.info("Browser started")

    @contextmanager
    def open(self) -> Iterator[PlaywrightPageSession]:
        self.start()
        page = self._context.new_page()
        page.set_default_timeout(self.config.default_timeout_ms)
        page.set_default_navigation_timeout(self.config.default_timeout_ms)
        try:
            yield PlaywrightPageSession(page, referer=self.config.referer)
        finally:
            try:
                page.close()
            except PlaywrightError as e:
                self.logger.debug(f"Page already closed: {e}")

    def close(self):
        """Shut down context, browser and driver; a failing step does not stop the rest."""
        context, browser, driver = self._context, self._browser, self._playwright
        self._context = self._browser = self._playwright = None
        if context is not None:
            self._shutdown("browser context", context.close)
        if browser is not None:
            self._shutdown("browser", browser.close)
            self.logger.info("Browser closed")
        if driver is not None:
            self._shutdown("Playwright driver", driver.stop)

    def _shutdown(self, name: str, step) -> None:
        try:
            step()
        except Exception as e:
            self.logger.warning(f"Error while closing {name}: {e}")
