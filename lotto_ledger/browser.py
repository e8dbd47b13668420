"""Headless browser session used when server-side paging is not enough."""

from __future__ import annotations

import re
from contextlib import suppress
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, Playwright
from playwright.async_api import async_playwright

from .config import SourceSettings
from .html_rows import HISTORY_COMPONENT, LOAD_MORE, RESULTS_TABLE, ROW_GROUP
from .logging import get_logger

logger = get_logger(__name__)

CONSENT_BUTTON = re.compile(r"accept|agree|consent", re.IGNORECASE)
LOAD_MORE_LOCATOR = f"{LOAD_MORE}, button:has-text('Load More')"
GROWTH_POLLS = 15
GROWTH_POLL_MS = 120


class BrowserSession:
    """One browser and one context, launched on first use and owned by a single run."""

    def __init__(self, user_agent: str, settings: SourceSettings) -> None:
        self.user_agent = user_agent
        self.settings = settings
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def started(self) -> bool:
        return self._context is not None

    async def _ensure_context(self) -> BrowserContext:
        if self._context is not None:
            return self._context
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=True,
            args=["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
        )
        self._context = await self._browser.new_context(
            user_agent=self.user_agent,
            locale="en-US",
            viewport={"width": 1280, "height": 1800},
        )
        logger.info("browser_launched", source=self.settings.prefix)
        return self._context

    async def close(self) -> None:
        if self._context is not None:
            with suppress(PlaywrightError):
                await self._context.close()
        if self._browser is not None:
            with suppress(PlaywrightError):
                await self._browser.close()
        if self._playwright is not None:
            with suppress(PlaywrightError):
                await self._playwright.stop()
        self._context = None
        self._browser = None
        self._playwright = None

    async def load_all(
        self,
        url: str,
        table_selector: str = RESULTS_TABLE,
        group_selector: str = ROW_GROUP,
        button_selector: str = LOAD_MORE_LOCATOR,
        response_pattern: re.Pattern[str] = HISTORY_COMPONENT,
    ) -> str:
        """Open ``url``, keep clicking "load more" while the table grows, return the document."""
        context = await self._ensure_context()
        timeout = self.settings.browser_timeout_ms
        wait_ms = self.settings.wait_after_click_ms
        page = await context.new_page()
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
            with suppress(PlaywrightError):
                await page.get_by_role("button", name=CONSENT_BUTTON).first.click(timeout=1500)

            table = page.locator(table_selector).first
            await table.wait_for(state="visible", timeout=timeout)
            groups, height = await self._measure(table, group_selector)
            logger.debug("browser_table_ready", url=url, groups=groups, height=height)

            button = page.locator(button_selector).first
            for click in range(1, self.settings.max_clicks + 1):
                if not await _is_visible(button):
                    break
                await self._click_and_wait(page, button, response_pattern, timeout, wait_ms)

                grew = False
                for _ in range(GROWTH_POLLS):
                    new_groups, new_height = await self._measure(table, group_selector)
                    if new_groups > groups or new_height > height:
                        groups, height, grew = new_groups, new_height, True
                        break
                    await page.wait_for_timeout(GROWTH_POLL_MS)
                logger.debug("browser_click", url=url, click=click, groups=groups, grew=grew)
                if not grew:
                    break
            return await page.content()
        finally:
            with suppress(PlaywrightError):
                await page.close()

    @staticmethod
    async def _measure(table, group_selector: str) -> tuple[int, int]:
        groups = await table.locator(group_selector).count()
        box = await table.bounding_box()
        return groups, round(box["height"]) if box else 0

    @staticmethod
    async def _click_and_wait(
        page: Page,
        button,
        response_pattern: re.Pattern[str],
        timeout: int,
        wait_ms: int,
    ) -> None:
        with suppress(PlaywrightError):
            await button.scroll_into_view_if_needed(timeout=timeout)

        def is_history_response(response) -> bool:
            return bool(response_pattern.search(response.url)) and response.status in (200, 204)

        try:
            async with page.expect_response(is_history_response, timeout=max(2500, wait_ms + 500)):
                try:
                    await button.click(timeout=timeout)
                except PlaywrightError:
                    await page.mouse.wheel(0, 600)
                    await page.wait_for_timeout(250)
                    await button.click(timeout=timeout)
        except PlaywrightError as exc:
            logger.debug("browser_no_component_response", error=str(exc))
        await page.wait_for_timeout(wait_ms)


async def _is_visible(locator) -> bool:
    try:
        return await locator.is_visible()
    except PlaywrightError:
        return False
