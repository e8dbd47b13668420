"""Collect every page of a live-component results listing.

Listings render their first page server-side and load older rows through a
live component. Three strategies are tried in order until the collected set
grows past the first page: replaying the component's paging endpoint
directly, replaying its stateful "more" action, and driving a real browser.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from .browser import BrowserSession
from .config import SourceSettings
from .errors import FetchError, LedgerError, NoRowsError
from .fetcher import HttpFetcher
from .html_rows import (
    RESULTS_TABLE,
    extract_rows_from_table,
    find_live_host,
    has_load_more,
    parse_fragment_rows,
    refreshed_props,
)
from .logging import get_logger
from .models import DrawRecord

logger = get_logger(__name__)

PROPS_KEYS = ("props", "data", "_props")


@dataclass(slots=True)
class CollectionState:
    """Rows gathered so far for one listing, unique by (date, session)."""

    url: str
    page_html: str
    rows: list[DrawRecord] = field(default_factory=list)
    first_page_count: int = 0
    _seen: set[tuple[date, str]] = field(default_factory=set)

    def add(self, records: Iterable[DrawRecord]) -> int:
        added = 0
        for record in records:
            if record.key() in self._seen:
                continue
            self._seen.add(record.key())
            self.rows.append(record)
            added += 1
        return added

    def replace(self, records: Iterable[DrawRecord]) -> None:
        self.rows = []
        self._seen = set()
        self.add(records)

    @property
    def grew(self) -> bool:
        return len(self.rows) > self.first_page_count


class PaginationStrategy(ABC):
    name = "strategy"

    def __init__(self, arity: int, session: str) -> None:
        self.arity = arity
        self.session = session

    @abstractmethod
    async def collect(self, state: CollectionState) -> None:
        """Append older rows to ``state``; stop on the first iteration without growth."""

    def rows(self, html: str) -> List[DrawRecord]:
        return parse_fragment_rows(html, self.arity, self.session)


class DirectReplayStrategy(PaginationStrategy):
    """Request ``<component>?page=N`` directly, falling back to a form POST."""

    name = "direct"

    def __init__(self, fetcher: HttpFetcher, arity: int, session: str, max_pages: int) -> None:
        super().__init__(arity, session)
        self.fetcher = fetcher
        self.max_pages = max_pages

    async def collect(self, state: CollectionState) -> None:
        host = find_live_host(state.page_html)
        paging_url = host.paging_url if host else "/_components/GameHistory"
        payload: dict[str, str] = {}
        if host and host.game:
            payload["game"] = host.game
        if host and host.id:
            payload["id"] = host.id
        endpoint = urljoin(state.url, paging_url)

        for page in range(2, self.max_pages + 1):
            query = urlencode({"page": page, **payload})
            html: Optional[str] = None
            try:
                html = await self.fetcher.get_fragment(f"{endpoint}?{query}", referer=state.url)
            except FetchError:
                try:
                    html = await self.fetcher.post_form(
                        endpoint,
                        {"page": str(page), **payload, "action": "more"},
                        referer=state.url,
                    )
                except FetchError as exc:
                    logger.info("direct_replay_failed", url=endpoint, page=page, error=str(exc))
            if not html:
                break
            records = self.rows(html)
            added = state.add(records)
            logger.debug("direct_replay_page", page=page, rows=len(records), added=added)
            if not records or not added:
                break


class StatefulReplayStrategy(PaginationStrategy):
    """Replay the component's "more" action with its serialized props."""

    name = "stateful"

    def __init__(self, fetcher: HttpFetcher, arity: int, session: str, max_iterations: int) -> None:
        super().__init__(arity, session)
        self.fetcher = fetcher
        self.max_iterations = max_iterations

    async def collect(self, state: CollectionState) -> None:
        if not has_load_more(state.page_html):
            return
        host = find_live_host(state.page_html)
        if host is None:
            logger.info("live_host_missing", url=state.url)
            return

        endpoint = urljoin(state.url, host.url)
        props = host.props
        chosen: Optional[str] = None

        for iteration in range(1, self.max_iterations + 1):
            accepted = False
            for key in (chosen,) if chosen else PROPS_KEYS:
                form = {"name": host.name, "action": "more"}
                if host.id:
                    form["id"] = host.id
                form[key] = props
                try:
                    html = await self.fetcher.post_form(endpoint, form, referer=state.url)
                except FetchError:
                    continue
                records = self.rows(html)
                if not records:
                    continue
                if chosen is None:
                    chosen = key
                    logger.debug("stateful_key_accepted", key=key)
                added = state.add(records)
                props = refreshed_props(html) or props
                logger.debug("stateful_iteration", iteration=iteration, rows=len(records), added=added)
                if not added or not has_load_more(html):
                    return
                accepted = True
                break
            if not accepted:
                logger.info("stateful_replay_stopped", url=endpoint, iteration=iteration)
                return
        logger.warning("stateful_replay_cap_reached", url=endpoint, cap=self.max_iterations)


class BrowserStrategy(PaginationStrategy):
    """Click through the listing in a real browser and re-read the whole table."""

    name = "browser"

    def __init__(self, browser: BrowserSession, arity: int, session: str) -> None:
        super().__init__(arity, session)
        self.browser = browser

    async def collect(self, state: CollectionState) -> None:
        try:
            html = await self.browser.load_all(state.url)
        except PlaywrightError as exc:
            raise FetchError(state.url, f"browser load failed: {exc}") from exc
        soup = BeautifulSoup(html, "lxml")
        table = soup.select_one(RESULTS_TABLE)
        if table is None:
            return
        collected = CollectionState(state.url, html)
        collected.add(extract_rows_from_table(table, self.arity, self.session))
        if len(collected.rows) > len(state.rows):
            state.replace(collected.rows)


class PaginatedCollector:
    """Gathers the full history of one session listing."""

    def __init__(
        self,
        fetcher: HttpFetcher,
        settings: SourceSettings,
        arity: int,
        session: str,
        browser: Optional[BrowserSession] = None,
    ) -> None:
        self.fetcher = fetcher
        self.settings = settings
        self.arity = arity
        self.session = session
        self.browser = browser

    def strategies(self) -> List[PaginationStrategy]:
        browser_ready = self.browser is not None and self.settings.enable_browser
        chain: list[PaginationStrategy] = []
        if self.settings.try_server_first or not browser_ready:
            chain.append(
                DirectReplayStrategy(self.fetcher, self.arity, self.session, self.settings.max_pages)
            )
            chain.append(
                StatefulReplayStrategy(
                    self.fetcher, self.arity, self.session, self.settings.live_more_max
                )
            )
        if browser_ready:
            chain.append(BrowserStrategy(self.browser, self.arity, self.session))
        return chain

    async def collect(self, url: str) -> List[DrawRecord]:
        html = await self.fetcher.get_text(url)
        table = BeautifulSoup(html, "lxml").select_one(RESULTS_TABLE)
        if table is None:
            raise NoRowsError(f"results table not found on {url}")

        state = CollectionState(url, html)
        state.add(extract_rows_from_table(table, self.arity, self.session))
        state.first_page_count = len(state.rows)
        logger.info("listing_first_page", url=url, rows=state.first_page_count)

        for strategy in self.strategies():
            if state.grew:
                break
            try:
                await strategy.collect(state)
            except LedgerError as exc:
                logger.warning("pagination_strategy_failed", strategy=strategy.name, error=str(exc))
            logger.info(
                "pagination_strategy_done",
                strategy=strategy.name,
                url=url,
                rows=len(state.rows),
            )

        if not state.grew:
            logger.warning("listing_not_extended", url=url, rows=len(state.rows))
        return sorted(state.rows, key=lambda record: record.date)
