"""Seed and update runs: fetch a game's sources and merge them into its ledgers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from .browser import BrowserSession
from .collector import PaginatedCollector
from .config import AppConfig, SourceSettings
from .diagnostics import write_debug_trace, write_token_dump
from .errors import FetchError, LedgerError, NoRowsError
from .fetcher import NO_CACHE_HEADERS, HttpFetcher
from .games import GameSpec, SessionSpec
from .html_rows import RESULTS_TABLE, extract_rows_from_table, is_pending_results, parse_latest_card
from .ledger import Ledger, MergeResult
from .logging import get_logger
from .models import DrawRecord, SourceRole
from .pdf_source import load_pdf_bytes, parse_pdf

logger = get_logger(__name__)

FetcherFactory = Callable[[SourceSettings], HttpFetcher]
BrowserFactory = Callable[[SourceSettings], BrowserSession]
RecordsBySession = Dict[str, List[DrawRecord]]


@dataclass(slots=True)
class RunReport:
    game: str
    session: str
    path: Path
    parsed: int
    added: int = 0
    replaced: int = 0
    dropped_stale: int = 0
    rejected: int = 0
    total: int = 0

    @classmethod
    def from_merge(
        cls, game: GameSpec, session: SessionSpec, path: Path, parsed: int, result: MergeResult
    ) -> "RunReport":
        return cls(
            game=game.key,
            session=session.label,
            path=path,
            parsed=parsed,
            added=result.added,
            replaced=result.replaced,
            dropped_stale=result.dropped_stale,
            rejected=result.rejected,
            total=result.total,
        )


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}/"


class LedgerLoader:
    def __init__(
        self,
        config: AppConfig,
        fetcher_factory: Optional[FetcherFactory] = None,
        browser_factory: Optional[BrowserFactory] = None,
    ) -> None:
        self.config = config
        self.fetcher_factory = fetcher_factory
        self.browser_factory = browser_factory

    def _fetcher(self, settings: SourceSettings) -> HttpFetcher:
        if self.fetcher_factory is not None:
            return self.fetcher_factory(settings)
        return HttpFetcher(settings, self.config.http_user_agent)

    def _browser(self, settings: SourceSettings) -> Optional[BrowserSession]:
        if not settings.enable_browser:
            return None
        if self.browser_factory is not None:
            return self.browser_factory(settings)
        return BrowserSession(self.config.http_user_agent, settings)

    async def seed(self, game: GameSpec) -> List[RunReport]:
        """Rebuild every ledger of ``game`` from its full history."""
        logger.info("seed_start", game=game.key)
        settings = self.config.source(game.source_prefix)
        async with self._fetcher(settings) as fetcher:
            if game.is_pdf:
                by_session = await self._from_pdf(game, fetcher, settings)
            else:
                by_session = await self._from_listings(game, fetcher, settings)
        self._require_rows(game, by_session)

        reports = []
        for session in game.sessions:
            records = by_session.get(session.label, [])
            ledger = Ledger.for_session(game, session, self.config.data_dir)
            if not records:
                logger.warning("seed_session_empty", game=game.key, session=session.label)
                continue
            result = ledger.seed(records)
            reports.append(RunReport.from_merge(game, session, ledger.path, len(records), result))
        return reports

    async def update(self, game: GameSpec) -> List[RunReport]:
        """Merge the newest results of ``game`` into its existing ledgers."""
        logger.info("update_start", game=game.key)
        settings = self.config.source(game.source_prefix)
        async with self._fetcher(settings) as fetcher:
            if game.is_pdf:
                by_session = await self._from_pdf(game, fetcher, settings)
            else:
                by_session = await self._latest(game, fetcher)
        self._require_rows(game, by_session)

        # Every ledger is read and merged before any is written.
        planned = []
        for session in game.sessions:
            records = by_session.get(session.label, [])
            ledger = Ledger.for_session(game, session, self.config.data_dir)
            planned.append((session, ledger, len(records), ledger.merge(records)))

        reports = []
        for session, ledger, parsed, result in planned:
            ledger.commit(result)
            reports.append(RunReport.from_merge(game, session, ledger.path, parsed, result))
        return reports

    @staticmethod
    def _require_rows(game: GameSpec, by_session: RecordsBySession) -> None:
        if not any(by_session.values()):
            logger.error("no_rows", game=game.key)
            raise NoRowsError(f"{game.key}: zero rows obtained from all sources")

    async def _from_pdf(
        self, game: GameSpec, fetcher: HttpFetcher, settings: SourceSettings
    ) -> RecordsBySession:
        pdf_bytes = await load_pdf_bytes(game, fetcher)
        tokens, run = await asyncio.to_thread(parse_pdf, pdf_bytes, game, settings.verbose)
        if settings.verbose:
            write_debug_trace(game.debug_path(self.config.data_dir, "debug"), run.pages)

        records = run.records
        logger.info(
            "pdf_parsed",
            game=game.key,
            pages=len(run.pages),
            rows=len(records),
            skips=len(run.skips),
        )
        if not records:
            write_token_dump(game.debug_path(self.config.data_dir, "tokens"), tokens)
        return {session.label: run.records_for(session.label) for session in game.sessions}

    async def _from_listings(
        self, game: GameSpec, fetcher: HttpFetcher, settings: SourceSettings
    ) -> RecordsBySession:
        browser = self._browser(settings)

        async def collect(session: SessionSpec) -> tuple[str, List[DrawRecord]]:
            if not session.listing_url:
                return session.label, []
            collector = PaginatedCollector(fetcher, settings, game.arity, session.label, browser)
            try:
                return session.label, await collector.collect(session.listing_url)
            except LedgerError as exc:
                logger.warning(
                    "listing_failed", game=game.key, session=session.label, error=str(exc)
                )
                return session.label, []

        try:
            if browser is None:
                results = await asyncio.gather(*(collect(session) for session in game.sessions))
            else:
                # One shared browser page at a time.
                results = [await collect(session) for session in game.sessions]
        finally:
            if browser is not None:
                await browser.close()
        return dict(results)

    async def _latest(self, game: GameSpec, fetcher: HttpFetcher) -> RecordsBySession:
        records: List[DrawRecord] = []
        if game.card_url:
            referer = _origin(game.card_url)
            try:
                html = await fetcher.get_text(game.card_url, referer=referer)
                records = parse_latest_card(html, game)
                if not records and not is_pending_results(html):
                    logger.info("card_retry_no_cache", game=game.key)
                    html = await fetcher.get_text(
                        game.card_url, headers=NO_CACHE_HEADERS, referer=referer
                    )
                    records = parse_latest_card(html, game)
            except FetchError as exc:
                logger.warning("card_fetch_failed", game=game.key, error=str(exc))

        by_session: RecordsBySession = {session.label: [] for session in game.sessions}
        for record in records:
            by_session.setdefault(record.session, []).append(record)

        for session in game.sessions:
            if by_session[session.label] or not session.listing_url:
                continue
            fallback = await self._latest_from_listing(game, session, fetcher)
            if fallback is not None:
                logger.info(
                    "fallback_latest",
                    game=game.key,
                    session=session.label,
                    date=fallback.date.isoformat(),
                )
                by_session[session.label].append(fallback)
        return by_session

    async def _latest_from_listing(
        self, game: GameSpec, session: SessionSpec, fetcher: HttpFetcher
    ) -> Optional[DrawRecord]:
        try:
            html = await fetcher.get_text(session.listing_url)
        except FetchError as exc:
            logger.warning("fallback_fetch_failed", game=game.key, error=str(exc))
            return None
        table = BeautifulSoup(html, "lxml").select_one(RESULTS_TABLE)
        if table is None:
            return None
        rows = extract_rows_from_table(table, game.arity, session.label, role=SourceRole.FALLBACK)
        return max(rows, key=lambda row: row.date) if rows else None
