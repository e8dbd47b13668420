"""Draw history PDFs: download, text-layer extraction and table reconstruction."""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field
from datetime import date
from itertools import groupby
from pathlib import Path
from typing import List, Optional, Sequence

import pdfplumber

from .assembler import RowLayout
from .config import game_override
from .errors import FetchError
from .fetcher import HttpFetcher
from .games import GameSpec
from .html_rows import discover_pdf_link
from .logging import get_logger
from .models import DrawRecord, PageResult, RawItem, SkipRecord, Token
from .tokens import classify_items
from .tuner import tune_page

logger = get_logger(__name__)


def extract_items(pdf_bytes: bytes) -> List[RawItem]:
    """Positioned words of every page, with ``y`` measured upward from the page bottom."""
    items: List[RawItem] = []
    with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
        for page_no, page in enumerate(pdf.pages, start=1):
            height = float(page.height)
            for word in page.extract_words(keep_blank_chars=True, use_text_flow=False):
                text = (word.get("text") or "").strip()
                if not text:
                    continue
                items.append(
                    RawItem(
                        page=page_no,
                        x=float(word.get("x0", 0.0)),
                        y=height - float(word.get("bottom", 0.0)),
                        text=text,
                    )
                )
    return items


@dataclass(slots=True)
class LayoutRun:
    pages: List[PageResult] = field(default_factory=list)

    @property
    def skips(self) -> List[SkipRecord]:
        return [skip for page in self.pages for skip in page.skips]

    @property
    def records(self) -> List[DrawRecord]:
        """Rows unique by (date, session); a row carrying a bonus beats one without."""
        unique: dict[tuple[date, str], DrawRecord] = {}
        for page in self.pages:
            for row in page.rows:
                current = unique.get(row.key())
                if current is None or (current.bonus is None and row.bonus is not None):
                    unique[row.key()] = row
        return sorted(unique.values(), key=lambda row: (row.date, row.session))

    def records_for(self, session: str) -> List[DrawRecord]:
        return [row for row in self.records if row.session == session]


def build_rows(tokens: Sequence[Token], layout: RowLayout, verbose: bool = False) -> LayoutRun:
    run = LayoutRun()
    ordered = sorted(tokens, key=lambda token: token.page)
    for page, page_tokens in groupby(ordered, key=lambda token: token.page):
        result = tune_page(list(page_tokens), page, layout)
        run.pages.append(result)
        logger.info(
            "page_built",
            page=page,
            rows=len(result.rows),
            skips=len(result.skips),
            attempt=result.attempt,
        )
        if verbose:
            logger.info("page_columns", page=page, **result.column_counts)
            for skip in result.skips[:10]:
                logger.info(
                    "page_skip_sample",
                    page=page,
                    pane=skip.pane,
                    x=round(skip.x),
                    y=round(skip.y),
                    session=skip.session_text,
                    reason=skip.reason.value,
                )
        if not result.rows:
            logger.warning("page_low_yield", page=page, skips=len(result.skips))
    return run


def parse_pdf(pdf_bytes: bytes, game: GameSpec, verbose: bool = False) -> tuple[List[Token], LayoutRun]:
    items = extract_items(pdf_bytes)
    tokens = classify_items(items, game.classifier_rules(), verbose=verbose)
    return tokens, build_rows(tokens, game.row_layout(), verbose=verbose)


async def load_pdf_bytes(
    game: GameSpec,
    fetcher: HttpFetcher,
    local_path: Optional[Path] = None,
) -> bytes:
    """Local override, then configured URL, then the default URL, then the game page link."""
    path = local_path or game_override(game.env_prefix, "PDF_PATH")
    if path:
        logger.info("pdf_local", game=game.key, path=str(path))
        return await asyncio.to_thread(Path(path).expanduser().read_bytes)

    url = game_override(game.env_prefix, "PDF_URL")
    if url:
        return await fetcher.get_bytes(url)
    if not game.pdf_url:
        raise FetchError(game.key, "no PDF source configured")

    try:
        return await fetcher.get_bytes(game.pdf_url)
    except FetchError as exc:
        if not game.game_page_url:
            raise
        logger.warning("pdf_default_url_failed", game=game.key, error=str(exc))
        html = await fetcher.get_text(game.game_page_url)
        link = discover_pdf_link(html, game.game_page_url, game.pdf_link_regex())
        if link is None:
            raise FetchError(game.game_page_url, "history PDF link not found") from exc
        logger.info("pdf_link_discovered", game=game.key, url=link)
        return await fetcher.get_bytes(link)
