"""CSV dumps written when a document yields nothing (or when asked to)."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable, Sequence

from .logging import get_logger
from .models import PageResult, Token

logger = get_logger(__name__)

TOKEN_DUMP_HEADER = ["page", "x", "y", "kind", "text"]
DEBUG_TRACE_HEADER = ["page", "pane", "column", "x", "y", "kind", "text"]


def _fmt(value: float) -> str:
    return f"{value:.1f}"


def write_token_dump(path: Path, tokens: Iterable[Token]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, lineterminator="\n")
        writer.writerow(TOKEN_DUMP_HEADER)
        for token in tokens:
            writer.writerow([token.page, _fmt(token.x), _fmt(token.y), token.kind.value, token.text])
            count += 1
    logger.warning("token_dump_written", path=str(path), tokens=count)
    return path


def write_debug_trace(path: Path, pages: Sequence[PageResult]) -> Path:
    """Every token with its pane and column position, page by page."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, lineterminator="\n")
        writer.writerow(DEBUG_TRACE_HEADER)
        for result in pages:
            for pane in result.panes:
                for column_index, column in enumerate(pane.columns):
                    for token in column.tokens:
                        writer.writerow(
                            [
                                result.page,
                                pane.index,
                                column_index,
                                _fmt(token.x),
                                _fmt(token.y),
                                token.kind.value,
                                token.text,
                            ]
                        )
    logger.info("debug_trace_written", path=str(path), pages=len(pages))
    return path
