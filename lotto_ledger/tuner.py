"""Per-page parameter escalation around the row assembler."""

from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Sequence

from .assembler import AssemblyParams, RowLayout, build_page
from .logging import get_logger
from .models import PageResult, Token

logger = get_logger(__name__)

ACCEPT_SKIP_RATE = 0.25
MAX_ATTEMPTS = 3


def escalation_schedule(base: AssemblyParams) -> List[AssemblyParams]:
    """Baseline, then wider vertical tolerances, then looser clustering too."""
    widened = replace(base, y_slack=base.y_slack + 2, tag_slack=base.tag_slack + 2)
    loosened = replace(widened, eps_hint=10.0, pane_gap=28.0)
    return [base, widened, loosened]


def tune_page(
    tokens: Sequence[Token],
    page: int,
    layout: RowLayout,
    base: Optional[AssemblyParams] = None,
    max_attempts: int = MAX_ATTEMPTS,
    accept_skip_rate: float = ACCEPT_SKIP_RATE,
) -> PageResult:
    best: Optional[PageResult] = None
    schedule = escalation_schedule(base or AssemblyParams())[: max(1, max_attempts)]

    for attempt, params in enumerate(schedule, start=1):
        result = build_page(tokens, page, layout, params)
        result.attempt = attempt
        result.params = params
        logger.debug(
            "page_attempt",
            page=page,
            attempt=attempt,
            rows=len(result.rows),
            skips=len(result.skips),
            skip_rate=round(result.skip_rate, 3),
        )
        if best is None or result.score > best.score:
            best = result
        if result.rows and result.skip_rate <= accept_skip_rate:
            break

    assert best is not None
    if best.attempt > 1:
        logger.info("page_tuned", page=page, attempt=best.attempt, rows=len(best.rows))
    return best
