"""Reconstruct draw rows from the panes of one page.

For every session marker the assembler looks for the date on its left, an
optional tag/bonus pair on its right, and the fixed-size digit group on the
same baseline. Matching escalates through progressively wider windows,
including look-ahead into the next one or two panes for layouts that push
columns across a pane boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from statistics import median
from typing import Callable, List, Optional, Sequence

from .columns import clamp, cluster_columns
from .logging import get_logger
from .models import (
    Column,
    DrawRecord,
    PageResult,
    Pane,
    SkipReason,
    SkipRecord,
    Token,
    TokenKind,
)
from .panes import DEFAULT_PANE_GAP, partition_panes
from .tokens import parse_draw_date

logger = get_logger(__name__)

LOOKAHEAD_PANES = 2
REFERENCE_OFFSET_X = 80.0


@dataclass(frozen=True, slots=True)
class AssemblyParams:
    y_tol: float = 9.0
    y_tol_tag: float = 12.0
    y_slack: float = 0.0
    tag_slack: float = 0.0
    eps_hint: float = 8.0
    pane_gap: float = DEFAULT_PANE_GAP


@dataclass(frozen=True, slots=True)
class RowLayout:
    """Game-specific shape of a results table."""

    arity: int
    session_labels: tuple[tuple[str, str], ...] = (("M", "midday"), ("E", "evening"))
    pane_count: int = 3
    bonus_exclusion_radius: float = 14.0

    def session_for(self, marker: str) -> Optional[str]:
        code = marker.strip().rstrip(":").strip().upper()
        for candidate, label in self.session_labels:
            if candidate.upper() == code:
                return label
        return None


@dataclass(frozen=True, slots=True)
class _Exclusion:
    x: float
    radius: float

    def covers(self, x: float) -> bool:
        return abs(x - self.x) <= self.radius


def _is_digit(token: Token) -> bool:
    return token.kind is TokenKind.DIGIT


def _is_tag(token: Token) -> bool:
    return token.kind is TokenKind.TAG


def _is_date(token: Token) -> bool:
    return token.kind is TokenKind.DATE


def nearest_y(
    column: Column,
    y: float,
    tolerance: float,
    predicate: Callable[[Token], bool],
) -> Optional[Token]:
    """Token of ``column`` closest to ``y`` within ``tolerance``."""
    best: Optional[Token] = None
    best_dy = float("inf")
    for token in column.tokens:
        if not predicate(token):
            continue
        dy = abs(token.y - y)
        if dy <= tolerance and dy < best_dy:
            best = token
            best_dy = dy
    return best


def pane_tolerances(pane: Pane, params: AssemblyParams) -> tuple[float, float]:
    """Vertical tolerances (main, tag) derived from the pane's own row pitch."""
    ys = sorted(
        (
            token.y
            for column in pane.columns_of(TokenKind.SESSION)
            for token in column.tokens
            if token.kind is TokenKind.SESSION
        ),
        reverse=True,
    )
    diffs = [ys[i - 1] - ys[i] for i in range(1, len(ys)) if ys[i - 1] - ys[i] > 0]
    if diffs:
        pitch = median(diffs)
        y_tol = clamp(0.25 * pitch, 7.0, 12.0)
        y_tol_tag = clamp(0.35 * pitch, 10.0, 16.0)
    else:
        y_tol, y_tol_tag = params.y_tol, params.y_tol_tag
    return y_tol + params.y_slack, y_tol_tag + params.tag_slack


def pick_digits(
    n: int,
    columns: Sequence[Column],
    x_min: float,
    x_max: Optional[float],
    y: float,
    tolerance: float,
    group_eps: float,
    exclude: Optional[_Exclusion] = None,
) -> Optional[List[Token]]:
    """Pick ``n`` digits on baseline ``y`` from columns strictly between x bounds.

    Candidates are ranked by vertical distance, then by horizontal distance to
    a reference point inside the window; the winners come back in x order.
    """
    ref_x = x_min + REFERENCE_OFFSET_X if x_max is None else (x_min + x_max) / 2

    scored: list[tuple[float, float, float, Token]] = []
    for column in columns:
        if not (column.center_x > x_min and (x_max is None or column.center_x < x_max)):
            continue
        if exclude and exclude.covers(column.center_x):
            continue
        token = nearest_y(column, y, tolerance, _is_digit)
        if token is None or (exclude and exclude.covers(token.x)):
            continue
        scored.append((abs(token.y - y), abs(column.center_x - ref_x), column.center_x, token))

    scored.sort(key=lambda entry: (entry[0], entry[1]))
    top = sorted(scored[:n], key=lambda entry: entry[2])
    if len(top) == n:
        return [entry[3] for entry in top]

    # Token scan, one digit per x-group, for columns the clusterer merged or split.
    loose = sorted(
        (
            token
            for column in columns
            for token in column.tokens
            if _is_digit(token)
            and token.x > x_min
            and (x_max is None or token.x < x_max)
            and abs(token.y - y) <= tolerance
            and not (exclude and exclude.covers(token.x))
        ),
        key=lambda token: token.x,
    )
    if not loose:
        return None

    groups: list[list[Token]] = []
    for token in loose:
        if groups and abs(groups[-1][-1].x - token.x) <= group_eps:
            groups[-1].append(token)
        else:
            groups.append([token])
    picked = sorted(
        (min(group, key=lambda token: abs(token.y - y)) for group in groups),
        key=lambda token: token.x,
    )[:n]
    return picked if len(picked) == n else None


def pick_digits_by_columns(
    n: int,
    pane: Pane,
    y: float,
    tolerance: float,
    exclude: Optional[_Exclusion] = None,
) -> Optional[List[Token]]:
    """Last resort: the ``n`` digit columns of the pane closest to baseline ``y``."""
    center = (pane.min_x + pane.max_x) / 2
    ranked: list[tuple[float, float, float, Token]] = []
    for column in pane.columns_of(TokenKind.DIGIT):
        if not (pane.min_x <= column.center_x <= pane.max_x):
            continue
        if exclude and exclude.covers(column.center_x):
            continue
        token = nearest_y(column, y, tolerance, _is_digit)
        if token is None:
            continue
        ranked.append((abs(token.y - y), abs(column.center_x - center), column.center_x, token))

    if len(ranked) < n:
        return None
    ranked.sort(key=lambda entry: (entry[0], entry[1]))
    return [entry[3] for entry in sorted(ranked[:n], key=lambda entry: entry[2])]


def _windows(panes: Sequence[Pane], index: int, kind: TokenKind) -> List[List[Column]]:
    """Columns of ``kind`` for the pane alone, then extended by up to two panes."""
    windows: list[list[Column]] = []
    collected: list[Column] = []
    for offset in range(LOOKAHEAD_PANES + 1):
        position = index + offset
        if position >= len(panes):
            break
        collected = collected + panes[position].columns_of(kind)
        windows.append(collected)
    return windows


def _find_tag(
    session: Token,
    tag_windows: List[List[Column]],
    digit_windows: List[List[Column]],
    tolerance: float,
) -> tuple[Optional[Token], Optional[Token]]:
    for tag_columns, digit_columns in zip(tag_windows, digit_windows):
        candidates = sorted(
            (column for column in tag_columns if column.center_x > session.x),
            key=lambda column: column.center_x,
        )
        matched = (
            (column, nearest_y(column, session.y, tolerance, _is_tag)) for column in candidates
        )
        tag_column, tag = next(
            ((column, token) for column, token in matched if token is not None),
            (None, None),
        )
        if tag is None:
            continue
        # A split "FB 8" glyph run can leave the bonus digit inside the tag column.
        bonus = min(
            (
                token
                for column in [*digit_columns, tag_column]
                for token in column.tokens
                if _is_digit(token) and token.x > tag.x and abs(token.y - tag.y) <= tolerance
            ),
            key=lambda token: token.x,
            default=None,
        )
        return tag, bonus
    return None, None


def assemble_rows(
    panes: Sequence[Pane],
    page: int,
    layout: RowLayout,
    params: AssemblyParams,
) -> PageResult:
    result = PageResult(page=page, panes=tuple(panes))
    n = layout.arity

    for pane in panes:
        if not pane.columns:
            continue
        y_tol, y_tol_tag = pane_tolerances(pane, params)
        date_columns = pane.columns_of(TokenKind.DATE)
        tag_windows = _windows(panes, pane.index, TokenKind.TAG)
        digit_windows = _windows(panes, pane.index, TokenKind.DIGIT)

        sessions = sorted(
            (
                token
                for column in pane.columns_of(TokenKind.SESSION)
                for token in column.tokens
                if token.kind is TokenKind.SESSION
            ),
            key=lambda token: (-token.y, token.x),
        )

        for session in sessions:

            def skip(reason: SkipReason) -> None:
                result.skips.append(
                    SkipRecord(page, pane.index, session.x, session.y, session.text, reason)
                )
                logger.debug(
                    "row_skipped",
                    page=page,
                    pane=pane.index,
                    x=round(session.x),
                    y=round(session.y),
                    reason=reason.value,
                )

            label = layout.session_for(session.text)
            if label is None:
                continue

            left = [column for column in date_columns if column.center_x < session.x]
            date_token = None
            if left:
                date_column = max(left, key=lambda column: column.center_x)
                date_token = nearest_y(date_column, session.y, y_tol, _is_date)
            if date_token is None:
                skip(SkipReason.NO_DATE_LEFT)
                continue
            draw_date = parse_draw_date(date_token.text)
            if draw_date is None:
                skip(SkipReason.DATE_PARSE_FAIL)
                continue

            tag, bonus_token = _find_tag(session, tag_windows, digit_windows, y_tol_tag)
            exclude = (
                _Exclusion(bonus_token.x, layout.bonus_exclusion_radius)
                if bonus_token is not None
                else None
            )

            picked: Optional[List[Token]] = None
            if tag is not None:
                for columns in digit_windows:
                    picked = pick_digits(n, columns, session.x, tag.x, session.y, y_tol, params.eps_hint)
                    if picked:
                        break
                if not picked:
                    for columns in digit_windows:
                        picked = pick_digits(
                            n, columns, tag.x, None, session.y, y_tol, params.eps_hint, exclude
                        )
                        if picked:
                            break
            else:
                for columns in digit_windows:
                    picked = pick_digits(n, columns, session.x, None, session.y, y_tol, params.eps_hint)
                    if picked:
                        break
            if not picked:
                picked = pick_digits_by_columns(n, pane, session.y, y_tol, exclude)

            if not picked or len(picked) != n:
                skip(
                    SkipReason.NOT_ENOUGH_DIGITS_BEFORE_TAG
                    if tag is not None
                    else SkipReason.NO_TAG_BUT_DIGITS_MISSING
                )
                continue

            result.rows.append(
                DrawRecord(
                    date=draw_date,
                    session=label,
                    digits=tuple(int(token.text) for token in picked),
                    bonus=int(bonus_token.text) if bonus_token is not None else None,
                )
            )
    return result


def build_page(
    tokens: Sequence[Token],
    page: int,
    layout: RowLayout,
    params: AssemblyParams,
) -> PageResult:
    """Cluster, partition and assemble one page with a single parameter set."""
    columns = cluster_columns(tokens, params.eps_hint)
    counts: dict[str, int] = {}
    for column in columns:
        counts[column.type.value] = counts.get(column.type.value, 0) + 1

    core = [column for column in columns if column.type is not TokenKind.NOISE]
    if len(core) < 2:
        logger.warning("page_structure_unrecognized", page=page, columns=len(columns))
        return PageResult(page=page, column_counts=counts)

    panes = partition_panes(columns, layout.pane_count, params.pane_gap)
    result = assemble_rows(panes, page, layout, params)
    result.column_counts = counts
    return result
