"""Group page tokens into vertical columns by horizontal position."""

from __future__ import annotations

from statistics import median
from typing import Iterable, List, Optional, Sequence

from .models import Column, Token, TokenKind

DEFAULT_MEDIAN_GAP = 16.0
EPS_FRACTION = 0.55
EPS_MIN = 4.0
EPS_MAX = 10.0

TYPE_PRIORITY = (TokenKind.DATE, TokenKind.SESSION, TokenKind.TAG, TokenKind.DIGIT)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def adaptive_epsilon(xs: Sequence[float], eps_hint: Optional[float] = None) -> float:
    """Derive the column-merge threshold from the median gap between distinct x values."""
    gaps = [xs[i] - xs[i - 1] for i in range(1, len(xs))]
    median_gap = median(gaps) if gaps else DEFAULT_MEDIAN_GAP
    eps = clamp(round(median_gap * EPS_FRACTION), EPS_MIN, EPS_MAX)
    if eps_hint is not None:
        eps = min(eps, max(EPS_MIN, round(eps_hint)))
    return float(eps)


def column_type(tokens: Iterable[Token]) -> TokenKind:
    kinds = {token.kind for token in tokens}
    for kind in TYPE_PRIORITY:
        if kind in kinds:
            return kind
    return TokenKind.NOISE


def cluster_columns(tokens: Sequence[Token], eps_hint: Optional[float] = None) -> List[Column]:
    """Cluster tokens into columns sorted left to right.

    Tokens inside a column are ordered by descending y (top of page first).
    """
    if not tokens:
        return []

    xs = sorted({round(token.x) for token in tokens})
    eps = adaptive_epsilon(xs, eps_hint)

    groups: list[list[int]] = []
    for x in xs:
        if groups and abs(x - groups[-1][-1]) <= eps:
            groups[-1].append(x)
        else:
            groups.append([x])
    centers = sorted(round(sum(group) / len(group)) for group in groups)

    members: dict[float, list[Token]] = {}
    for token in tokens:
        best = min(centers, key=lambda center: abs(center - token.x))
        members.setdefault(best, []).append(token)

    columns = [
        Column(
            center_x=float(center),
            type=column_type(items),
            tokens=tuple(sorted(items, key=lambda t: (-t.y, t.x))),
        )
        for center, items in members.items()
    ]
    columns.sort(key=lambda column: column.center_x)
    return columns
