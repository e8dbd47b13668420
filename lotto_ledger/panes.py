"""Split a page's columns into repeated side-by-side panes."""

from __future__ import annotations

from bisect import bisect_right
from typing import List, Sequence

from .logging import get_logger
from .models import Column, Pane, TokenKind

logger = get_logger(__name__)

DEFAULT_PANE_COUNT = 3
DEFAULT_PANE_GAP = 35.0
KMEANS_MAX_ITER = 20


def kmeans_1d(values: Sequence[float], k: int = DEFAULT_PANE_COUNT, max_iter: int = KMEANS_MAX_ITER) -> List[float]:
    """Unsupervised 1-D k-means returning sorted centers.

    Centers start at evenly spaced quantiles of the sorted values.
    """
    if len(values) <= k:
        return sorted(values)

    ordered = sorted(values)
    centers = [ordered[int(len(ordered) * (2 * i + 1) / (2 * k))] for i in range(k)]

    for _ in range(max_iter):
        buckets: list[list[float]] = [[] for _ in range(k)]
        for value in values:
            nearest = min(range(k), key=lambda i: abs(value - centers[i]))
            buckets[nearest].append(value)

        changed = False
        for i, bucket in enumerate(buckets):
            if not bucket:
                continue
            mean = round(sum(bucket) / len(bucket))
            if mean != centers[i]:
                centers[i] = mean
                changed = True
        if not changed:
            break
    return sorted(centers)


def _distinct_centers(values: Sequence[float], min_gap: float) -> List[float]:
    distinct: list[float] = []
    for value in sorted(set(values)):
        if distinct and value - distinct[-1] < min_gap:
            continue
        distinct.append(value)
    return distinct


def choose_anchors(date_centers: Sequence[float], k: int) -> List[float]:
    """Pick ``k`` spread-out anchors: both extremes, then farthest-point picks."""
    centers = sorted(date_centers)
    if len(centers) <= k:
        return centers
    if k == 1:
        return [centers[0]]

    anchors = [centers[0], centers[-1]]
    while len(anchors) < k:
        remaining = [c for c in centers if c not in anchors]
        best = max(remaining, key=lambda c: min(abs(c - a) for a in anchors))
        anchors.append(best)
    return sorted(anchors)


def partition_panes(
    columns: Sequence[Column],
    pane_count: int = DEFAULT_PANE_COUNT,
    pane_gap: float = DEFAULT_PANE_GAP,
) -> List[Pane]:
    core = sorted(
        (column for column in columns if column.type is not TokenKind.NOISE),
        key=lambda column: column.center_x,
    )
    if not core:
        return []

    date_centers = _distinct_centers(
        [column.center_x for column in core if column.type is TokenKind.DATE],
        pane_gap,
    )
    if len(date_centers) >= pane_count:
        anchors = choose_anchors(date_centers, pane_count)
    else:
        anchors = kmeans_1d([column.center_x for column in core], pane_count)
        logger.debug(
            "pane_anchor_fallback",
            date_centers=len(date_centers),
            anchors=anchors,
        )

    boundaries = [(anchors[i] + anchors[i + 1]) / 2 for i in range(len(anchors) - 1)]
    buckets: list[list[Column]] = [[] for _ in anchors]
    for column in core:
        buckets[bisect_right(boundaries, column.center_x)].append(column)

    panes = []
    for index, bucket in enumerate(buckets):
        xs = [column.center_x for column in bucket]
        panes.append(
            Pane(
                index=index,
                min_x=min(xs) if xs else anchors[index],
                max_x=max(xs) if xs else anchors[index],
                columns=tuple(bucket),
            )
        )
    return panes
