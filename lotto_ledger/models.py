"""Domain models for positioned tokens, reconstructed tables and draw records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional


class TokenKind(str, Enum):
    DATE = "date"
    SESSION = "session"
    DIGIT = "digit"
    TAG = "tag"
    NOISE = "noise"


class SkipReason(str, Enum):
    NO_DATE_LEFT = "noDateLeft"
    DATE_PARSE_FAIL = "dateParseFail"
    NOT_ENOUGH_DIGITS_BEFORE_TAG = "notEnoughDigitsBeforeTag"
    NO_TAG_BUT_DIGITS_MISSING = "noTagButDigitsMissing"


class SourceRole(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class RawItem:
    """Text item as extracted from a document text layer.

    ``y`` is a baseline in PDF space, so larger values sit higher on the page.
    """

    page: int
    x: float
    y: float
    text: str


@dataclass(frozen=True, slots=True)
class Token:
    page: int
    x: float
    y: float
    text: str
    kind: TokenKind


@dataclass(frozen=True, slots=True)
class Column:
    """Tokens sharing (approximately) one horizontal position."""

    center_x: float
    type: TokenKind
    tokens: tuple[Token, ...]


@dataclass(frozen=True, slots=True)
class Pane:
    """One of several side-by-side mini tables on a page."""

    index: int
    min_x: float
    max_x: float
    columns: tuple[Column, ...]

    def columns_of(self, kind: TokenKind) -> list[Column]:
        return [column for column in self.columns if column.type is kind]


@dataclass(frozen=True, slots=True)
class DrawRecord:
    """Single draw result, keyed by (date, session)."""

    date: date
    session: str
    digits: tuple[int, ...]
    bonus: Optional[int] = None
    role: SourceRole = SourceRole.PRIMARY

    def key(self) -> tuple[date, str]:
        """Return the unique (date, session) key."""
        return (self.date, self.session)

    def optional_field_count(self) -> int:
        return int(self.bonus is not None)


@dataclass(frozen=True, slots=True)
class SkipRecord:
    page: int
    pane: int
    x: float
    y: float
    session_text: str
    reason: SkipReason


@dataclass(slots=True)
class PageResult:
    """Outcome of assembling rows for one page with one parameter set."""

    page: int
    rows: list[DrawRecord] = field(default_factory=list)
    skips: list[SkipRecord] = field(default_factory=list)
    panes: tuple[Pane, ...] = ()
    column_counts: dict[str, int] = field(default_factory=dict)
    attempt: int = 1
    params: Any = None

    @property
    def skip_rate(self) -> float:
        total = len(self.rows) + len(self.skips)
        if total == 0:
            return 1.0
        return len(self.skips) / total

    @property
    def score(self) -> float:
        return len(self.rows) - self.skip_rate
