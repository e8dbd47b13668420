"""Token classification for positioned text items.

Turns raw text-layer items into typed tokens (date, session, digit, tag,
noise). Boilerplate matched by the drop list is discarded outright.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from .logging import get_logger
from .models import RawItem, Token, TokenKind

logger = get_logger(__name__)

DASHES = re.compile(r"[\u2010\u2011\u2012\u2013\u2014\u2212]")
DATE_SHAPE = re.compile(
    r"\b(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}"
    r"|[A-Za-z]{3,9}\s+\d{1,2},?\s*\d{4}"
    r"|\d{1,2}[- ][A-Za-z]{3}[- ,]?\d{4})\b"
)
DIGIT_PATTERN = re.compile(r"^\s*-?\s*([0-9])\s*-?\s*$")

_NUMERIC_DATE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2}|\d{4})$")
_DAY_MON_YEAR = re.compile(r"^(\d{1,2})[- ]([A-Za-z]{3})[- ,]?(\d{4})$")
_MON_DAY_YEAR = re.compile(r"^([A-Za-z]{3,9})\.?\s+(\d{1,2}),?\s+(\d{4})$")
_WEEKDAY_PREFIX = re.compile(r"^(?:[A-Za-z]{3,9},\s+|[A-Za-z]{3}/)")
MONTHS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")

DEFAULT_DROP_PATTERNS = (
    r"^FLORIDA\s+LOTTERY\b",
    r"^Winning Numbers History$",
    r"^Page \d+ of \d+$",
    r"^Please note every effort",
    r"^E:\s*Evening",
    r"^M:\s*Midday",
    r"^-+$",
)

COMPOUND_OFFSET_X = 6.0


@dataclass(frozen=True, slots=True)
class ClassifierRules:
    session_codes: tuple[str, ...] = ("E", "M")
    tag_label: Optional[str] = "FB"
    drop_patterns: tuple[str, ...] = DEFAULT_DROP_PATTERNS

    def compiled_drops(self) -> list[re.Pattern[str]]:
        return [re.compile(pattern, re.IGNORECASE) for pattern in self.drop_patterns]


def normalize_dashes(text: str) -> str:
    return DASHES.sub("-", text)


def normalize_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text.replace("\u00a0", " ")).strip()


def coerce_digit(text: str) -> Optional[int]:
    """Return the single digit in ``text`` (tolerating stray dashes) or None."""
    match = DIGIT_PATTERN.match(normalize_dashes(text))
    return int(match.group(1)) if match else None


def is_date_shaped(text: str) -> bool:
    return DATE_SHAPE.search(normalize_dashes(text)) is not None


def parse_draw_date(text: str) -> Optional[date]:
    """Parse the date formats seen in result documents into a calendar date."""
    clean = normalize_spaces(normalize_dashes(text))
    if not clean:
        return None
    for candidate in (clean, _WEEKDAY_PREFIX.sub("", clean)):
        parsed = _parse_date_formats(candidate)
        if parsed is not None:
            return parsed
    return None


def _parse_date_formats(text: str) -> Optional[date]:
    match = _NUMERIC_DATE.match(text)
    if match:
        first, second, year_raw = (int(match.group(1)), int(match.group(2)), match.group(3))
        year = int(year_raw)
        if len(year_raw) == 2:
            year += 1900 if year >= 80 else 2000
        month, day = first, second
        # US documents are month-first; a leading value above 12 can only be a day.
        if first > 12 >= second:
            month, day = second, first
        return _safe_date(year, month, day)

    match = _DAY_MON_YEAR.match(text)
    if match:
        month = _month_index(match.group(2))
        if month is None:
            return None
        return _safe_date(int(match.group(3)), month, int(match.group(1)))

    match = _MON_DAY_YEAR.match(text)
    if match:
        month = _month_index(match.group(1))
        if month is None:
            return None
        return _safe_date(int(match.group(3)), month, int(match.group(2)))
    return None


def _month_index(name: str) -> Optional[int]:
    prefix = name[:3].upper()
    if prefix not in MONTHS:
        return None
    return MONTHS.index(prefix) + 1


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


class TokenClassifier:
    """Applies the classification rules of one game to raw items."""

    def __init__(self, rules: ClassifierRules) -> None:
        self.rules = rules
        self._drops = rules.compiled_drops()
        codes = "".join(re.escape(code) for code in rules.session_codes)
        self._session = re.compile(rf"^\s*[{codes}]\s*:?\s*$", re.IGNORECASE) if codes else None
        if rules.tag_label:
            label = re.escape(rules.tag_label)
            self._tag = re.compile(rf"^{label}:?\s*$", re.IGNORECASE)
            self._compound = re.compile(rf"^{label}:?\s*([0-9])$", re.IGNORECASE)
        else:
            self._tag = None
            self._compound = None

    def classify(self, item: RawItem) -> List[Token]:
        text = item.text.replace("\u00a0", " ").strip()
        if not text:
            return []
        if any(pattern.search(text) for pattern in self._drops):
            return []

        if self._compound is not None:
            compound = self._compound.match(text)
            if compound:
                return [
                    Token(item.page, item.x, item.y, self.rules.tag_label or "", TokenKind.TAG),
                    Token(
                        item.page,
                        item.x + COMPOUND_OFFSET_X,
                        item.y,
                        compound.group(1),
                        TokenKind.DIGIT,
                    ),
                ]

        if is_date_shaped(text):
            return [Token(item.page, item.x, item.y, text, TokenKind.DATE)]
        if self._session is not None and self._session.match(text):
            return [Token(item.page, item.x, item.y, text, TokenKind.SESSION)]
        if self._tag is not None and self._tag.match(text):
            return [Token(item.page, item.x, item.y, text, TokenKind.TAG)]
        digit = coerce_digit(text)
        if digit is not None:
            return [Token(item.page, item.x, item.y, str(digit), TokenKind.DIGIT)]
        return [Token(item.page, item.x, item.y, text, TokenKind.NOISE)]


def classify_items(
    items: Iterable[RawItem],
    rules: ClassifierRules,
    verbose: bool = False,
) -> List[Token]:
    classifier = TokenClassifier(rules)
    tokens: List[Token] = []
    for item in items:
        tokens.extend(classifier.classify(item))

    if verbose:
        per_page: dict[int, Counter] = {}
        for token in tokens:
            per_page.setdefault(token.page, Counter())[token.kind.value] += 1
        for page, counts in sorted(per_page.items()):
            logger.info("token_kind_counts", page=page, **dict(counts))
    return tokens
