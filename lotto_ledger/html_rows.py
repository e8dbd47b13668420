"""HTML parsing for results listings, live-component fragments and result cards."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, List, Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, Tag
import dateparser

from .logging import get_logger
from .models import DrawRecord, SourceRole
from .tokens import normalize_dashes, normalize_spaces, parse_draw_date

if TYPE_CHECKING:
    from .games import GameSpec

logger = get_logger(__name__)

RESULTS_TABLE = "table#history-table-all-new"
ROW_GROUP = "tbody[id^='page--']"
FRAGMENT_SCOPES = f"{RESULTS_TABLE}, {ROW_GROUP}, table .c-results-table__group"
RESULT_ROWS = "tr.c-results-table__item, tr.c-results-table__item--medium"
RESULT_CELL = "td.c-draw-card__result"
LIVE_HOSTS = "[data-controller='live']"
LOAD_MORE = "button[data-action='live#action'][data-live-action-param='more']"
LOAD_MORE_TEXT = re.compile(r"load\s+more", re.IGNORECASE)
HISTORY_COMPONENT = re.compile(r"gamehistory", re.IGNORECASE)
GLOBAL_HEADER = re.compile(r"globalheader", re.IGNORECASE)
DEFAULT_LIVE_URL = "/_components/GameHistory"
DEFAULT_LIVE_NAME = "GameHistory"

PENDING_PATTERNS = (
    re.compile(r"\bnext\s*draw\b"),
    re.compile(r"\bresults\s+are\s+coming\s+soon\b"),
    re.compile(r"\bdraw\s+entry\s+is\s+closed\b"),
)
LOOSE_DATE = re.compile(
    r"\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2},?\s+\d{4}\b",
    re.IGNORECASE,
)
SINGLE_DIGIT = re.compile(r"\b\d\b")
CARD_SESSION_SUFFIX = re.compile(r"-\s*(MIDDAY|EVENING)\s*$", re.IGNORECASE)
CARD_TEXT = re.compile(
    r"(?:[A-Z]{3}/)?([A-Z]{3,9}\s+\d{1,2},\s+\d{4})\s*-\s*(MIDDAY|EVENING)",
    re.IGNORECASE,
)
PDF_LINK_TEXT = re.compile(r"winning\s+numbers?\s+history", re.IGNORECASE)

Markup = Union[str, BeautifulSoup, Tag]


def _soup(markup: Markup) -> Union[BeautifulSoup, Tag]:
    if isinstance(markup, (BeautifulSoup, Tag)):
        return markup
    return BeautifulSoup(markup, "lxml")


def _text(node: Tag) -> str:
    return normalize_spaces(node.get_text(" ", strip=True))


def parse_listing_date(text: str) -> Optional[date]:
    """Parse listing dates such as ``Sunday, Oct 19, 2025`` or ``10/19/2025``."""
    clean = normalize_spaces(normalize_dashes(text))
    if not clean:
        return None
    parsed = parse_draw_date(clean)
    if parsed is not None:
        return parsed
    fallback = dateparser.parse(
        clean,
        languages=["en"],
        settings={"DATE_ORDER": "MDY", "STRICT_PARSING": True},
    )
    return fallback.date() if fallback else None


def _leaf_digits(cell: Tag) -> List[int]:
    digits: list[int] = []
    for element in cell.find_all(True):
        if element.find(True) is not None:
            continue
        text = _text(element)
        if re.fullmatch(r"\d", text):
            digits.append(int(text))
    return digits


def extract_rows_from_table(
    scope: Markup,
    arity: int,
    session: str,
    role: SourceRole = SourceRole.PRIMARY,
) -> List[DrawRecord]:
    """Read result rows (newest first, as listed) from a results table or row group."""
    root = _soup(scope)
    rows: list[DrawRecord] = []
    for tr in root.select(RESULT_ROWS):
        first_cell = tr.find(["th", "td"])
        if first_cell is None:
            continue
        time_node = first_cell.find("time")
        date_text = _text(time_node) if time_node else _text(first_cell)
        draw_date = parse_listing_date(date_text)
        if draw_date is None:
            continue

        cell = tr.select_one(RESULT_CELL)
        if cell is None:
            cells = tr.find_all("td")
            if not cells:
                continue
            cell = cells[min(1, len(cells) - 1)]

        digits = _leaf_digits(cell)
        if len(digits) < arity:
            for match in SINGLE_DIGIT.findall(_text(cell)):
                if len(digits) >= arity:
                    break
                digits.append(int(match))
        if len(digits) >= arity:
            rows.append(DrawRecord(draw_date, session, tuple(digits[:arity]), role=role))
    return rows


def extract_rows_loose(
    markup: Markup,
    arity: int,
    session: str,
    role: SourceRole = SourceRole.PRIMARY,
) -> List[DrawRecord]:
    """Pair free-text dates with the next text run holding enough single digits."""
    root = _soup(markup)
    rows: list[DrawRecord] = []
    pending: Optional[str] = None
    for node in root.find_all(string=True):
        if isinstance(node, Comment) or node.parent is None or node.parent.name in {"script", "style"}:
            continue
        text = normalize_spaces(str(node))
        if not text:
            continue
        if pending is None and LOOSE_DATE.search(text):
            pending = text
            continue
        if pending is not None:
            digits = SINGLE_DIGIT.findall(text)
            if len(digits) >= arity:
                draw_date = parse_listing_date(pending)
                if draw_date is not None:
                    rows.append(
                        DrawRecord(draw_date, session, tuple(int(d) for d in digits[:arity]), role=role)
                    )
                pending = None
    return rows


def parse_fragment_rows(
    markup: Markup,
    arity: int,
    session: str,
    role: SourceRole = SourceRole.PRIMARY,
) -> List[DrawRecord]:
    """Rows from a full page or a live-component fragment."""
    root = _soup(markup)
    table = root.select_one(RESULTS_TABLE)
    if table is not None:
        return extract_rows_from_table(table, arity, session, role)
    groups = root.select(FRAGMENT_SCOPES)
    if groups:
        rows: list[DrawRecord] = []
        for group in groups:
            rows.extend(extract_rows_from_table(group, arity, session, role))
        return rows
    return extract_rows_loose(root, arity, session, role)


def has_load_more(markup: Markup) -> bool:
    root = _soup(markup)
    if root.select_one(LOAD_MORE) is not None:
        return True
    return any(LOAD_MORE_TEXT.search(_text(button)) for button in root.find_all("button"))


@dataclass(slots=True)
class LiveHost:
    """Attributes of the live component that renders the history table."""

    url: str
    name: str
    id: str
    props: str

    @property
    def game(self) -> str:
        try:
            payload = json.loads(self.props or "{}")
        except ValueError:
            return ""
        if isinstance(payload, dict) and payload.get("game") is not None:
            return str(payload["game"])
        return ""

    @property
    def paging_url(self) -> str:
        return self.url if HISTORY_COMPONENT.search(self.url) else DEFAULT_LIVE_URL


def _score_host(node: Tag) -> int:
    name = node.get("data-live-name-value", "")
    url = node.get("data-live-url-value", "")
    score = 0
    if HISTORY_COMPONENT.search(name) or HISTORY_COMPONENT.search(url):
        score += 2
    if node.select_one(RESULTS_TABLE) is not None:
        score += 2
    if has_load_more(node):
        score += 1
    if node.has_attr("data-live-props-value"):
        score += 1
    return score


def find_live_host(markup: Markup) -> Optional[LiveHost]:
    """Pick the live component most likely to own the results table.

    Ties go to the candidate closest to the table among its ancestors. A
    global-header component is never used for paging.
    """
    root = _soup(markup)
    candidates = root.select(LIVE_HOSTS)
    if not candidates:
        return None

    table = root.select_one(RESULTS_TABLE)
    ancestors = list(table.parents) if table is not None else []

    def rank(node: Tag) -> tuple[int, int]:
        distance = next((i for i, parent in enumerate(ancestors) if parent is node), 9999)
        return (_score_host(node), -distance)

    best = max(candidates, key=rank)

    host = LiveHost(
        url=best.get("data-live-url-value") or DEFAULT_LIVE_URL,
        name=best.get("data-live-name-value") or DEFAULT_LIVE_NAME,
        id=best.get("id") or "",
        props=best.get("data-live-props-value") or "{}",
    )
    if GLOBAL_HEADER.search(host.name) or GLOBAL_HEADER.search(host.url):
        history = next(
            (
                node
                for node in candidates
                if HISTORY_COMPONENT.search(node.get("data-live-name-value", ""))
                or HISTORY_COMPONENT.search(node.get("data-live-url-value", ""))
            ),
            None,
        )
        host.url = (history.get("data-live-url-value") if history else None) or DEFAULT_LIVE_URL
        host.name = (history.get("data-live-name-value") if history else None) or DEFAULT_LIVE_NAME
        logger.debug("live_host_overridden", url=host.url, name=host.name)
    return host


def refreshed_props(markup: Markup) -> Optional[str]:
    """Props blob carried by the first live host of a fragment, if any."""
    node = _soup(markup).select_one(f"{LIVE_HOSTS}[data-live-props-value]")
    return node.get("data-live-props-value") if node is not None else None


def is_pending_results(html: str) -> bool:
    """True when a result card shows the between-draws placeholder."""
    text = normalize_spaces(BeautifulSoup(html, "lxml").get_text(" ")).lower()
    return any(pattern.search(text) for pattern in PENDING_PATTERNS)


def _card_session(game: "GameSpec", label: str) -> Optional[str]:
    if len(game.sessions) == 1:
        return game.sessions[0].label
    wanted = "midday" if re.search(r"MIDDAY", label, re.IGNORECASE) else "evening"
    session = game.session_for_label(wanted)
    return session.label if session else None


def parse_latest_card(html: str, game: "GameSpec") -> List[DrawRecord]:
    """Latest results from an official result card; empty while results are pending."""
    if is_pending_results(html):
        logger.info("card_pending", game=game.key)
        return []
    selectors = game.card_selectors
    if selectors is None:
        return []

    soup = BeautifulSoup(html, "lxml")
    scopes = [node for css in selectors.containers for node in soup.select(css)][:1]
    if not scopes:
        scopes = soup.select(".card-body")

    found: dict[tuple[date, str], DrawRecord] = {}
    for scope in scopes:
        for numbers in scope.find_all("ul", class_=selectors.numbers_class):
            label_node = numbers.find_previous_sibling("p", class_=selectors.date_label_class)
            if label_node is None:
                continue
            strong = label_node.find("strong")
            label = _text(strong) if strong is not None and _text(strong) else _text(label_node)
            label = normalize_spaces(normalize_dashes(label))
            session = _card_session(game, label)
            draw_date = parse_draw_date(CARD_SESSION_SUFFIX.sub("", label).strip())
            if draw_date is None or session is None:
                continue
            balls = [int(_text(li)) for li in numbers.find_all("li") if re.fullmatch(r"\d", _text(li))]
            if len(balls) >= game.arity:
                record = DrawRecord(draw_date, session, tuple(balls[: game.arity]))
                found[record.key()] = record
        if found:
            break

        text = normalize_spaces(normalize_dashes(scope.get_text(" ")))
        for match in CARD_TEXT.finditer(text):
            digits = SINGLE_DIGIT.findall(text[match.end():])
            draw_date = parse_draw_date(match.group(1))
            session = _card_session(game, match.group(2))
            if draw_date is None or session is None or len(digits) < game.arity:
                continue
            record = DrawRecord(draw_date, session, tuple(int(d) for d in digits[: game.arity]))
            found.setdefault(record.key(), record)
        if found:
            break

    if not found:
        logger.warning("card_unparsed", game=game.key)
    return sorted(found.values(), key=lambda record: (record.date, record.session))


def discover_pdf_link(html: str, base_url: str, pattern: Optional[re.Pattern[str]] = None) -> Optional[str]:
    """Find the history PDF link on a game page."""
    soup = BeautifulSoup(html, "lxml")
    anchors = soup.find_all("a", href=True)
    for anchor in anchors:
        href = anchor["href"].strip()
        if href.lower().split("?")[0].endswith(".pdf") and PDF_LINK_TEXT.search(_text(anchor)):
            if pattern is None or pattern.search(href):
                return urljoin(base_url, href)
    if pattern is not None:
        for anchor in anchors:
            href = anchor["href"].strip()
            if pattern.search(href):
                return urljoin(base_url, href)
    return None
