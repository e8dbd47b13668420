"""Registry of supported games and where their results come from."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .assembler import RowLayout
from .tokens import DEFAULT_DROP_PATTERNS, ClassifierRules

FL_FILES = "https://files.floridalottery.com/exptkt"
FL_GAMES = "https://floridalottery.com/games/draw-games"


@dataclass(frozen=True, slots=True)
class SessionSpec:
    label: str
    code: Optional[str]
    ledger_name: str
    listing_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CardSelectors:
    """Where the latest-result card lives on an official game page."""

    containers: tuple[str, ...]
    date_label_class: str = "draw-cards--draw-date"
    numbers_class: str = "draw-cards--winning-numbers"


@dataclass(frozen=True, slots=True)
class GameSpec:
    key: str
    region: str
    source_prefix: str
    env_prefix: str
    arity: int
    sessions: tuple[SessionSpec, ...]
    bonus_label: Optional[str] = None
    bonus_column: Optional[str] = None
    pdf_url: Optional[str] = None
    game_page_url: Optional[str] = None
    pdf_link_pattern: Optional[str] = None
    drop_patterns: tuple[str, ...] = ()
    card_url: Optional[str] = None
    card_selectors: Optional[CardSelectors] = None
    pane_count: int = 3

    @property
    def is_pdf(self) -> bool:
        return self.pdf_url is not None

    def classifier_rules(self) -> ClassifierRules:
        codes = tuple(session.code for session in self.sessions if session.code)
        return ClassifierRules(
            session_codes=codes,
            tag_label=self.bonus_label,
            drop_patterns=DEFAULT_DROP_PATTERNS + self.drop_patterns,
        )

    def row_layout(self) -> RowLayout:
        labels = tuple(
            (session.code, session.label) for session in self.sessions if session.code
        )
        return RowLayout(arity=self.arity, session_labels=labels, pane_count=self.pane_count)

    def ledger_path(self, data_dir: Path, session: SessionSpec) -> Path:
        return Path(data_dir) / self.region / f"{session.ledger_name}.csv"

    def debug_path(self, data_dir: Path, suffix: str = "debug") -> Path:
        stem = self.sessions[0].ledger_name.split("_")[0]
        return Path(data_dir) / self.region / f"{stem}_{suffix}.csv"

    def session_for_label(self, label: str) -> Optional[SessionSpec]:
        for session in self.sessions:
            if session.label == label:
                return session
        return None

    def pdf_link_regex(self) -> Optional[re.Pattern[str]]:
        if not self.pdf_link_pattern:
            return None
        return re.compile(self.pdf_link_pattern, re.IGNORECASE)


def _florida_pick(n: int) -> GameSpec:
    return GameSpec(
        key=f"fl_pick{n}",
        region="fl",
        source_prefix="FL",
        env_prefix=f"FL_P{n}",
        arity=n,
        sessions=(
            SessionSpec("midday", "M", f"pick{n}_midday"),
            SessionSpec("evening", "E", f"pick{n}_evening"),
        ),
        bonus_label="FB",
        bonus_column="fb",
        pdf_url=f"{FL_FILES}/p{n}.pdf",
        game_page_url=f"{FL_GAMES}/pick-{n}",
        pdf_link_pattern=rf"/exptkt/[^\"']*p{n}[^\"']*\.pdf",
        drop_patterns=(rf"^PICK\s*{n}$",),
    )


CA_DAILY3 = GameSpec(
    key="ca_daily3",
    region="ca",
    source_prefix="CA",
    env_prefix="CA_D3",
    arity=3,
    sessions=(
        SessionSpec(
            "midday", None, "daily3_midday", "https://www.lotteryusa.com/california/midday-3/year"
        ),
        SessionSpec(
            "evening", None, "daily3_evening", "https://www.lotteryusa.com/california/daily-3/year"
        ),
    ),
    card_url="https://www.calottery.com/en/draw-games/daily-3#section-content-2-3",
    card_selectors=CardSelectors(
        containers=("#drawGame9", "#draw-game-9", ".card.daily3 .card-body"),
    ),
)

CA_DAILY4 = GameSpec(
    key="ca_daily4",
    region="ca",
    source_prefix="CA",
    env_prefix="CA_D4",
    arity=4,
    sessions=(
        SessionSpec("daily", None, "daily4", "https://www.lotteryusa.com/california/daily-4/year"),
    ),
    card_url="https://www.calottery.com/en/draw-games/daily-4#section-content-2-3",
    card_selectors=CardSelectors(
        containers=("#winningNumbers14", "#draw-game-14", ".card.daily4 .card-body"),
    ),
)

GAMES: Dict[str, GameSpec] = {
    game.key: game
    for game in [*(_florida_pick(n) for n in (2, 3, 4, 5)), CA_DAILY3, CA_DAILY4]
}


def get_game(key: str) -> GameSpec:
    try:
        return GAMES[key.strip().lower()]
    except KeyError as exc:
        raise KeyError(f"Unknown game '{key}'. Known games: {', '.join(sorted(GAMES))}") from exc
