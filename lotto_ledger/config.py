"""Configuration loader for the lotto-ledger ingestion jobs.

Per-source settings follow the ``<SOURCE>_<SETTING>`` convention, e.g.
``CA_HTTP_TIMEOUT_MS`` or ``FL_DEBUG``. Per-game overrides use the game's own
prefix, e.g. ``FL_P3_PDF_PATH``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional


def _get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is not None:
        value = value.strip()
        if value == "":
            return default
        return value
    return default


def _get_int(key: str, default: int) -> int:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be an integer") from exc


def _get_float(key: str, default: float) -> float:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be a number") from exc


def _get_bool(key: str, default: bool) -> bool:
    value = _get_env(key)
    if value is None:
        return default
    value_lower = value.lower()
    if value_lower in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if value_lower in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise ValueError(f"Environment variable {key} must be a boolean")


@dataclass(slots=True)
class SourceSettings:
    """Network and automation knobs for one source family (``FL``, ``CA``...)."""

    prefix: str
    http_timeout: float = 20.0
    http_retries: int = 2
    enable_browser: bool = True
    browser_timeout_ms: int = 45_000
    wait_after_click_ms: int = 600
    max_clicks: int = 50
    live_more_max: int = 200
    max_pages: int = 50
    try_server_first: bool = True
    verbose: bool = False


@dataclass(slots=True)
class AppConfig:
    data_dir: Path
    log_level: str
    json_logs: bool
    http_user_agent: str
    scheduler_interval: timedelta
    scheduler_games: tuple[str, ...]
    sources: dict[str, SourceSettings] = field(default_factory=dict)

    def source(self, prefix: str) -> SourceSettings:
        """Return settings for a source family, loading them on first use."""
        key = prefix.upper()
        if key not in self.sources:
            self.sources[key] = load_source_settings(key)
        return self.sources[key]


DEFAULT_USER_AGENT = (
    "lotto-ledger/1.0 (+results ingestion; "
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36)"
)


def load_source_settings(prefix: str) -> SourceSettings:
    p = prefix.upper()
    return SourceSettings(
        prefix=p,
        http_timeout=max(1.0, _get_float(f"{p}_HTTP_TIMEOUT_MS", 20_000.0) / 1000.0),
        http_retries=max(1, _get_int(f"{p}_HTTP_RETRIES", 2)),
        enable_browser=_get_bool(f"{p}_ENABLE_PLAYWRIGHT", True),
        browser_timeout_ms=max(1_000, _get_int(f"{p}_PLAYWRIGHT_TIMEOUT_MS", 45_000)),
        wait_after_click_ms=max(0, _get_int(f"{p}_PLAYWRIGHT_WAIT_AFTER_CLICK_MS", 600)),
        max_clicks=max(0, _get_int(f"{p}_PLAYWRIGHT_MAX_CLICKS", 50)),
        live_more_max=max(0, _get_int(f"{p}_LIVE_MORE_MAX", 200)),
        max_pages=max(1, _get_int(f"{p}_MAX_PAGES", 50)),
        try_server_first=_get_bool(f"{p}_TRY_SERVER_FIRST", True),
        verbose=_get_bool(f"{p}_DEBUG", False),
    )


def game_override(env_prefix: str, setting: str) -> Optional[str]:
    """Read a per-game override such as ``FL_P3_PDF_PATH``."""
    return _get_env(f"{env_prefix}_{setting}")


def load_config() -> AppConfig:
    data_dir = Path(_get_env("LOTTO_DATA_DIR", "public/data"))
    log_level = _get_env("LOG_LEVEL", "INFO").upper()
    log_format = _get_env("LOG_FORMAT", "json").lower()
    if log_format not in {"json", "console"}:
        raise ValueError("Environment variable LOG_FORMAT must be 'json' or 'console'")

    interval_seconds = max(60, _get_int("SCHEDULER_INTERVAL_SECONDS", 3_600))
    games_raw = _get_env("SCHEDULER_GAMES", "")
    scheduler_games = tuple(
        part.strip() for part in games_raw.split(",") if part.strip()
    )

    return AppConfig(
        data_dir=data_dir,
        log_level=log_level,
        json_logs=log_format == "json",
        http_user_agent=_get_env("HTTP_USER_AGENT", DEFAULT_USER_AGENT),
        scheduler_interval=timedelta(seconds=interval_seconds),
        scheduler_games=scheduler_games,
    )
