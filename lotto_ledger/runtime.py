"""Runtime wiring for CLI and scheduler entrypoints."""

from __future__ import annotations

from dataclasses import dataclass

from .config import AppConfig, load_config
from .logging import configure_logging
from .pipeline import LedgerLoader
from .scheduler import Scheduler


@dataclass(slots=True)
class Runtime:
    config: AppConfig
    loader: LedgerLoader
    scheduler: Scheduler


def build_runtime(config: AppConfig | None = None) -> Runtime:
    cfg = config or load_config()
    configure_logging(cfg.log_level, json_format=cfg.json_logs)

    loader = LedgerLoader(cfg)
    scheduler = Scheduler(cfg, loader)

    return Runtime(
        config=cfg,
        loader=loader,
        scheduler=scheduler,
    )
