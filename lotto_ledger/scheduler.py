"""Async scheduler that keeps the ledgers up to date."""

from __future__ import annotations

import asyncio
from typing import List

from .config import AppConfig
from .errors import LedgerError
from .games import GAMES, GameSpec, get_game
from .logging import get_logger
from .pipeline import LedgerLoader

logger = get_logger(__name__)


class Scheduler:
    def __init__(self, config: AppConfig, loader: LedgerLoader) -> None:
        self.config = config
        self.loader = loader
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    def games(self) -> List[GameSpec]:
        if self.config.scheduler_games:
            return [get_game(key) for key in self.config.scheduler_games]
        return list(GAMES.values())

    async def start(self) -> None:
        if self._task:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        logger.info("scheduler_started", games=[game.key for game in self.games()])

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("scheduler_stopped")

    async def run_forever(self) -> None:
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    async def tick(self) -> int:
        """Update every scheduled game once; returns the number of failed games."""
        failures = 0
        for game in self.games():
            try:
                reports = await self.loader.update(game)
            except LedgerError as exc:
                failures += 1
                logger.error("scheduler_tick_error", game=game.key, error=str(exc))
                continue
            logger.info(
                "scheduler_game_updated",
                game=game.key,
                added=sum(report.added for report in reports),
            )
        return failures

    async def _run_loop(self) -> None:
        interval = self.config.scheduler_interval.total_seconds()
        while not self._stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
