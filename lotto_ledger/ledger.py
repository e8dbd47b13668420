"""Canonical CSV ledgers: one file per game session, unique by draw date."""

from __future__ import annotations

import csv
import os
import tempfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

from .errors import LedgerFormatError
from .logging import get_logger
from .models import DrawRecord, SourceRole
from .tokens import parse_draw_date

if TYPE_CHECKING:
    from .games import GameSpec, SessionSpec

logger = get_logger(__name__)


@dataclass(slots=True)
class MergeResult:
    records: List[DrawRecord] = field(default_factory=list)
    added: int = 0
    replaced: int = 0
    dropped_stale: int = 0
    rejected: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.replaced)

    @property
    def total(self) -> int:
        return len(self.records)


def merge_records(
    existing: Sequence[DrawRecord],
    incoming: Iterable[DrawRecord],
    arity: int,
) -> MergeResult:
    """Merge ``incoming`` into ``existing`` keyed by (date, session).

    On a key conflict the record with more populated optional fields wins and
    the existing record wins ties, so re-ingesting the same data is a no-op.
    Fallback records only count when strictly newer than the newest existing
    date.
    """
    result = MergeResult()
    merged: dict[tuple[date, str], DrawRecord] = {record.key(): record for record in existing}
    latest: Optional[date] = max((record.date for record in existing), default=None)

    for record in incoming:
        if len(record.digits) != arity:
            result.rejected += 1
            logger.warning(
                "record_rejected",
                date=record.date.isoformat(),
                session=record.session,
                digits=len(record.digits),
                arity=arity,
            )
            continue
        if record.role is SourceRole.FALLBACK and latest is not None and record.date <= latest:
            result.dropped_stale += 1
            logger.info(
                "fallback_not_newer",
                date=record.date.isoformat(),
                latest=latest.isoformat(),
            )
            continue

        current = merged.get(record.key())
        if current is None:
            merged[record.key()] = record
            result.added += 1
        elif record.optional_field_count() > current.optional_field_count():
            merged[record.key()] = record
            result.replaced += 1

    result.records = sorted(merged.values(), key=lambda record: (record.date, record.session))
    return result


class Ledger:
    """CSV file holding the draws of one game session."""

    def __init__(
        self,
        path: Path,
        arity: int,
        session: str,
        bonus_column: Optional[str] = None,
    ) -> None:
        self.path = Path(path)
        self.arity = arity
        self.session = session
        self.bonus_column = bonus_column

    @classmethod
    def for_session(cls, game: "GameSpec", session: "SessionSpec", data_dir: Path) -> "Ledger":
        return cls(
            game.ledger_path(data_dir, session),
            arity=game.arity,
            session=session.label,
            bonus_column=game.bonus_column,
        )

    @property
    def header(self) -> List[str]:
        columns = ["draw_date"] + [f"ball{i}" for i in range(1, self.arity + 1)]
        if self.bonus_column:
            columns.append(self.bonus_column)
        return columns

    def read(self) -> List[DrawRecord]:
        if not self.path.exists():
            return []
        records: list[DrawRecord] = []
        with self.path.open("r", encoding="utf-8", newline="") as handle:
            reader = csv.reader(handle)
            header = next(reader, None)
            if header is None:
                return []
            if [cell.strip() for cell in header] != self.header:
                raise LedgerFormatError(
                    f"{self.path}: expected header {','.join(self.header)}, got {','.join(header)}"
                )
            for line_no, row in enumerate(reader, start=2):
                if not row or not any(cell.strip() for cell in row):
                    continue
                records.append(self._parse_row(row, line_no))
        return records

    def _parse_row(self, row: List[str], line_no: int) -> DrawRecord:
        raw_date = row[0].strip()
        try:
            draw_date: Optional[date] = date.fromisoformat(raw_date)
        except ValueError:
            # Older ledgers were written with M/D/YYYY dates.
            draw_date = parse_draw_date(raw_date)
        if draw_date is None or len(row) < 1 + self.arity:
            raise LedgerFormatError(f"{self.path}:{line_no}: malformed row {row!r}")
        try:
            digits = tuple(int(cell) for cell in row[1 : 1 + self.arity])
            bonus_raw = row[1 + self.arity].strip() if self.bonus_column and len(row) > 1 + self.arity else ""
            bonus = int(bonus_raw) if bonus_raw else None
        except ValueError as exc:
            raise LedgerFormatError(f"{self.path}:{line_no}: malformed row {row!r}") from exc
        return DrawRecord(draw_date, self.session, digits, bonus)

    def seed(self, records: Iterable[DrawRecord]) -> MergeResult:
        """Rewrite the ledger from scratch."""
        result = merge_records([], records, self.arity)
        self._write(result.records)
        logger.info("ledger_seeded", path=str(self.path), rows=result.total, rejected=result.rejected)
        return result

    def update(self, records: Iterable[DrawRecord]) -> MergeResult:
        """Merge new records into the ledger, writing only when something changed."""
        return self.commit(self.merge(records))

    def merge(self, records: Iterable[DrawRecord]) -> MergeResult:
        """Merge against the file on disk without writing anything."""
        return merge_records(self.read(), records, self.arity)

    def commit(self, result: MergeResult) -> MergeResult:
        if result.changed:
            self._write(result.records)
            logger.info(
                "ledger_updated",
                path=str(self.path),
                added=result.added,
                replaced=result.replaced,
                total=result.total,
            )
        else:
            logger.info(
                "ledger_up_to_date",
                path=str(self.path),
                total=result.total,
                dropped_stale=result.dropped_stale,
            )
        return result

    def _write(self, records: Sequence[DrawRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                writer = csv.writer(handle, lineterminator="\n")
                writer.writerow(self.header)
                for record in records:
                    row = [record.date.isoformat(), *record.digits]
                    if self.bonus_column:
                        row.append("" if record.bonus is None else record.bonus)
                    writer.writerow(row)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
