from datetime import date

import pytest

from lotto_ledger.errors import LedgerFormatError
from lotto_ledger.ledger import Ledger, merge_records
from lotto_ledger.models import DrawRecord, SourceRole


def _record(day, digits=(1, 2, 3), bonus=None, role=SourceRole.PRIMARY):
    return DrawRecord(date(2025, 10, day), "evening", tuple(digits), bonus, role)


@pytest.fixture()
def ledger(tmp_path):
    return Ledger(tmp_path / "fl" / "pick3_evening.csv", arity=3, session="evening", bonus_column="fireball")


def test_seed_writes_sorted_canonical_csv(ledger):
    result = ledger.seed([_record(14, bonus=8), _record(12, digits=(4, 5, 6))])

    assert result.added == 2
    assert ledger.path.read_text(encoding="utf-8") == (
        "draw_date,ball1,ball2,ball3,fireball\n"
        "2025-10-12,4,5,6,\n"
        "2025-10-14,1,2,3,8\n"
    )


def test_update_with_same_records_is_a_noop(ledger):
    ledger.seed([_record(12), _record(13)])
    before = ledger.path.stat().st_mtime_ns

    result = ledger.update([_record(12), _record(13)])

    assert not result.changed
    assert result.total == 2
    assert ledger.path.stat().st_mtime_ns == before


def test_fallback_not_newer_than_ledger_is_dropped(ledger):
    ledger.seed([_record(12), _record(14)])
    content = ledger.path.read_text(encoding="utf-8")

    result = ledger.update(
        [
            _record(14, digits=(9, 9, 9), role=SourceRole.FALLBACK),
            _record(13, digits=(7, 7, 7), role=SourceRole.FALLBACK),
        ]
    )

    assert result.dropped_stale == 2
    assert not result.changed
    assert ledger.path.read_text(encoding="utf-8") == content


def test_newer_fallback_is_appended(ledger):
    ledger.seed([_record(12)])

    result = ledger.update([_record(15, digits=(0, 4, 2), role=SourceRole.FALLBACK)])

    assert result.added == 1
    assert [r.date for r in ledger.read()] == [date(2025, 10, 12), date(2025, 10, 15)]
    assert ledger.read()[-1].digits == (0, 4, 2)


def test_record_with_bonus_replaces_existing_without_one(ledger):
    ledger.seed([_record(12)])

    result = ledger.update([_record(12, bonus=5)])

    assert result.replaced == 1
    (record,) = ledger.read()
    assert record.bonus == 5


def test_existing_record_wins_equal_conflict():
    existing = [_record(12, digits=(1, 1, 1))]
    result = merge_records(existing, [_record(12, digits=(2, 2, 2))], arity=3)
    assert result.records == existing
    assert not result.changed


def test_wrong_arity_is_rejected():
    result = merge_records([], [_record(12, digits=(1, 2)), _record(13)], arity=3)
    assert result.rejected == 1
    assert [r.date.day for r in result.records] == [13]


def test_read_accepts_legacy_month_first_dates(ledger):
    ledger.path.parent.mkdir(parents=True)
    ledger.path.write_text(
        "draw_date,ball1,ball2,ball3,fireball\n10/3/2025,1,2,3,\n", encoding="utf-8"
    )

    (record,) = ledger.read()

    assert record.date == date(2025, 10, 3)
    assert record.bonus is None


def test_header_mismatch_raises(ledger):
    ledger.path.parent.mkdir(parents=True)
    ledger.path.write_text("date,n1,n2,n3\n2025-10-03,1,2,3\n", encoding="utf-8")

    with pytest.raises(LedgerFormatError):
        ledger.read()
    with pytest.raises(LedgerFormatError):
        ledger.update([_record(12)])


def test_ledger_without_bonus_column(tmp_path):
    daily = Ledger(tmp_path / "ca" / "daily4.csv", arity=4, session="daily")
    daily.seed([DrawRecord(date(2025, 10, 19), "daily", (5, 0, 7, 1))])

    assert daily.path.read_text(encoding="utf-8") == "draw_date,ball1,ball2,ball3,ball4\n2025-10-19,5,0,7,1\n"
