from datetime import date

from lotto_ledger.assembler import (
    AssemblyParams,
    RowLayout,
    _Exclusion,
    build_page,
    pick_digits_by_columns,
)
from lotto_ledger.models import Column, Pane, RawItem, SkipReason, Token, TokenKind
from lotto_ledger.tokens import ClassifierRules, classify_items

LAYOUT = RowLayout(arity=3)


def test_clean_three_pane_page_builds_every_row(three_pane_tokens):
    result = build_page(three_pane_tokens(), 1, LAYOUT, AssemblyParams())

    assert len(result.rows) == 6
    assert result.skips == []
    assert result.skip_rate == 0.0
    assert all(len(row.digits) == 3 for row in result.rows)

    by_key = {row.key(): row for row in result.rows}
    assert by_key[(date(2025, 10, 14), "evening")].digits == (0, 1, 2)
    assert by_key[(date(2025, 10, 14), "midday")].digits == (3, 4, 5)
    assert by_key[(date(2025, 10, 13), "midday")].digits == (9, 0, 1)
    assert by_key[(date(2025, 10, 12), "evening")].digits == (2, 3, 4)
    assert all(row.bonus is None for row in result.rows)


def test_tag_shifted_into_next_pane_still_yields_bonus(three_pane_tokens):
    shifted = (RawItem(1, 180, 700.0, "FB"), RawItem(1, 195, 700.0, "8"))
    result = build_page(three_pane_tokens(extra=shifted), 1, LAYOUT, AssemblyParams())

    by_key = {row.key(): row for row in result.rows}
    evening = by_key[(date(2025, 10, 14), "evening")]
    assert evening.digits == (0, 1, 2)
    assert evening.bonus == 8
    assert by_key[(date(2025, 10, 14), "midday")].bonus is None
    assert len(result.rows) == 6
    assert result.skips == []


def test_shifted_tag_found_when_pane_has_its_own_tag_column(three_pane_tokens):
    extra = (
        RawItem(1, 140, 680.0, "FB"),
        RawItem(1, 155, 680.0, "5"),
        RawItem(1, 180, 700.0, "FB"),
        RawItem(1, 195, 700.0, "8"),
    )
    result = build_page(three_pane_tokens(extra=extra), 1, LAYOUT, AssemblyParams())

    by_key = {row.key(): row for row in result.rows}
    midday = by_key[(date(2025, 10, 14), "midday")]
    evening = by_key[(date(2025, 10, 14), "evening")]
    assert (midday.digits, midday.bonus) == ((3, 4, 5), 5)
    assert (evening.digits, evening.bonus) == ((0, 1, 2), 8)
    assert len(result.rows) == 6
    assert result.skips == []


def test_digits_shifted_into_next_pane_are_picked_up():
    items = [
        RawItem(1, 20, 700.0, "10/14/25"),
        RawItem(1, 70, 700.0, "E"),
        RawItem(1, 180, 700.0, "7"),
        RawItem(1, 195, 700.0, "8"),
        RawItem(1, 210, 700.0, "9"),
        RawItem(1, 20, 680.0, "10/14/25"),
        RawItem(1, 70, 680.0, "M"),
        RawItem(1, 90, 680.0, "1"),
        RawItem(1, 105, 680.0, "2"),
        RawItem(1, 120, 680.0, "3"),
    ]
    for y, code, digits in ((700.0, "E", "456"), (680.0, "M", "012")):
        items.append(RawItem(1, 320, y, "10/13/25"))
        items.append(RawItem(1, 370, y, code))
        items.extend(RawItem(1, x, y, d) for x, d in zip((390, 405, 420), digits))
    tokens = classify_items(items, ClassifierRules())

    result = build_page(tokens, 1, RowLayout(arity=3, pane_count=2), AssemblyParams())

    by_key = {row.key(): row for row in result.rows}
    assert by_key[(date(2025, 10, 14), "evening")].digits == (7, 8, 9)
    assert by_key[(date(2025, 10, 14), "midday")].digits == (1, 2, 3)
    assert by_key[(date(2025, 10, 13), "evening")].digits == (4, 5, 6)
    assert len(result.rows) == 4


def test_digits_left_of_session_marker_use_column_scan():
    items = [
        RawItem(1, 20, 700.0, "10/14/25"),
        RawItem(1, 90, 700.0, "1"),
        RawItem(1, 105, 700.0, "2"),
        RawItem(1, 120, 700.0, "3"),
        RawItem(1, 130, 700.0, "E"),
    ]
    tokens = classify_items(items, ClassifierRules())

    result = build_page(tokens, 1, RowLayout(arity=3, pane_count=1), AssemblyParams())

    (row,) = result.rows
    assert row.digits == (1, 2, 3)


def test_bonus_right_of_tag_is_excluded_from_main_digits():
    items = [
        RawItem(1, 20, 700.0, "10/14/25"),
        RawItem(1, 70, 700.0, "E"),
        RawItem(1, 85, 700.0, "FB"),
        RawItem(1, 100, 700.0, "9"),
        RawItem(1, 200, 700.0, "1"),
        RawItem(1, 215, 700.0, "2"),
        RawItem(1, 245, 700.0, "3"),
    ]
    tokens = classify_items(items, ClassifierRules())

    result = build_page(tokens, 1, RowLayout(arity=3, pane_count=1), AssemblyParams())

    (row,) = result.rows
    assert row.bonus == 9
    assert row.digits == (1, 2, 3)


def test_pick_digits_by_columns_honours_exclusion():
    def column(x, y=700.0):
        token = Token(1, float(x), y, str(x % 10), TokenKind.DIGIT)
        return Column(center_x=float(x), type=TokenKind.DIGIT, tokens=(token,))

    pane = Pane(index=0, min_x=90, max_x=150, columns=tuple(column(x) for x in (90, 101, 112, 150)))

    picked = pick_digits_by_columns(3, pane, 700.0, 7.0, exclude=_Exclusion(150.0, 14.0))
    assert [token.x for token in picked] == [90, 101, 112]

    assert pick_digits_by_columns(3, pane, 660.0, 7.0) is None
    assert pick_digits_by_columns(5, pane, 700.0, 7.0) is None


def test_tag_in_same_pane_excludes_bonus_from_digits():
    items = [
        RawItem(1, 20, 700.0, "10/14/25"),
        RawItem(1, 70, 700.0, "E"),
        RawItem(1, 90, 700.0, "1"),
        RawItem(1, 105, 700.0, "2"),
        RawItem(1, 120, 700.0, "3"),
        RawItem(1, 140, 700.0, "FB 9"),
    ]
    tokens = classify_items(items, ClassifierRules())
    result = build_page(tokens, 1, RowLayout(arity=3, pane_count=1), AssemblyParams())

    (row,) = result.rows
    assert row.digits == (1, 2, 3)
    assert row.bonus == 9


def test_missing_date_and_short_digits_are_categorized():
    items = [
        RawItem(1, 70, 700.0, "E"),
        RawItem(1, 90, 700.0, "1"),
        RawItem(1, 20, 680.0, "10/14/25"),
        RawItem(1, 70, 680.0, "M"),
        RawItem(1, 90, 680.0, "4"),
        RawItem(1, 20, 660.0, "13/45/25"),
        RawItem(1, 70, 660.0, "E"),
        RawItem(1, 90, 660.0, "7"),
    ]
    tokens = classify_items(items, ClassifierRules())
    result = build_page(tokens, 1, RowLayout(arity=3, pane_count=1), AssemblyParams())

    reasons = sorted(skip.reason for skip in result.skips)
    assert result.rows == []
    assert reasons == sorted(
        [
            SkipReason.NO_DATE_LEFT,
            SkipReason.NO_TAG_BUT_DIGITS_MISSING,
            SkipReason.DATE_PARSE_FAIL,
        ]
    )


def test_page_without_structure_yields_nothing():
    tokens = classify_items([RawItem(1, 10, 10, "Hello"), RawItem(1, 30, 10, "world")], ClassifierRules())
    result = build_page(tokens, 3, LAYOUT, AssemblyParams())
    assert result.rows == [] and result.skips == []
    assert result.column_counts == {"noise": 2}
