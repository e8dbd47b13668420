from datetime import date

from lotto_ledger.models import RawItem, TokenKind
from lotto_ledger.tokens import (
    ClassifierRules,
    TokenClassifier,
    coerce_digit,
    is_date_shaped,
    parse_draw_date,
)


def _classify(text, rules=None):
    classifier = TokenClassifier(rules or ClassifierRules())
    return classifier.classify(RawItem(page=1, x=100.0, y=500.0, text=text))


def test_classifier_assigns_kinds():
    assert [t.kind for t in _classify("10/14/25")] == [TokenKind.DATE]
    assert [t.kind for t in _classify("E")] == [TokenKind.SESSION]
    assert [t.kind for t in _classify("M:")] == [TokenKind.SESSION]
    assert [t.kind for t in _classify("FB")] == [TokenKind.TAG]
    assert [t.kind for t in _classify("7")] == [TokenKind.DIGIT]
    assert [t.kind for t in _classify("Winning")] == [TokenKind.NOISE]


def test_compound_tag_is_split_into_tag_and_digit():
    tag, digit = _classify("FB 8")
    assert tag.kind is TokenKind.TAG and tag.x == 100.0
    assert digit.kind is TokenKind.DIGIT
    assert digit.text == "8"
    assert digit.x == 106.0


def test_dash_wrapped_digits_are_normalized():
    assert coerce_digit("-7-") == 7
    assert coerce_digit("–3") == 3
    assert coerce_digit("12") is None
    (token,) = _classify("− 4")
    assert token.kind is TokenKind.DIGIT
    assert token.text == "4"


def test_boilerplate_is_dropped():
    assert _classify("Page 2 of 14") == []
    assert _classify("FLORIDA LOTTERY") == []
    assert _classify("---") == []


def test_game_drop_patterns_extend_defaults():
    rules = ClassifierRules(drop_patterns=ClassifierRules().drop_patterns + (r"^PICK\s*3$",))
    assert _classify("PICK 3", rules) == []
    assert [t.kind for t in _classify("PICK 3")] == [TokenKind.NOISE]


def test_session_codes_are_configurable():
    rules = ClassifierRules(session_codes=("D",), tag_label=None)
    assert [t.kind for t in _classify("D", rules)] == [TokenKind.SESSION]
    assert [t.kind for t in _classify("E", rules)] == [TokenKind.NOISE]
    assert [t.kind for t in _classify("FB", rules)] == [TokenKind.NOISE]


def test_parse_draw_date_formats():
    assert parse_draw_date("10/14/25") == date(2025, 10, 14)
    assert parse_draw_date("10-14-2025") == date(2025, 10, 14)
    assert parse_draw_date("25/10/2025") == date(2025, 10, 25)
    assert parse_draw_date("10/14/85") == date(1985, 10, 14)
    assert parse_draw_date("14-OCT-2025") == date(2025, 10, 14)
    assert parse_draw_date("Oct 19, 2025") == date(2025, 10, 19)
    assert parse_draw_date("Sunday, Oct 19, 2025") == date(2025, 10, 19)
    assert parse_draw_date("SUN/OCT 19, 2025") == date(2025, 10, 19)


def test_parse_draw_date_rejects_impossible_dates():
    assert parse_draw_date("02/30/2025") is None
    assert parse_draw_date("Foo 12, 2025") is None
    assert parse_draw_date("") is None


def test_is_date_shaped():
    assert is_date_shaped("Oct 19, 2025")
    assert is_date_shaped("1/2/24")
    assert not is_date_shaped("FB")
