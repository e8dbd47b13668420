from datetime import timedelta

import pytest

from lotto_ledger.config import AppConfig, SourceSettings
from lotto_ledger.models import RawItem
from lotto_ledger.tokens import ClassifierRules, classify_items

PANE_OFFSETS = (0, 300, 600)
ROW_YS = {"E": 700.0, "M": 680.0}


@pytest.fixture()
def three_pane_tokens():
    """Three side-by-side panes, one evening and one midday row each."""

    def build(digit_dy=0.0, extra=()):
        items = []
        for pane, offset in enumerate(PANE_OFFSETS):
            date_text = f"10/{14 - pane}/25"
            for row, (code, y) in enumerate(ROW_YS.items()):
                base = pane * 6 + row * 3
                items.append(RawItem(1, offset + 20, y, date_text))
                items.append(RawItem(1, offset + 70, y, code))
                for i, dx in enumerate((90, 105, 120)):
                    items.append(RawItem(1, offset + dx, y - digit_dy, str((base + i) % 10)))
        items.extend(extra)
        return classify_items(items, ClassifierRules())

    return build


@pytest.fixture()
def app_config(tmp_path):
    return AppConfig(
        data_dir=tmp_path,
        log_level="INFO",
        json_logs=True,
        http_user_agent="lotto-ledger-tests",
        scheduler_interval=timedelta(hours=1),
        scheduler_games=(),
        sources={
            "CA": SourceSettings(prefix="CA", http_retries=1, enable_browser=False),
            "FL": SourceSettings(prefix="FL", http_retries=1, enable_browser=False),
        },
    )
