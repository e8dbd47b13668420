import asyncio
from datetime import date

import httpx
import pytest

from lotto_ledger.config import SourceSettings
from lotto_ledger.errors import FetchError
from lotto_ledger.fetcher import HttpFetcher
from lotto_ledger.games import get_game
from lotto_ledger.pdf_source import extract_items, load_pdf_bytes, parse_pdf

GAME = get_game("fl_pick3")
PDF_ENV = ("FL_P3_PDF_PATH", "FL_P3_PDF_URL")


def _pdf(items, width=800, height=792):
    """Single-page PDF with Helvetica text drawn at the given baselines."""
    content = "".join(f"BT /F1 10 Tf {x} {y} Td ({text}) Tj ET\n" for x, y, text in items).encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        (
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {width} {height}] "
            "/Resources << /Font << /F1 4 0 R >> >> /Contents 5 0 R >>"
        ).encode("latin-1"),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref)
    return bytes(out)


def _history_items():
    items = [(20, 760, "FLORIDA LOTTERY"), (20, 745, "PICK 3")]
    for pane, offset in enumerate((0, 300, 600)):
        for row, (code, y) in enumerate((("E", 700), ("M", 680))):
            base = pane * 6 + row * 3
            items.append((offset + 20, y, f"10/{14 - pane}/25"))
            items.append((offset + 70, y, code))
            for i, dx in enumerate((90, 105, 120)):
                items.append((offset + dx, y, str((base + i) % 10)))
    items.append((140, 700, "FB 8"))
    return items


@pytest.fixture()
def history_pdf():
    return _pdf(_history_items())


def test_extract_items_measures_y_from_page_bottom(history_pdf):
    items = extract_items(history_pdf)

    by_text = {item.text: item for item in items if item.text.startswith("10/14")}
    date_item = by_text["10/14/25"]
    assert date_item.page == 1
    assert date_item.x == pytest.approx(20, abs=0.5)
    # Baseline 700 minus the Helvetica descender at 10pt.
    assert 695 < date_item.y <= 700
    assert any(item.text == "FB 8" for item in items)


def test_parse_pdf_rebuilds_every_row(history_pdf):
    tokens, run = parse_pdf(history_pdf, GAME)

    assert all(token.text != "FLORIDA LOTTERY" for token in tokens)
    assert len(run.records) == 6
    assert run.skips == []
    evening = next(r for r in run.records_for("evening") if r.date == date(2025, 10, 14))
    assert evening.digits == (0, 1, 2)
    assert evening.bonus == 8
    assert [r.date for r in run.records_for("midday")] == [
        date(2025, 10, 12),
        date(2025, 10, 13),
        date(2025, 10, 14),
    ]


def _fetch(handler, coro_factory):
    async def run():
        settings = SourceSettings(prefix="FL", http_retries=1, enable_browser=False)
        async with HttpFetcher(settings, "tests", transport=httpx.MockTransport(handler), backoff=0) as fetcher:
            return await coro_factory(fetcher)

    return asyncio.run(run())


@pytest.fixture()
def clean_env(monkeypatch):
    for key in PDF_ENV:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_local_path_wins_over_network(clean_env, tmp_path):
    local = tmp_path / "p3.pdf"
    local.write_bytes(b"%PDF-local")
    clean_env.setenv("FL_P3_PDF_PATH", str(local))
    clean_env.setenv("FL_P3_PDF_URL", "https://mirror.example/p3.pdf")

    def handler(request):
        raise AssertionError(f"unexpected request {request.url}")

    assert _fetch(handler, lambda fetcher: load_pdf_bytes(GAME, fetcher)) == b"%PDF-local"


def test_url_override_then_default_url(clean_env):
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, content=b"%PDF-" + request.url.host.encode())

    clean_env.setenv("FL_P3_PDF_URL", "https://mirror.example/p3.pdf")
    assert _fetch(handler, lambda fetcher: load_pdf_bytes(GAME, fetcher)) == b"%PDF-mirror.example"

    clean_env.delenv("FL_P3_PDF_URL")
    assert _fetch(handler, lambda fetcher: load_pdf_bytes(GAME, fetcher)) == b"%PDF-files.floridalottery.com"
    assert seen == ["https://mirror.example/p3.pdf", GAME.pdf_url]


def test_missing_default_pdf_falls_back_to_game_page_link(clean_env):
    def handler(request):
        if str(request.url) == GAME.pdf_url:
            return httpx.Response(404)
        if str(request.url) == GAME.game_page_url:
            return httpx.Response(
                200, text='<a href="https://files.floridalottery.com/exptkt/p3-2025.pdf">Winning Numbers History</a>'
            )
        if request.url.path == "/exptkt/p3-2025.pdf":
            return httpx.Response(200, content=b"%PDF-discovered")
        return httpx.Response(500)

    assert _fetch(handler, lambda fetcher: load_pdf_bytes(GAME, fetcher)) == b"%PDF-discovered"


def test_no_discoverable_link_raises(clean_env):
    def handler(request):
        if str(request.url) == GAME.game_page_url:
            return httpx.Response(200, text="<p>No downloads today</p>")
        return httpx.Response(404)

    with pytest.raises(FetchError):
        _fetch(handler, lambda fetcher: load_pdf_bytes(GAME, fetcher))
