from typer.testing import CliRunner

from lotto_ledger.cli import app

runner = CliRunner()


def test_games_lists_ledger_paths(monkeypatch, tmp_path):
    monkeypatch.setenv("LOTTO_DATA_DIR", str(tmp_path))

    result = runner.invoke(app, ["games"])

    assert result.exit_code == 0
    assert "fl_pick3\tarity=3\tsource=pdf" in result.output
    assert str(tmp_path / "ca" / "daily4.csv") in result.output


def test_unknown_game_is_rejected(monkeypatch, tmp_path):
    monkeypatch.setenv("LOTTO_DATA_DIR", str(tmp_path))

    result = runner.invoke(app, ["update", "nj_pick6"])

    assert result.exit_code != 0


def test_parse_pdf_refuses_listing_games(monkeypatch, tmp_path):
    monkeypatch.setenv("LOTTO_DATA_DIR", str(tmp_path))
    pdf = tmp_path / "d3.pdf"
    pdf.write_bytes(b"%PDF-1.4")

    result = runner.invoke(app, ["parse-pdf", str(pdf), "--game", "ca_daily3"])

    assert result.exit_code != 0
