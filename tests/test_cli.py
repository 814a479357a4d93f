import json

import pytest

from pharmabill import cli
from pharmabill.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    monkeypatch.delenv("PHARMABILL_DATA_DIR", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def run(tmp_path, *args):
    return cli.main(["--data-dir", str(tmp_path / "data"), *args])


def test_init_and_stats(tmp_path, capsys):
    assert run(tmp_path, "init") == 0
    assert "usine" in capsys.readouterr().out
    assert run(tmp_path, "init") == 0
    assert "conservées" in capsys.readouterr().out

    assert run(tmp_path, "stats") == 0
    assert "Factures        : 0" in capsys.readouterr().out


def test_export_import_roundtrip(tmp_path, capsys):
    run(tmp_path, "init")
    backup = tmp_path / "backup.json"
    assert run(tmp_path, "export", "-o", str(backup)) == 0
    dump = json.loads(backup.read_text(encoding="utf-8"))
    assert dump["db_version"] == "2.0"

    assert run(tmp_path, "reset", "--yes") == 0
    assert not list((tmp_path / "data").glob("pn_products_v2.json"))
    assert run(tmp_path, "import", str(backup)) == 0
    assert (tmp_path / "data" / "pn_products_v2.json").exists()


def test_export_to_stdout(tmp_path, capsys):
    run(tmp_path, "init")
    capsys.readouterr()
    assert run(tmp_path, "export", "-o", "-") == 0
    assert json.loads(capsys.readouterr().out)["appName"] == "Pharmacie Nouvelle"


def test_reset_requires_confirmation(tmp_path, capsys):
    run(tmp_path, "init")
    assert run(tmp_path, "reset") == 2
    assert (tmp_path / "data" / "pn_products_v2.json").exists()


def test_bad_import_reports_error(tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text("{oops", encoding="utf-8")
    assert run(tmp_path, "import", str(bad)) == 1
    assert "Erreur" in capsys.readouterr().err
    assert run(tmp_path, "import", str(tmp_path / "missing.json")) == 1


def test_pdf_unknown_document(tmp_path, capsys):
    assert run(tmp_path, "pdf", "invoice", "nope") == 1
    assert "not found" in capsys.readouterr().err
