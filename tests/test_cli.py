"""CLI commands against a temporary MEMORIA_HOME."""
import json
import sys

import pytest

from memoria import cli


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["memoria", *argv])
    cli.main()


def test_stats_json(tmp_memoria_home, monkeypatch, capsys):
    _run(monkeypatch, "stats", "--json")
    stats = json.loads(capsys.readouterr().out)
    assert stats["memoryCount"] == 0
    assert stats["mode"] == "persistent"
    assert (tmp_memoria_home / "memoria.db").exists()


def test_stats_text(tmp_memoria_home, monkeypatch, capsys):
    _run(monkeypatch, "stats")
    out = capsys.readouterr().out
    assert "Memories:       0" in out
    assert "Latest:         never" in out


def test_index_then_context(tmp_memoria_home, tmp_path, monkeypatch, capsys):
    source = tmp_path / "calc.py"
    source.write_text("def add(a, b):\n    return a + b\n")
    _run(monkeypatch, "index", str(source))
    assert "Indexed 1/1 files" in capsys.readouterr().out

    _run(monkeypatch, "context", "def", "add(a,", "b):")
    snapshot = json.loads(capsys.readouterr().out)
    assert set(snapshot["semantic"]) == {"similarMessages", "similarFiles", "similarSnippets"}


def test_index_failure_exits_nonzero(tmp_memoria_home, tmp_path, monkeypatch, capsys):
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "index", str(tmp_path / "missing.py"))
    assert exc.value.code == 1
    assert "failed:" in capsys.readouterr().err


def test_maintain(tmp_memoria_home, monkeypatch, capsys):
    _run(monkeypatch, "maintain", "--force-rebuild")
    report = json.loads(capsys.readouterr().out)
    assert report["indexesRebuilt"] is True
    assert report["errors"] == []


def test_bad_configuration_exits_2(tmp_memoria_home, monkeypatch, capsys):
    monkeypatch.setenv("MEMORIA_DB_URL", "postgres://db/memoria")
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "stats")
    assert exc.value.code == 2
    assert "Configuration error" in capsys.readouterr().err


def test_no_command_prints_help(monkeypatch, capsys):
    _run(monkeypatch)
    assert "usage: memoria" in capsys.readouterr().out
