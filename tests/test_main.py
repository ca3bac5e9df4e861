import json

import pytest

from media_triage import main as cli

def _run(argv):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code

@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"

def _configure(data_dir, media_tree, tmp_path):
    return _run(["--data-dir", str(data_dir), "config",
                 "--add-path", str(media_tree),
                 "--deleted-folder", str(tmp_path / "deleted")])

def test_config_command_persists(data_dir, media_tree, tmp_path):
    assert _configure(data_dir, media_tree, tmp_path) == 0

    saved = json.loads((data_dir / "config.json").read_text(encoding="utf-8"))
    assert saved["scan_paths"] == [str(media_tree)]
    assert saved["deleted_folder"] == str(tmp_path / "deleted")

def test_scan_and_stats(data_dir, media_tree, tmp_path, capsys):
    _configure(data_dir, media_tree, tmp_path)
    capsys.readouterr()

    assert _run(["--data-dir", str(data_dir), "scan"]) == 0
    out = capsys.readouterr().out
    assert "5 files queued for review." in out

    assert _run(["--data-dir", str(data_dir), "stats"]) == 0
    assert "Total: 5  Pending: 5" in capsys.readouterr().out

def test_interactive_review(data_dir, media_tree, tmp_path, monkeypatch, capsys):
    _configure(data_dir, media_tree, tmp_path)

    answers = iter(["k", "what", "r", "s", "q"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

    assert _run(["--data-dir", str(data_dir), "review"]) == 0
    out = capsys.readouterr().out
    assert "Kept: 1  Rejected: 1" in out
    assert len(list((tmp_path / "deleted").iterdir())) == 1

def test_restore_and_export(data_dir, media_tree, tmp_path, monkeypatch, capsys):
    _configure(data_dir, media_tree, tmp_path)
    answers = iter(["r", "q"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
    _run(["--data-dir", str(data_dir), "review"])

    [quarantined] = list((tmp_path / "deleted").iterdir())
    assert not list(media_tree.rglob(quarantined.name))

    csv_path = tmp_path / "rejected.csv"
    assert _run(["--data-dir", str(data_dir), "export", str(csv_path)]) == 0
    lines = csv_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    original_path = lines[1].split(",")[0]

    assert _run(["--data-dir", str(data_dir), "restore", original_path, str(quarantined)]) == 0
    assert not quarantined.exists()

def test_restore_missing_fails(data_dir, media_tree, tmp_path):
    _configure(data_dir, media_tree, tmp_path)
    code = _run(["--data-dir", str(data_dir), "restore",
                 str(media_tree / "a.jpg"), str(tmp_path / "deleted" / "a.jpg")])
    assert code == 1

def test_bad_config_exits(data_dir, tmp_path):
    data_dir.mkdir()
    (data_dir / "config.json").write_text("{broken", encoding="utf-8")
    assert _run(["--data-dir", str(data_dir), "stats"]) == 1

def test_rejected_and_purge(data_dir, media_tree, tmp_path, monkeypatch, capsys):
    _configure(data_dir, media_tree, tmp_path)
    answers = iter(["r", "q"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
    _run(["--data-dir", str(data_dir), "review"])
    capsys.readouterr()

    assert _run(["--data-dir", str(data_dir), "rejected"]) == 0
    out = capsys.readouterr().out
    [quarantined] = list((tmp_path / "deleted").iterdir())
    assert str(quarantined) in out

    assert _run(["--data-dir", str(data_dir), "purge", "--yes", str(quarantined)]) == 0
    assert not quarantined.exists()
    assert _run(["--data-dir", str(data_dir), "purge", "--yes", str(quarantined)]) == 1
