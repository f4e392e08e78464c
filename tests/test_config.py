"""Tests for layered configuration loading."""
from __future__ import annotations

import json
from pathlib import Path

from statevault.config import DEFAULT_CONFIG, load_config, save_workspace_config


def _write(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


def test_defaults_resolved_against_workspace(tmp_path: Path) -> None:
    cfg = load_config(workspace=tmp_path)
    assert cfg["account"] is None
    assert cfg["lineage"]["max_depth"] == DEFAULT_CONFIG["lineage"]["max_depth"]
    assert cfg["ledger"]["path"] == str(tmp_path / ".statevault" / "ledger.json")


def test_user_home_ignored_under_pytest(monkeypatch, tmp_path: Path) -> None:
    home = tmp_path / "home"
    _write(home / "config.json", {"account": "0xfromhome"})
    monkeypatch.setenv("STATEVAULT_HOME", str(home))
    assert load_config(workspace=tmp_path / "ws")["account"] is None


def test_layers_merge_in_order(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("STATEVAULT_ACCOUNT", raising=False)
    global_cfg = _write(tmp_path / "global.json", {
        "account": "0xglobal",
        "lineage": {"max_depth": 50},
        "log_level": "INFO",
    })
    ws = tmp_path / "ws"
    _write(ws / ".statevault" / "config.json", {"account": "0xworkspace"})

    cfg = load_config(global_cfg, ws)
    assert cfg["account"] == "0xworkspace"
    assert cfg["lineage"]["max_depth"] == 50
    assert cfg["log_level"] == "INFO"
    # Deep merge keeps sibling defaults.
    assert cfg["storage"]["root"].endswith("blobs")


def test_env_overrides_win(monkeypatch, tmp_path: Path) -> None:
    _write(tmp_path / ".statevault" / "config.json", {"account": "0xworkspace"})
    monkeypatch.setenv("STATEVAULT_ACCOUNT", "0xenv")
    monkeypatch.setenv("STATEVAULT_LOG_LEVEL", "debug")
    monkeypatch.setenv("STATEVAULT_MAX_DEPTH", "7")
    cfg = load_config(workspace=tmp_path)
    assert cfg["account"] == "0xenv"
    assert cfg["log_level"] == "DEBUG"
    assert cfg["lineage"]["max_depth"] == 7


def test_invalid_env_depth_ignored(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STATEVAULT_MAX_DEPTH", "lots")
    assert load_config(workspace=tmp_path)["lineage"]["max_depth"] == 10000


def test_unreadable_file_falls_back(tmp_path: Path) -> None:
    bad = tmp_path / ".statevault" / "config.json"
    bad.parent.mkdir(parents=True)
    bad.write_text("{not json")
    assert load_config(workspace=tmp_path)["account"] is None


def test_absolute_paths_kept(tmp_path: Path) -> None:
    target = tmp_path / "elsewhere" / "ledger.json"
    _write(tmp_path / ".statevault" / "config.json", {"ledger": {"path": str(target)}})
    assert load_config(workspace=tmp_path)["ledger"]["path"] == str(target)


def test_save_workspace_config_merges(tmp_path: Path) -> None:
    save_workspace_config(tmp_path, {"account": "0xa"})
    save_workspace_config(tmp_path, {"collection": "0xc"})
    data = json.loads((tmp_path / ".statevault" / "config.json").read_text())
    assert data == {"account": "0xa", "collection": "0xc"}
