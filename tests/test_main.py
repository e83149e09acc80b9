"""
Tests for the command line entry point.
"""

import json

from erie_bridge.main import build_parser, main

from conftest import raw_config


def test_dry_run_with_valid_config(tmp_path, capsys):
    config_path = tmp_path / "options.json"
    config_path.write_text(json.dumps(raw_config()), encoding="utf-8")

    exit_code = main(["--config", str(config_path), "--dry-run"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "ERIE SEPTIC TANK BRIDGE" in out
    assert "erie_septic_tank/state" in out
    assert "hunter2" not in out
    assert "secret" not in out


def test_invalid_config_exits_with_error(tmp_path):
    data = raw_config()
    del data["mqtt"]
    config_path = tmp_path / "config.yaml"
    config_path.write_text(json.dumps(data), encoding="utf-8")

    assert main(["--config", str(config_path), "--dry-run"]) == 1


def test_missing_config_file_exits_with_error(tmp_path):
    assert main(["--config", str(tmp_path / "nope.yaml")]) == 1


def test_paths_default_from_environment(monkeypatch):
    monkeypatch.setenv("CONFIG_FILE", "/data/options.json")
    monkeypatch.setenv("HISTORY_FILE", "/data/history.json")

    args = build_parser().parse_args([])

    assert args.config == "/data/options.json"
    assert args.history == "/data/history.json"
    assert not args.dry_run


def test_startup_os_error_exits_with_error(tmp_path, monkeypatch):
    config_path = tmp_path / "options.json"
    config_path.write_text(json.dumps(raw_config(healthPort=8099)), encoding="utf-8")

    async def failing_main_async(config, history_path):
        raise OSError(98, "Address already in use")

    monkeypatch.setattr("erie_bridge.main.main_async", failing_main_async)

    assert main(["--config", str(config_path)]) == 1
