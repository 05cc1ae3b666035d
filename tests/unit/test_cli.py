"""Tests for the operator CLI."""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from orchestrator.cli import cli


def _write_config(tmp_path: Path, **overrides: object) -> str:
    config_dir = tmp_path / "clients"
    config_dir.mkdir(exist_ok=True)
    data: dict[str, object] = {
        "client_id": "acme",
        "brand_name": "Acme",
        "xai_api_key": "test-key-for-local-dev",
        "meta_app_secret": "do-not-print",
        "rate_limit_max": 1,
    }
    data.update(overrides)
    (config_dir / "acme.json").write_text(json.dumps(data))
    return str(config_dir)


def test_chat_prints_reply(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, [
        "--config-dir", _write_config(tmp_path),
        "chat", "--client", "acme", "What are your hours?",
    ])
    assert result.exit_code == 0
    assert result.output.startswith('Mock response: I received your message "What are your hours?"')


def test_chat_json_output(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, [
        "--config-dir", _write_config(tmp_path),
        "chat", "--client", "acme", "--json", "asdf123 random text",
    ])
    assert result.exit_code == 0
    assert json.loads(result.output)["type"] == "off_topic"


def test_chat_with_state_db_enforces_limit(tmp_path: Path) -> None:
    config_dir = _write_config(tmp_path)
    db = str(tmp_path / "state.db")
    runner = CliRunner()
    args = ["--config-dir", config_dir, "--state-db", db, "chat", "--client", "acme", "hours?"]

    assert runner.invoke(cli, args).exit_code == 0
    second = runner.invoke(cli, args)

    assert second.exit_code == 0
    assert second.output.strip() == "Rate limit exceeded. Please try again later."


def test_usage_reports_counts(tmp_path: Path) -> None:
    config_dir = _write_config(tmp_path, rate_limit_max=10)
    db = str(tmp_path / "state.db")
    runner = CliRunner()
    for _ in range(2):
        runner.invoke(cli, [
            "--config-dir", config_dir, "--state-db", db,
            "chat", "--client", "acme", "--session", "s1", "hours?",
        ])

    result = runner.invoke(cli, ["--state-db", db, "usage", "--client", "acme", "s1"])

    assert result.exit_code == 0
    assert json.loads(result.output)["usage"] == {"chat": 2}


def test_usage_requires_state_db() -> None:
    result = CliRunner().invoke(cli, ["usage", "s1"])
    assert result.exit_code != 0
    assert "--state-db" in result.output


def test_config_show_hides_secrets(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, [
        "--config-dir", _write_config(tmp_path), "config", "show", "--client", "acme",
    ])
    assert result.exit_code == 0
    shown = json.loads(result.output)
    assert shown["brand_name"] == "Acme"
    assert "meta_app_secret" not in shown
    assert "do-not-print" not in result.output


def test_unknown_client_fails_cleanly(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, [
        "--config-dir", _write_config(tmp_path), "config", "show", "--client", "ghost",
    ])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_serve_runs_app_factory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLIENT_CONFIG_DIR", "elsewhere")
    monkeypatch.delenv("STATE_DB_PATH", raising=False)
    config_dir = _write_config(tmp_path)

    with patch("orchestrator.cli.uvicorn.run") as run:
        result = CliRunner().invoke(cli, ["--config-dir", config_dir, "serve", "--port", "9001"])

    assert result.exit_code == 0
    run.assert_called_once_with(
        "orchestrator.api.app:create_app_from_env", factory=True, host="127.0.0.1", port=9001,
    )
    assert os.environ["CLIENT_CONFIG_DIR"] == config_dir
    assert "STATE_DB_PATH" not in os.environ
