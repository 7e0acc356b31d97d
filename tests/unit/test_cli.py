"""CLI smoke tests using click's ``CliRunner`` and a JSONL event store."""

from __future__ import annotations

import json
import uuid

import pytest
from click.testing import CliRunner

from alertstream import main as app_main
from alertstream.cli import main


def _message(message_id: str, **kw) -> str:
    payload = {
        "messageId": message_id,
        "sourceSystem": "nagios",
        "severity": "CRITICAL",
        "description": "database replica lagging",
        "timestamp": "2024-03-01T08:30:00Z",
    }
    payload.update(kw)
    return json.dumps(payload)


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    # Root handlers would otherwise point at the runner's closed stream.
    monkeypatch.setattr(app_main, "setup_logging", lambda *a, **kw: None)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "alertstream.toml"
    events = (tmp_path / "events.jsonl").as_posix()
    path.write_text(
        "[event_store]\n"
        'backend = "jsonl"\n'
        f'path = "{events}"\n'
    )
    return path


@pytest.fixture
def messages_file(tmp_path):
    path = tmp_path / "messages.jsonl"
    path.write_text(
        "\n".join([
            _message("m-1"),
            _message("m-2", severity="low"),
            _message("m-3", description="bad"),
        ])
        + "\n"
    )
    return path


def test_ingest_rebuild_show(config_file, messages_file, tmp_path):
    runner = CliRunner()

    result = runner.invoke(main, ["ingest", str(messages_file), "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert "Accepted 2, invalid 1, failed 0" in result.output

    result = runner.invoke(main, ["rebuild", "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert "Rebuilt projection from 2 events." in result.output

    first = json.loads((tmp_path / "events.jsonl").read_text().splitlines()[0])
    result = runner.invoke(main, ["show", first["alert_id"], "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert "[ACTIVE]" in result.output
    assert "KafkaInput-nagios" in result.output
    assert "database replica lagging" in result.output


def test_show_unknown_alert(config_file):
    result = CliRunner().invoke(
        main, ["show", str(uuid.uuid4()), "--config", str(config_file)],
    )
    assert result.exit_code == 1
    assert "not found" in result.output


def test_show_rejects_bad_id():
    result = CliRunner().invoke(main, ["show", "not-a-uuid"])
    assert result.exit_code == 2
    assert "not a UUID" in result.output


def test_ingest_missing_file(tmp_path):
    result = CliRunner().invoke(main, ["ingest", str(tmp_path / "missing.jsonl")])
    assert result.exit_code == 2
