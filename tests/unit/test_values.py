"""Tests for value objects and commands (``domain/values.py``, ``domain/commands.py``)."""

from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime, timezone

import pytest

from alertstream.domain.commands import AcknowledgeAlert, CreateAlert
from alertstream.domain.values import AlertDetails, AlertNote


class TestAlertDetails:
    def test_none_is_empty(self):
        details = AlertDetails(None)
        assert len(details) == 0
        assert details.to_dict() == {}

    def test_deep_copied_on_construction(self):
        raw = {"nested": {"k": [1, 2]}}
        details = AlertDetails(raw)
        raw["nested"]["k"].append(3)
        raw["extra"] = True
        assert details["nested"] == {"k": [1, 2]}
        assert "extra" not in details

    def test_to_dict_returns_copy(self):
        details = AlertDetails({"a": {"b": 1}})
        out = details.to_dict()
        out["a"]["b"] = 2
        assert details["a"]["b"] == 1

    def test_mapping_protocol(self):
        details = AlertDetails({"a": 1, "b": 2})
        assert set(details) == {"a", "b"}
        assert dict(details.items()) == {"a": 1, "b": 2}
        assert details.get("missing") is None

    def test_equality(self):
        assert AlertDetails({"a": 1}) == AlertDetails({"a": 1})
        assert AlertDetails({"a": 1}) == {"a": 1}
        assert AlertDetails({"a": 1}) != AlertDetails({"a": 2})

    def test_hash_follows_equality(self):
        nested = {"host": "db-1", "mounts": ["/var", {"path": "/tmp"}], "tags": {"prod"}}
        assert hash(AlertDetails(nested)) == hash(AlertDetails(dict(nested)))
        assert hash(AlertDetails({"n": 1})) == hash(AlertDetails({"n": 1.0}))
        assert len({AlertDetails(nested), AlertDetails(nested), AlertDetails()}) == 2

    def test_immutable(self):
        details = AlertDetails({"a": 1})
        with pytest.raises(dataclasses.FrozenInstanceError):
            details.properties = {}  # type: ignore[misc]


class TestAlertNote:
    def test_dict_roundtrip(self):
        note = AlertNote(
            note_id=uuid.uuid4(),
            text="rotated logs",
            author="alice",
            timestamp=datetime(2024, 1, 1, 12, tzinfo=timezone.utc),
        )
        d = note.to_dict()
        assert set(d) == {"noteId", "text", "author", "timestamp"}
        assert AlertNote.from_dict(d) == note


class TestCommands:
    def test_command_name(self):
        assert AcknowledgeAlert(acknowledged_by="a").name == "AcknowledgeAlert"

    def test_command_ids_unique(self):
        assert CreateAlert().command_id != CreateAlert().command_id

    def test_commands_frozen(self):
        cmd = AcknowledgeAlert(acknowledged_by="a")
        with pytest.raises(dataclasses.FrozenInstanceError):
            cmd.acknowledged_by = "b"  # type: ignore[misc]
