"""Tests for configuration loading (``core/config.py``)."""

from __future__ import annotations

import pydantic
import pytest

from alertstream.core.config import ProjectionConfig, Settings, load_settings
from alertstream.core.enums import EventStoreBackend, ReadStoreBackend
from alertstream.core.errors import ConfigError


class TestProjectionConfig:
    def test_defaults(self):
        cfg = ProjectionConfig()
        assert cfg.batch_size == 100
        assert cfg.batch_timeout_ms == 120_000
        assert cfg.batch_timeout == 120.0
        assert cfg.check_interval == 5.0
        assert cfg.requeue_on_failure is False

    def test_check_interval_is_half_timeout_when_small(self):
        assert ProjectionConfig(batch_timeout_ms=2000).check_interval == 1.0

    @pytest.mark.parametrize("field,value", [("batch_size", 0), ("batch_timeout_ms", 0)])
    def test_rejects_non_positive(self, field, value):
        with pytest.raises(pydantic.ValidationError):
            ProjectionConfig(**{field: value})


class TestLoadSettings:
    def test_defaults_without_file(self):
        settings = load_settings()
        assert settings.read_store == ReadStoreBackend.MEMORY
        assert settings.event_store.backend == EventStoreBackend.MEMORY
        assert settings.default_source == "system"
        assert settings.elasticsearch.index == "alerts"

    def test_toml_file(self, tmp_path):
        path = tmp_path / "alerts.toml"
        path.write_text(
            'read_store = "elasticsearch"\n'
            "\n"
            "[projection]\n"
            "batch_size = 25\n"
            "batch_timeout_ms = 30000\n"
            "\n"
            "[event_store]\n"
            'backend = "jsonl"\n'
            'path = "/tmp/alerts.jsonl"\n'
        )
        settings = load_settings(path)
        assert settings.read_store == ReadStoreBackend.ELASTICSEARCH
        assert settings.projection.batch_size == 25
        assert settings.projection.batch_timeout == 30.0
        assert settings.event_store.backend == EventStoreBackend.JSONL

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "nope.toml")
        assert settings.projection.batch_size == 100

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[projection\nbatch_size = ")
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_overrides(self):
        settings = load_settings(overrides={"projection": {"batch_size": 3}})
        assert settings.projection.batch_size == 3

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("ALERTSTREAM_DEFAULT_SOURCE", "pager")
        monkeypatch.setenv("ALERTSTREAM_PROJECTION__BATCH_SIZE", "7")
        settings = Settings()
        assert settings.default_source == "pager"
        assert settings.projection.batch_size == 7
