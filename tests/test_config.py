"""Tests for environment-driven configuration."""

from __future__ import annotations

import logging

import pytest

from zoomstack import config


class TestEnvHelpers:
    """Tests for reading overrides from the environment."""

    def test_int_override(self, monkeypatch):
        monkeypatch.setenv("ZOOMSTACK_TEST_INT", "8")
        assert config._get_env_int("ZOOMSTACK_TEST_INT", 4) == 8

    def test_int_missing_uses_default(self, monkeypatch):
        monkeypatch.delenv("ZOOMSTACK_TEST_INT", raising=False)
        assert config._get_env_int("ZOOMSTACK_TEST_INT", 4) == 4

    def test_invalid_int_warns_and_uses_default(self, monkeypatch, caplog):
        monkeypatch.setenv("ZOOMSTACK_TEST_INT", "many")
        with caplog.at_level(logging.WARNING, logger="zoomstack.config"):
            assert config._get_env_int("ZOOMSTACK_TEST_INT", 4) == 4
        assert "ZOOMSTACK_TEST_INT" in caplog.text

    def test_str_override(self, monkeypatch):
        monkeypatch.setenv("ZOOMSTACK_TEST_STR", "png")
        assert config._get_env_str("ZOOMSTACK_TEST_STR", "jpg") == "png"


class TestValidateConfig:
    """Tests for clamping out-of-range settings."""

    @pytest.mark.parametrize(
        "name, value, expected",
        [
            ("TILE_WORKERS", 0, 1),
            ("DEFAULT_PARALLEL_IMAGES", -3, 1),
            ("MAX_SOURCE_PIXELS", -1, 0),
            ("DEFAULT_TILE_FORMAT", "webp", "jpg"),
        ],
    )
    def test_invalid_values_are_reset(self, monkeypatch, caplog, name, value, expected):
        monkeypatch.setattr(config, name, value)
        with caplog.at_level(logging.WARNING, logger="zoomstack.config"):
            config._validate_config()
        assert getattr(config, name) == expected
        assert name in caplog.text

    def test_valid_values_are_untouched(self, monkeypatch, caplog):
        monkeypatch.setattr(config, "TILE_WORKERS", 8)
        monkeypatch.setattr(config, "DEFAULT_TILE_FORMAT", "png")
        with caplog.at_level(logging.WARNING, logger="zoomstack.config"):
            config._validate_config()
        assert config.TILE_WORKERS == 8
        assert config.DEFAULT_TILE_FORMAT == "png"
