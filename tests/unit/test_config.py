"""
Unit tests for HarnessConfig.
"""

import logging

import pytest

from protoharness.config import HarnessConfig, configure_logging


class TestHarnessConfig:
    def test_defaults_are_valid(self):
        config = HarnessConfig()
        config.validate()

        assert config.backlog == 128
        assert config.datagram_buffer_size == 1024
        assert config.reuse_address is True

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("HARNESS_BACKLOG", "512")
        monkeypatch.setenv("HARNESS_REUSE_ADDRESS", "false")
        monkeypatch.setenv("HARNESS_DATAGRAM_BUFFER", "2048")
        monkeypatch.setenv("HARNESS_MAX_EVENTS", "64")
        monkeypatch.setenv("HARNESS_LOG_LEVEL", "DEBUG")

        config = HarnessConfig.from_env()

        assert config.backlog == 512
        assert config.reuse_address is False
        assert config.datagram_buffer_size == 2048
        assert config.max_events == 64
        assert config.log_level == "DEBUG"

    def test_from_env_defaults(self, monkeypatch):
        for name in ("HARNESS_BACKLOG", "HARNESS_REUSE_ADDRESS", "HARNESS_DATAGRAM_BUFFER",
                     "HARNESS_MAX_EVENTS", "HARNESS_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        assert HarnessConfig.from_env() == HarnessConfig()

    @pytest.mark.parametrize("overrides", [
        {"backlog": -1},
        {"datagram_buffer_size": 0},
        {"max_events": 0},
        {"log_level": "LOUD"},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ValueError):
            HarnessConfig(**overrides).validate()


def test_configure_logging_sets_package_level():
    configure_logging("DEBUG")
    assert logging.getLogger("protoharness").level == logging.DEBUG

    configure_logging("WARNING")
    assert logging.getLogger("protoharness").level == logging.WARNING
