"""Tests for configuration and logging helpers."""

from __future__ import annotations

import logging
import os

import perfetto_tracing
from perfetto_tracing import TracingConfig


def test_config_defaults_to_cwd(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = TracingConfig()

    assert config.trace_directory == os.getcwd()
    assert config.enabled
    assert config.close_arrays


def test_config_from_env() -> None:
    config = TracingConfig.from_env({
        "PERFETTO_TRACE_DIR": "/var/traces",
        "PERFETTO_TRACE_ENABLED": "off",
        "PERFETTO_TRACE_CLOSE_ARRAYS": "0",
    })

    assert config.trace_directory == "/var/traces"
    assert not config.enabled
    assert not config.close_arrays


def test_config_from_env_ignores_blank_flags(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = TracingConfig.from_env({"PERFETTO_TRACE_ENABLED": " "})

    assert config.trace_directory == os.getcwd()
    assert config.enabled


def test_configure_logging_from_env(monkeypatch) -> None:
    monkeypatch.delenv("PERFETTO_TRACING_LOG", raising=False)
    assert perfetto_tracing.configure_from_env() is None

    monkeypatch.setenv("PERFETTO_TRACING_LOG", "debug")
    handler = perfetto_tracing.configure_from_env()
    try:
        logger = logging.getLogger("perfetto_tracing")
        assert handler in logger.handlers
        assert logger.level == logging.DEBUG
    finally:
        perfetto_tracing.disable_logging()

    assert handler not in logging.getLogger("perfetto_tracing").handlers
