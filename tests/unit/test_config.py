"""
Unit tests for environment-based configuration.
"""

import logging

import json_log_formatter
import pytest

from dbaas.wsrepl_server.config import (
    ObservabilityConfig,
    ReplicationConfig,
    ServiceConfig,
    StorageConfig,
)
from dbaas.wsrepl_server.main import setup_logging


class TestServiceConfig:
    """Tests for ServiceConfig."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in (
            "WSREPL_DATA_DIR",
            "WSREPL_DB_NAME",
            "WSREPL_HISTORY_LIMIT",
            "WSREPL_DEFAULT_WORKSPACE",
            "SQLITE_WAL_MODE",
            "LOG_LEVEL",
            "LOG_FORMAT",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = ServiceConfig.from_env()

        assert config.storage.data_dir == "/var/lib/wsrepl"
        assert config.storage.db_name == "site.db"
        assert config.storage.wal_mode is True
        assert config.replication.history_limit == 50
        assert config.replication.default_workspace == "live"
        assert config.observability.log_format == "json"

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WSREPL_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("WSREPL_HISTORY_LIMIT", "0")
        monkeypatch.setenv("WSREPL_DEFAULT_WORKSPACE", "stage")
        monkeypatch.setenv("SQLITE_WAL_MODE", "false")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = ServiceConfig.from_env()

        assert config.storage.data_dir == str(tmp_path)
        assert config.storage.wal_mode is False
        assert config.replication.history_limit == 0
        assert config.replication.default_workspace == "stage"
        assert config.observability.log_format == "text"

    def test_negative_history_limit(self, monkeypatch):
        monkeypatch.setenv("WSREPL_HISTORY_LIMIT", "-1")

        with pytest.raises(ValueError):
            ServiceConfig.from_env()

    def test_invalid_log_format(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(ValueError):
            ServiceConfig.from_env()

    @pytest.mark.parametrize(
        "config",
        [
            ServiceConfig(storage=StorageConfig(data_dir="")),
            ServiceConfig(storage=StorageConfig(db_name="")),
            ServiceConfig(replication=ReplicationConfig(default_workspace="")),
            ServiceConfig(observability=ObservabilityConfig(log_format="yaml")),
        ],
    )
    def test_validate_rejects(self, config):
        with pytest.raises(ValueError):
            config.validate()


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        setup_logging(ServiceConfig(observability=ObservabilityConfig(log_level="DEBUG")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self):
        setup_logging(ServiceConfig(observability=ObservabilityConfig(log_format="text")))

        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)
        assert logging.getLogger().level == logging.INFO
