"""
Unit tests for configuration loading and storage selection.
"""

import pytest
from unittest.mock import Mock, patch

import redis

from mailimport.config import _init_storage, _load_env
from mailimport.storage.local_state import InMemoryPropertyStore
from mailimport.storage.lock import LocalRunLock, RedisRunLock

REQUIRED = {
    "GOOGLE_SHEETS_TOKEN": "secrets/sheets.json",
    "GOOGLE_GMAIL_TOKEN": "secrets/gmail.json",
    "GOOGLE_SHEET_ID": "sheet-123",
    "WORK_EMAIL": "Me@Work.example.com",
}

OPTIONAL = [
    "SHEET_WORKSHEET", "METADATA_WORKSHEET", "IMPORT_BATCH_SIZE", "BODY_CHAR_LIMIT", "IMPORT_TIMEZONE",
    "LOCK_TIMEOUT_SECONDS", "LOCK_TTL_SECONDS", "GMAIL_RATE_LIMIT_PER_MINUTE", "USE_REDIS", "REDIS_HOST",
    "REDIS_PORT", "REDIS_DB", "LOG_LEVEL", "LOG_FILE", "AUTO_REAUTHORIZE", "SCHEDULER_INTERVAL", "PROGRESS_PORT",
    "GOOGLE_GMAIL_SCOPES", "GOOGLE_SHEETS_SCOPES",
]


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setattr("mailimport.config.load_dotenv", lambda: None)
    for name in OPTIONAL:
        monkeypatch.delenv(name, raising=False)
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


class TestLoadEnv:
    def test_defaults(self, env):
        cfg = _load_env()
        assert cfg["WORK_EMAIL"] == "me@work.example.com"
        assert cfg["SHEET_TAB"] == "Sent Emails"
        assert cfg["METADATA_TAB"] == "Import Metadata"
        assert cfg["BATCH_SIZE"] == 50
        assert cfg["BODY_CHAR_LIMIT"] == 25000
        assert cfg["TIMEZONE"] == "UTC"
        assert cfg["LOCK_TIMEOUT"] == 1.0
        assert cfg["USE_REDIS"] is False
        assert cfg["LOG_FILE"] is None
        assert cfg["GMAIL_SCOPES"] == ["https://www.googleapis.com/auth/gmail.readonly"]

    def test_overrides(self, env):
        env.setenv("IMPORT_BATCH_SIZE", "10")
        env.setenv("IMPORT_TIMEZONE", "Europe/Berlin")
        env.setenv("USE_REDIS", "yes")
        cfg = _load_env()
        assert cfg["BATCH_SIZE"] == 10
        assert cfg["TIMEZONE"] == "Europe/Berlin"
        assert cfg["USE_REDIS"] is True

    @pytest.mark.parametrize("name", list(REQUIRED))
    def test_required(self, env, name):
        env.delenv(name)
        with pytest.raises(ValueError, match=name):
            _load_env()

    @pytest.mark.parametrize("name,value", [
        ("IMPORT_BATCH_SIZE", "0"),
        ("BODY_CHAR_LIMIT", "60000"),
        ("IMPORT_TIMEZONE", "Mars/Olympus"),
        ("LOCK_TIMEOUT_SECONDS", "120"),
        ("SCHEDULER_INTERVAL", "1"),
        ("WORK_EMAIL", "not an address"),
    ])
    def test_invalid_values(self, env, name, value):
        env.setenv(name, value)
        with pytest.raises(ValueError):
            _load_env()


class TestInitStorage:
    def _cfg(self, use_redis):
        return {
            "WORK_EMAIL": "me@work.example.com",
            "USE_REDIS": use_redis,
            "REDIS_HOST": "localhost",
            "REDIS_PORT": 6379,
            "REDIS_DB": 0,
            "LOCK_TTL": 900.0,
        }

    def test_in_memory_when_disabled(self):
        store, lock = _init_storage(self._cfg(False))
        assert isinstance(store, InMemoryPropertyStore)
        assert isinstance(lock, LocalRunLock)
        assert lock.name == "lock:import:me@work.example.com"

    def test_redis_when_enabled(self):
        storage = Mock(namespace="mailimport:")
        with patch("mailimport.storage.redis_kv.RedisKVStorage", return_value=storage):
            store, lock = _init_storage(self._cfg(True))
        assert store is storage
        assert isinstance(lock, RedisRunLock)
        storage.client.lock.assert_called_once_with("mailimport:lock:import:me@work.example.com", timeout=900.0)

    def test_falls_back_when_redis_unreachable(self):
        with patch("mailimport.storage.redis_kv.RedisKVStorage", side_effect=redis.ConnectionError("refused")):
            store, lock = _init_storage(self._cfg(True))
        assert isinstance(store, InMemoryPropertyStore)
        assert isinstance(lock, LocalRunLock)
